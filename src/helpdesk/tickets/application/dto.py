"""
Ticket Application DTOs
=======================

Pydantic models validating input to the ticket service.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# ========== Type Aliases for Literals ==========
TicketPriorityStr = Literal["low", "normal", "high", "urgent"]
TicketTypeStr = Literal["product_support", "commercial"]


class TicketCreateDTO(BaseModel):
    """DTO for creating a single ticket."""
    subject: str = Field(..., min_length=1, max_length=500, description="Ticket subject")
    description: Optional[str] = Field(None, description="Ticket body")
    priority: TicketPriorityStr = Field(default="normal", description="Ticket priority")
    type: TicketTypeStr = Field(default="product_support", description="Ticket type")
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_email: Optional[str] = Field(None, max_length=255)
    assignee_id: Optional[str] = Field(None, description="Initial assignee reference")
    tags: List[str] = Field(default_factory=list, description="Tag names to attach")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Custom fields")

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        """Strip blanks and duplicates while keeping order."""
        seen: List[str] = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class CommentCreateDTO(BaseModel):
    """DTO for adding a comment to a ticket."""
    body: str = Field(..., min_length=1)
    is_internal: bool = Field(default=False)
    author_id: Optional[str] = None
