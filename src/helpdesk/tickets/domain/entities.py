"""
Ticket Domain Entities
======================

Pure Python domain entities for the helpdesk.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. The services
operate on a ticket by reference and persist it through a repository.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from helpdesk.config import (
    SlaBreachType, TicketPriority, TicketStatus, TicketType
)
from helpdesk.shared.clock import utcnow


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


@dataclass
class Ticket:
    """
    Ticket entity representing a support request.

    Invariant: `status` is always a member of TicketStatus and
    `closed_at` is set exactly when the status is terminal.
    """

    # Core attributes
    id: Optional[int]
    subject: str
    type: TicketType = TicketType.PRODUCT_SUPPORT
    priority: TicketPriority = TicketPriority.NORMAL
    status: TicketStatus = TicketStatus.OPEN
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    # Assignment (opaque reference to a user/agent)
    assignee_id: Optional[str] = None

    # Labels, loaded from the tag/category stores
    tags: List[str] = field(default_factory=list)
    category_ids: List[int] = field(default_factory=list)

    # Timestamps
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # SLA tracking
    first_response_at: Optional[datetime] = None
    first_response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    sla_breached: bool = False
    sla_breach_type: Optional[SlaBreachType] = None
    response_time_minutes: Optional[int] = None
    resolution_time_minutes: Optional[int] = None

    # Optimistic concurrency token, bumped by the repository on every save
    version: int = 0

    # Set by the repository once the row is gone
    deleted: bool = False

    def __post_init__(self):
        """Coerce raw values and validate timestamps."""
        self.status = TicketStatus(self.status)
        self.priority = TicketPriority(self.priority)
        self.type = TicketType(self.type)
        if self.sla_breach_type is not None:
            self.sla_breach_type = SlaBreachType(self.sla_breach_type)

        if self.opened_at and self.first_response_at and self.first_response_at < self.opened_at:
            raise ValueError("first_response_at cannot be before opened_at")

        if self.closed_at and self.opened_at and self.closed_at < self.opened_at:
            raise ValueError("closed_at cannot be before opened_at")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None

    def assign_to(self, assignee_id: Optional[str]) -> bool:
        """Assign the ticket; returns False when nothing changed."""
        if assignee_id is None:
            return self.release_assignment()
        assignee_id = str(assignee_id)
        if self.assignee_id == assignee_id:
            return False
        self.assignee_id = assignee_id
        return True

    def release_assignment(self) -> bool:
        if self.assignee_id is None:
            return False
        self.assignee_id = None
        return True

    def mark_first_response(self, timestamp: Optional[datetime] = None) -> bool:
        """Record the first agent response; flags a breach when late."""
        if self.first_response_at is not None:
            return False

        self.first_response_at = timestamp or utcnow()
        if self.opened_at:
            self.response_time_minutes = _minutes_between(self.opened_at, self.first_response_at)

        if self.first_response_due_at and self.first_response_at > self.first_response_due_at:
            self.sla_breached = True
            self.sla_breach_type = SlaBreachType.FIRST_RESPONSE

        return True

    def mark_resolution(self, timestamp: Optional[datetime] = None) -> bool:
        """Resolution bookkeeping once the ticket reached a terminal status."""
        if not self.is_terminal:
            return False

        resolved_at = self.closed_at or timestamp or utcnow()
        if self.opened_at:
            self.resolution_time_minutes = _minutes_between(self.opened_at, resolved_at)

        if self.resolution_due_at and resolved_at > self.resolution_due_at:
            self.sla_breached = True
            self.sla_breach_type = self.sla_breach_type or SlaBreachType.RESOLUTION

        return True

    def is_first_response_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.first_response_at or not self.first_response_due_at:
            return False
        return (now or utcnow()) > self.first_response_due_at

    def is_resolution_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.is_terminal or not self.resolution_due_at:
            return False
        return (now or utcnow()) > self.resolution_due_at

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the mutable state, used to undo a failed unit of work."""
        return copy.deepcopy(self.__dict__)

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.__dict__.clear()
        self.__dict__.update(copy.deepcopy(snapshot))


@dataclass
class TicketComment:
    """A comment or internal note attached to a ticket."""

    id: Optional[int]
    ticket_id: int
    body: str
    is_internal: bool = False
    author_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass
class Category:
    """A ticket category; categories form a tree through `parent_id`."""

    id: Optional[int]
    name: str
    slug: str
    parent_id: Optional[int] = None
