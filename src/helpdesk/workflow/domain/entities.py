"""
Workflow Domain Entities
========================

Typed workflow definitions. Transition tables are parsed once, at load
or registration time, and rejected when they name unknown statuses.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from helpdesk.config import TicketStatus


class TransitionSpec(BaseModel):
    """What happens on one `from:to` status change."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    description: Optional[str] = None
    guards: List[str] = Field(default_factory=list)
    before_actions: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("before_actions", "before")
    )
    after_actions: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("after_actions", "after")
    )
    requires_comment: bool = False
    requires_resolution: bool = False
    triggers_automation: bool = Field(
        default=False,
        validation_alias=AliasChoices("triggers_automation", "trigger_automations")
    )


class WorkflowDefinition(BaseModel):
    """
    Named map from `from:to` keys to transition specs.

    Immutable once registered.
    """
    model_config = ConfigDict(frozen=True)

    name: str = "default"
    label: Optional[str] = None
    transitions: Dict[str, TransitionSpec] = Field(default_factory=dict)

    @field_validator("transitions")
    @classmethod
    def validate_transition_keys(cls, v: Dict[str, TransitionSpec]) -> Dict[str, TransitionSpec]:
        """Keys must be `from:to` over known, distinct statuses."""
        for key in v:
            parts = key.split(":")
            if len(parts) != 2:
                raise ValueError(f"transition key '{key}' must look like 'from:to'")
            from_status, to_status = parts
            for status in parts:
                try:
                    TicketStatus(status)
                except ValueError:
                    raise ValueError(f"unknown status '{status}' in transition '{key}'") from None
            if from_status == to_status:
                raise ValueError(f"transition '{key}' does not change status")
        return v

    @staticmethod
    def key(from_status: TicketStatus, to_status: TicketStatus) -> str:
        return f"{TicketStatus(from_status).value}:{TicketStatus(to_status).value}"

    def get(self, from_status: TicketStatus, to_status: TicketStatus) -> Optional[TransitionSpec]:
        return self.transitions.get(self.key(from_status, to_status))

    def referenced_guards(self) -> Set[str]:
        return {name for spec in self.transitions.values() for name in spec.guards}

    def referenced_actions(self) -> Set[str]:
        return {
            name
            for spec in self.transitions.values()
            for name in (*spec.before_actions, *spec.after_actions)
        }


@dataclass(frozen=True)
class AvailableTransition:
    """A status reachable from the ticket's current one."""
    status: TicketStatus
    label: str
    description: Optional[str] = None
    requires_comment: bool = False
    requires_resolution: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "label": self.label,
            "description": self.description,
            "requires_comment": self.requires_comment,
            "requires_resolution": self.requires_resolution,
        }
