"""
SLA Value Objects
=================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpdesk.config import SlaMilestoneStatus, TicketPriority, TicketType


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA time arithmetic in one place.
    The current time is always passed in.
    """

    @staticmethod
    def calculate_deadline(opened_at: datetime, sla_minutes: int) -> datetime:
        """Deadline = open time + allotted minutes."""
        return opened_at + timedelta(minutes=sla_minutes)

    @staticmethod
    def milestone_status(
        due_at: datetime,
        reached_at: Optional[datetime]
    ) -> SlaMilestoneStatus:
        """
        Status of a milestone.

        Returns:
            MET if reached on or before the deadline, BREACHED if reached
            later, PENDING while not reached
        """
        if reached_at is None:
            return SlaMilestoneStatus.PENDING
        if reached_at <= due_at:
            return SlaMilestoneStatus.MET
        return SlaMilestoneStatus.BREACHED

    @staticmethod
    def compliance_percentage(
        opened_at: datetime,
        due_at: datetime,
        current_time: datetime,
        reached_at: Optional[datetime] = None
    ) -> float:
        """
        Share of the allotted time still left, clamped to [0, 100].

        Elapsed time runs until the milestone was reached, or until
        `current_time` while it is pending.
        """
        total = (due_at - opened_at).total_seconds()
        if total <= 0:
            return 0.0

        used = ((reached_at or current_time) - opened_at).total_seconds()
        percentage = (1 - used / total) * 100
        return round(max(0.0, min(100.0, percentage)), 2)

    @staticmethod
    def consumed_percentage(
        opened_at: datetime,
        due_at: datetime,
        current_time: datetime
    ) -> float:
        """Share of the allotted time already used, not clamped above 100."""
        total = (due_at - opened_at).total_seconds()
        if total <= 0:
            return 100.0
        return max(0.0, (current_time - opened_at).total_seconds() / total * 100)


class SlaTarget(BaseModel):
    """Allotted minutes for first response and resolution."""
    model_config = ConfigDict(frozen=True)

    first_response: Optional[int] = Field(default=None, ge=0, description="Minutes to first response")
    resolution: Optional[int] = Field(default=None, ge=0, description="Minutes to resolution")


def _default_rules() -> Dict[TicketPriority, SlaTarget]:
    return {
        TicketPriority.URGENT: SlaTarget(first_response=30, resolution=240),
        TicketPriority.HIGH: SlaTarget(first_response=120, resolution=480),
        TicketPriority.NORMAL: SlaTarget(first_response=240, resolution=1440),
        TicketPriority.LOW: SlaTarget(first_response=480, resolution=2880),
    }


def _default_overrides() -> Dict[TicketType, Dict[TicketPriority, SlaTarget]]:
    return {
        TicketType.COMMERCIAL: {
            TicketPriority.HIGH: SlaTarget(first_response=60, resolution=240),
        },
    }


class SLAConfig(BaseModel):
    """
    SLA rule table loaded from YAML.

    A type+priority override takes precedence over the priority rule.
    Keys outside the ticket priority/type vocabularies are rejected.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Compute due dates at all")
    rules: Dict[TicketPriority, SlaTarget] = Field(
        default_factory=_default_rules,
        description="SLA targets in minutes by priority"
    )
    type_overrides: Dict[TicketType, Dict[TicketPriority, SlaTarget]] = Field(
        default_factory=_default_overrides,
        description="SLA targets by ticket type, then priority"
    )
    warning_thresholds: List[int] = Field(
        default_factory=lambda: [75, 90],
        description="Percent of allotted time consumed that counts as approaching"
    )

    @field_validator("warning_thresholds")
    @classmethod
    def validate_thresholds(cls, v: List[int]) -> List[int]:
        """Thresholds must be percentages; kept sorted ascending."""
        for threshold in v:
            if not 0 < threshold <= 100:
                raise ValueError(f"warning threshold {threshold} must be in (0, 100]")
        return sorted(v)

    def get_target(self, ticket_type: TicketType, priority: TicketPriority) -> Optional[SlaTarget]:
        """Resolve the target for a ticket, or None when no rule applies."""
        override = self.type_overrides.get(TicketType(ticket_type), {}).get(TicketPriority(priority))
        if override is not None:
            return override
        return self.rules.get(TicketPriority(priority))
