"""
SLA Domain Entities
===================

Compliance reports produced by the SLA clock.
"""

from dataclasses import dataclass, field
from typing import Optional

from helpdesk.config import SlaMilestoneStatus


@dataclass
class MilestoneCompliance:
    """
    Compliance of one SLA milestone (first response or resolution).

    `percentage` is None when the ticket has no due date for the milestone.
    """
    status: SlaMilestoneStatus = SlaMilestoneStatus.PENDING
    percentage: Optional[float] = None
    overdue: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "percentage": self.percentage,
            "overdue": self.overdue,
        }


@dataclass
class SlaCompliance:
    """Compliance of both milestones of a ticket."""
    first_response: MilestoneCompliance = field(default_factory=MilestoneCompliance)
    resolution: MilestoneCompliance = field(default_factory=MilestoneCompliance)

    @property
    def is_breached(self) -> bool:
        return (
            self.first_response.status == SlaMilestoneStatus.BREACHED
            or self.resolution.status == SlaMilestoneStatus.BREACHED
            or self.first_response.overdue
            or self.resolution.overdue
        )

    def to_dict(self) -> dict:
        return {
            "first_response": self.first_response.to_dict(),
            "resolution": self.resolution.to_dict(),
        }
