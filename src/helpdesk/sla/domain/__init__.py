"""
SLA Domain Layer
================

Contains:
- Value Objects: SLAConfig, SlaTarget, SLACalculator
- Entities: SlaCompliance, MilestoneCompliance

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.entities import MilestoneCompliance, SlaCompliance
from helpdesk.sla.domain.value_objects import SLACalculator, SLAConfig, SlaTarget

__all__ = [
    "MilestoneCompliance",
    "SlaCompliance",
    "SLACalculator",
    "SLAConfig",
    "SlaTarget",
]
