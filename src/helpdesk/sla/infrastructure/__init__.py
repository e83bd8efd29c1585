"""
SLA Infrastructure Layer
========================

Contains:
- APScheduler wrapper for the periodic breach scan
"""

from helpdesk.sla.infrastructure.scheduler import SLAScheduler

__all__ = ["SLAScheduler"]
