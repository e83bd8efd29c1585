"""
SLA Application Layer
=====================

Contains:
- Configuration provider interface
- SlaClock and SlaMonitor services
"""

from helpdesk.sla.application.services import (
    ISLAConfigProvider,
    SlaClock,
    SlaMonitor,
    StaticSLAConfigProvider,
)

__all__ = [
    "ISLAConfigProvider",
    "SlaClock",
    "SlaMonitor",
    "StaticSLAConfigProvider",
]
