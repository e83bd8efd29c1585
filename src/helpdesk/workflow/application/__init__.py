"""
Workflow Application Layer
==========================

Contains:
- StatusTransitionEngine
- Built-in guard and action factories
"""

from helpdesk.workflow.application.actions import (
    NotificationAction,
    default_actions,
    default_guards,
)
from helpdesk.workflow.application.services import StatusTransitionEngine

__all__ = [
    "NotificationAction",
    "default_actions",
    "default_guards",
    "StatusTransitionEngine",
]
