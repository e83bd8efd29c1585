"""
Workflow Domain Layer
=====================

Contains:
- Entities: WorkflowDefinition, TransitionSpec, AvailableTransition
- Guard and TransitionAction interfaces with built-in implementations
- The default workflow table

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.workflow.domain.actions import (
    CallableAction, MarkFirstResponseAction, TransitionAction
)
from helpdesk.workflow.domain.defaults import DEFAULT_WORKFLOW_DATA, default_workflow
from helpdesk.workflow.domain.entities import (
    AvailableTransition, TransitionSpec, WorkflowDefinition
)
from helpdesk.workflow.domain.guards import (
    CallableGuard, CanReopenGuard, Guard, MustBeAssignedGuard
)

__all__ = [
    "CallableAction",
    "MarkFirstResponseAction",
    "TransitionAction",
    "DEFAULT_WORKFLOW_DATA",
    "default_workflow",
    "AvailableTransition",
    "TransitionSpec",
    "WorkflowDefinition",
    "CallableGuard",
    "CanReopenGuard",
    "Guard",
    "MustBeAssignedGuard",
]
