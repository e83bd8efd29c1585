"""Built-in workflow used when the configuration does not define `default`."""

from helpdesk.workflow.domain.entities import WorkflowDefinition

DEFAULT_WORKFLOW_DATA = {
    "name": "default",
    "label": "Default Helpdesk Workflow",
    "transitions": {
        "open:in_progress": {
            "description": "Start working on the ticket",
            "guards": ["must_be_assigned"],
            "after_actions": ["mark_first_response"],
        },
        "open:pending": {
            "description": "Waiting for customer response",
            "requires_comment": True,
        },
        "open:resolved": {
            "description": "Mark as resolved",
            "requires_resolution": True,
            "after_actions": ["send_resolution_notification"],
        },
        "open:closed": {
            "description": "Close without resolution",
            "requires_comment": True,
        },
        "open:cancelled": {
            "description": "Cancel the request",
            "requires_comment": True,
        },
        "in_progress:pending": {
            "description": "Waiting for customer response",
            "requires_comment": True,
        },
        "in_progress:resolved": {
            "description": "Mark as resolved",
            "requires_resolution": True,
            "after_actions": ["send_resolution_notification"],
        },
        "in_progress:on_hold": {
            "description": "Put on hold",
            "requires_comment": True,
        },
        "pending:open": {
            "description": "Customer responded",
            "triggers_automation": True,
        },
        "pending:in_progress": {
            "description": "Resume work",
            "guards": ["must_be_assigned"],
        },
        "pending:resolved": {
            "description": "Mark as resolved",
            "requires_resolution": True,
        },
        "pending:cancelled": {
            "description": "Cancel the request",
            "requires_comment": True,
        },
        "on_hold:in_progress": {
            "description": "Resume work",
            "guards": ["must_be_assigned"],
        },
        "on_hold:closed": {
            "description": "Close ticket",
            "requires_comment": True,
        },
        "on_hold:cancelled": {
            "description": "Cancel the request",
            "requires_comment": True,
        },
        "resolved:closed": {
            "description": "Close resolved ticket",
            "after_actions": ["request_rating"],
        },
        "resolved:open": {
            "description": "Reopen ticket",
            "requires_comment": True,
            "after_actions": ["notify_reopened"],
        },
        "closed:open": {
            "description": "Reopen closed ticket",
            "requires_comment": True,
            "guards": ["can_reopen"],
            "after_actions": ["notify_reopened"],
        },
    },
}


def default_workflow() -> WorkflowDefinition:
    return WorkflowDefinition.model_validate(DEFAULT_WORKFLOW_DATA)
