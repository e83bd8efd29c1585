"""
Helpdesk Configuration Document
===============================

Pydantic model of the YAML document holding the domain configuration:
SLA rule table, named workflows, automation settings and notification
switches. Parsing the document validates every part of it, so a bad
status, operator or action type is rejected at load time.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field, model_validator

from helpdesk.automation.domain import AutomationConfig
from helpdesk.sla.domain import SLAConfig
from helpdesk.workflow.domain import WorkflowDefinition


class HelpdeskConfig(BaseModel):
    """Root of the helpdesk YAML configuration."""

    sla: SLAConfig = Field(default_factory=SLAConfig)
    workflows: Dict[str, WorkflowDefinition] = Field(default_factory=dict)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    notifications: Dict[str, bool] = Field(
        default_factory=dict,
        description="Notification events switched on or off; unlisted events are on"
    )

    @model_validator(mode="before")
    @classmethod
    def normalize_document(cls, data: Any) -> Any:
        """Name workflows after their keys; accept top-level response templates."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        workflows = data.get("workflows") or {}
        if isinstance(workflows, dict):
            named = {}
            for name, definition in workflows.items():
                if isinstance(definition, dict):
                    definition = {**definition, "name": name}
                named[name] = definition
            data["workflows"] = named

        templates = data.pop("response_templates", None)
        if templates:
            automation = dict(data.get("automation") or {})
            automation["response_templates"] = {
                **templates, **(automation.get("response_templates") or {})
            }
            data["automation"] = automation

        return data
