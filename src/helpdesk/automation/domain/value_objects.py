"""
Automation Value Objects
========================

Typed condition clauses, action specs and rule definitions. Rule data
is parsed once, on load or on write, so unknown operators and action
types never reach evaluation.
"""

import re
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpdesk.config import DEFAULT_TRIGGERS, TicketType


# ========== Type Aliases for Literals ==========
ConditionOperator = Literal[
    "equals",
    "not_equals",
    "in",
    "not_in",
    "contains",
    "not_contains",
    "older_than",
    "newer_than",
    "is_null",
    "is_not_null",
    "starts_with",
    "ends_with",
    "greater_than",
    "less_than",
    "greater_or_equal",
    "less_or_equal",
]

ActionType = Literal[
    "assign",
    "unassign",
    "change_status",
    "change_priority",
    "add_tags",
    "remove_tags",
    "add_category",
    "remove_category",
    "add_comment",
    "notify",
    "escalate",
    "apply_template",
    "delete",
    "update_sla",
    "set_custom_field",
    "trigger_webhook",
]

CONDITION_OPERATORS = list(get_args(ConditionOperator))
ACTION_TYPES = list(get_args(ActionType))

_DURATION_PART = re.compile(r"(\d+)\s*([wdhms])")
_DURATION_FULL = re.compile(r"^(\s*\d+\s*[wdhms])+\s*$")
_DURATION_UNITS = {"w": "weeks", "d": "days", "h": "hours", "m": "minutes", "s": "seconds"}


def parse_duration(value: Union[int, float, str, timedelta]) -> timedelta:
    """
    Parse a duration.

    Bare numbers are minutes; strings may combine units, e.g. "90",
    "2h", "7d", "1w", "1h30m".

    Raises:
        ValueError: unparseable or negative
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"negative duration: {value!r}")
        return timedelta(minutes=value)

    text = str(value).strip().lower()
    if text.isdigit():
        return timedelta(minutes=int(text))
    if not _DURATION_FULL.match(text):
        raise ValueError(f"invalid duration: {value!r}")

    parts: Dict[str, int] = {}
    for amount, unit in _DURATION_PART.findall(text):
        key = _DURATION_UNITS[unit]
        parts[key] = parts.get(key, 0) + int(amount)
    return timedelta(**parts)


class ConditionClause(BaseModel):
    """`{field, operator, value}`; all clauses of a rule are ANDed."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str = Field(..., min_length=1)
    operator: ConditionOperator = "equals"
    value: Any = None

    @model_validator(mode="after")
    def validate_value(self) -> "ConditionClause":
        """List operators need a list, duration operators a duration."""
        if self.operator in ("in", "not_in") and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"operator '{self.operator}' expects a list value")
        if self.operator in ("older_than", "newer_than"):
            parse_duration(self.value)
        return self


class ActionSpec(BaseModel):
    """`{type, ...params}` interpreted by the action executor."""
    model_config = ConfigDict(frozen=True, extra="allow")

    type: ActionType

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class RuleDefinition(BaseModel):
    """Data needed to create an automation rule, also used for templates."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    trigger: str = Field(..., min_length=1)
    conditions: List[ConditionClause] = Field(default_factory=list)
    actions: List[ActionSpec] = Field(..., min_length=1)
    priority: int = 0
    is_active: bool = True
    stop_processing: bool = False


class ResponseTemplate(BaseModel):
    """Canned reply rendered with `{placeholder}` ticket variables."""
    name: str
    body: str = Field(..., min_length=1)
    ticket_type: Optional[TicketType] = None


def _default_templates() -> Dict[str, RuleDefinition]:
    data = {
        "escalate_high_priority": {
            "name": "Escalate High Priority Tickets",
            "description": "Escalate high priority tickets still open after two hours",
            "trigger": "time_based",
            "conditions": [
                {"field": "priority", "operator": "greater_or_equal", "value": "high"},
                {"field": "opened_at", "operator": "older_than", "value": "2h"},
                {"field": "status", "operator": "equals", "value": "open"},
            ],
            "actions": [
                {"type": "escalate", "level": 1, "priority": "urgent"},
            ],
            "priority": 90,
            "stop_processing": True,
        },
        "auto_tag_vip": {
            "name": "Auto-tag VIP Customers",
            "description": "Tag and prioritize VIP customer tickets",
            "trigger": "ticket_created",
            "conditions": [
                {"field": "meta.customer_type", "operator": "equals", "value": "vip"},
            ],
            "actions": [
                {"type": "add_tags", "tags": ["vip", "priority-customer"]},
                {"type": "change_priority", "priority": "high"},
                {"type": "update_sla", "first_response_minutes": 30, "resolution_minutes": 240},
            ],
            "priority": 95,
        },
        "auto_close_resolved": {
            "name": "Auto-close Resolved Tickets",
            "description": "Close resolved tickets after 7 days without activity",
            "trigger": "time_based",
            "conditions": [
                {"field": "status", "operator": "equals", "value": "resolved"},
                {"field": "updated_at", "operator": "older_than", "value": "7d"},
            ],
            "actions": [
                {"type": "change_status", "status": "closed"},
                {
                    "type": "add_comment",
                    "body": "Ticket automatically closed after 7 days of inactivity in resolved status.",
                    "internal": True,
                },
            ],
            "priority": 50,
        },
        "sla_breach_notification": {
            "name": "SLA Breach Notification",
            "description": "Notify and tag when SLA is breached",
            "trigger": "sla_breached",
            "conditions": [
                {"field": "sla_status", "operator": "equals", "value": "breached"},
            ],
            "actions": [
                {
                    "type": "notify",
                    "event": "sla_breach",
                    "message": "SLA breached for ticket #{ticket_id} ({ticket_priority}).",
                    "recipients": ["assignee"],
                },
                {"type": "add_tags", "tags": ["sla-breached"]},
            ],
            "priority": 100,
        },
    }
    return {key: RuleDefinition.model_validate(value) for key, value in data.items()}


def _default_response_templates() -> Dict[str, ResponseTemplate]:
    return {
        "welcome": ResponseTemplate(
            name="Welcome",
            body=(
                "Hello {customer_name},\n\nThank you for contacting our support team. "
                "Your ticket #{ticket_number} has been created and we will respond to you shortly."
                "\n\nBest regards,\n{agent_name}"
            ),
        ),
        "resolved": ResponseTemplate(
            name="Ticket Resolved",
            body=(
                "Hi {customer_name},\n\nYour ticket #{ticket_number} has been resolved. "
                "If you have any further questions, please don't hesitate to contact us."
                "\n\nBest regards,\n{agent_name}"
            ),
        ),
        "awaiting-response": ResponseTemplate(
            name="Awaiting Customer Response",
            body=(
                "Hi {customer_name},\n\nWe need additional information to proceed with your "
                "ticket #{ticket_number}.\n\n{message}\n\nPlease respond at your earliest convenience."
                "\n\nBest regards,\n{agent_name}"
            ),
        ),
    }


class AutomationConfig(BaseModel):
    """Automation section of the helpdesk configuration."""

    enabled: bool = True
    max_depth: int = Field(default=3, ge=1, description="Nested automation runs allowed per call chain")
    triggers: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_TRIGGERS))
    templates: Dict[str, RuleDefinition] = Field(default_factory=_default_templates)
    response_templates: Dict[str, ResponseTemplate] = Field(default_factory=_default_response_templates)

    @field_validator("triggers")
    @classmethod
    def validate_triggers(cls, v: Dict[str, str]) -> Dict[str, str]:
        if not v:
            raise ValueError("at least one trigger is required")
        return v

    @field_validator("templates")
    @classmethod
    def extend_rule_templates(cls, v: Dict[str, RuleDefinition]) -> Dict[str, RuleDefinition]:
        """Configured rule templates extend or replace the built-in ones."""
        return {**_default_templates(), **v}

    @field_validator("response_templates")
    @classmethod
    def extend_response_templates(cls, v: Dict[str, ResponseTemplate]) -> Dict[str, ResponseTemplate]:
        """Configured response templates extend or replace the built-in ones."""
        return {**_default_response_templates(), **v}

    @model_validator(mode="after")
    def validate_template_triggers(self) -> "AutomationConfig":
        """Templates may only use triggers from the vocabulary."""
        for key, template in self.templates.items():
            if template.trigger not in self.triggers:
                raise ValueError(f"template '{key}' uses unknown trigger '{template.trigger}'")
        return self
