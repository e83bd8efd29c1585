"""
Automation Domain Layer
=======================

Contains:
- Entities: AutomationRule, AutomationExecution
- Value Objects: ConditionClause, ActionSpec, RuleDefinition,
  ResponseTemplate, AutomationConfig

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.automation.domain.entities import AutomationExecution, AutomationRule
from helpdesk.automation.domain.value_objects import (
    ACTION_TYPES,
    CONDITION_OPERATORS,
    ActionSpec,
    AutomationConfig,
    ConditionClause,
    ResponseTemplate,
    RuleDefinition,
    parse_duration,
)

__all__ = [
    "AutomationExecution",
    "AutomationRule",
    "ACTION_TYPES",
    "CONDITION_OPERATORS",
    "ActionSpec",
    "AutomationConfig",
    "ConditionClause",
    "ResponseTemplate",
    "RuleDefinition",
    "parse_duration",
]
