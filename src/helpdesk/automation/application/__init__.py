"""
Automation Application Layer
============================

Contains:
- ConditionEvaluator: matches rule conditions against tickets
- ActionExecutor: applies rule actions
- RuleEngine: rule CRUD, processing and execution bookkeeping
- DTOs: rule input and processing results
"""

from helpdesk.automation.application.actions import (
    WEBHOOK_TIMEOUT_SECONDS,
    ActionExecutor,
    render_placeholders,
    ticket_variables,
    webhook_payload,
)
from helpdesk.automation.application.conditions import ConditionEvaluator
from helpdesk.automation.application.dto import (
    ActionOutcome,
    BatchResult,
    ProcessResult,
    RuleCreateDTO,
    RuleStatistics,
    RuleTestResult,
    RuleUpdateDTO,
)
from helpdesk.automation.application.services import (
    IAutomationConfigProvider,
    IAutomationExecutionRepository,
    IAutomationRuleRepository,
    RuleEngine,
    StaticAutomationConfigProvider,
)

__all__ = [
    "WEBHOOK_TIMEOUT_SECONDS",
    "ActionExecutor",
    "render_placeholders",
    "ticket_variables",
    "webhook_payload",
    "ConditionEvaluator",
    "ActionOutcome",
    "BatchResult",
    "ProcessResult",
    "RuleCreateDTO",
    "RuleStatistics",
    "RuleTestResult",
    "RuleUpdateDTO",
    "IAutomationConfigProvider",
    "IAutomationExecutionRepository",
    "IAutomationRuleRepository",
    "RuleEngine",
    "StaticAutomationConfigProvider",
]
