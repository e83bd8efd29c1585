"""
Automation Infrastructure Layer
===============================

Contains:
- SQLAlchemy ORM models for rules and executions
- Repository implementations
"""

from helpdesk.automation.infrastructure.repositories import (
    SQLAlchemyAutomationExecutionRepository,
    SQLAlchemyAutomationRuleRepository,
)

__all__ = [
    "SQLAlchemyAutomationExecutionRepository",
    "SQLAlchemyAutomationRuleRepository",
]
