"""
Automation Module
=================

Bounded context for trigger-driven automation rules.

Follows Clean Architecture:
- domain/: Rules, execution records, condition/action value objects
- application/: ConditionEvaluator, ActionExecutor, RuleEngine
- infrastructure/: SQLAlchemy models and repositories
"""
