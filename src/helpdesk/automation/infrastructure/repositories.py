"""
Automation Infrastructure Repositories
======================================

SQLAlchemy implementations of the automation rule and execution
repositories.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from helpdesk.automation.application import (
    IAutomationExecutionRepository, IAutomationRuleRepository
)
from helpdesk.automation.domain import (
    ActionSpec, AutomationExecution, AutomationRule, ConditionClause
)
from helpdesk.automation.infrastructure.models import (
    AutomationExecutionModel, AutomationRuleModel
)
from helpdesk.core import RepositoryException
from helpdesk.shared.clock import ensure_aware


class SQLAlchemyAutomationRuleRepository(IAutomationRuleRepository):
    """SQLAlchemy implementation of automation rule repository."""

    def __init__(self, session: Session):
        self._session = session

    def get_by_id(self, rule_id: int) -> Optional[AutomationRule]:
        model = self._session.get(AutomationRuleModel, rule_id, populate_existing=True)
        if model is None:
            return None
        return self._to_entity(model)

    def list_active(self, trigger: str) -> List[AutomationRule]:
        stmt = (
            select(AutomationRuleModel)
            .where(AutomationRuleModel.trigger == trigger, AutomationRuleModel.is_active.is_(True))
            .order_by(AutomationRuleModel.priority.desc(), AutomationRuleModel.id.asc())
        )
        return [self._to_entity(model) for model in self._session.execute(stmt).scalars().all()]

    def list(self, trigger: Optional[str] = None) -> List[AutomationRule]:
        stmt = select(AutomationRuleModel).order_by(
            AutomationRuleModel.priority.desc(), AutomationRuleModel.id.asc()
        )
        if trigger is not None:
            stmt = stmt.where(AutomationRuleModel.trigger == trigger)
        return [self._to_entity(model) for model in self._session.execute(stmt).scalars().all()]

    def add(self, rule: AutomationRule) -> AutomationRule:
        model = AutomationRuleModel(**self._to_values(rule))
        self._session.add(model)
        self._session.flush()
        rule.id = model.id
        return rule

    def save(self, rule: AutomationRule) -> AutomationRule:
        result = self._session.execute(
            update(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule.id)
            .values(**self._to_values(rule))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RepositoryException(f"Automation rule {rule.id} not found")
        return rule

    def delete(self, rule_id: int) -> bool:
        result = self._session.execute(
            delete(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def touch(self, rule_id: int, executed_at: datetime) -> None:
        self._session.execute(
            update(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule_id)
            .values(last_executed_at=executed_at)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _to_values(rule: AutomationRule) -> dict:
        return {
            "name": rule.name,
            "description": rule.description,
            "trigger": rule.trigger,
            "conditions": rule.conditions_snapshot(),
            "actions": rule.actions_snapshot(),
            "priority": rule.priority,
            "is_active": rule.is_active,
            "stop_processing": rule.stop_processing,
            "last_executed_at": rule.last_executed_at,
            "created_at": rule.created_at,
            "updated_at": rule.updated_at,
        }

    @staticmethod
    def _to_entity(model: AutomationRuleModel) -> AutomationRule:
        try:
            conditions = [ConditionClause.model_validate(item) for item in model.conditions or []]
            actions = [ActionSpec.model_validate(item) for item in model.actions or []]
        except ValidationError as e:
            raise RepositoryException(f"Stored automation rule {model.id} is malformed: {e}") from e

        return AutomationRule(
            id=model.id,
            name=model.name,
            description=model.description,
            trigger=model.trigger,
            conditions=conditions,
            actions=actions,
            priority=model.priority,
            is_active=model.is_active,
            stop_processing=model.stop_processing,
            last_executed_at=ensure_aware(model.last_executed_at),
            created_at=ensure_aware(model.created_at),
            updated_at=ensure_aware(model.updated_at),
        )


class SQLAlchemyAutomationExecutionRepository(IAutomationExecutionRepository):
    """Append-only execution log."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, execution: AutomationExecution) -> AutomationExecution:
        model = AutomationExecutionModel(
            rule_id=execution.rule_id,
            ticket_id=execution.ticket_id,
            trigger=execution.trigger,
            executed_at=execution.executed_at,
            success=execution.success,
            conditions=list(execution.conditions_snapshot),
            actions=list(execution.actions_snapshot),
            error=execution.error,
        )
        self._session.add(model)
        self._session.flush()
        return self._to_entity(model)

    def list_for_rule(self, rule_id: int, limit: int = 100) -> List[AutomationExecution]:
        stmt = (
            select(AutomationExecutionModel)
            .where(AutomationExecutionModel.rule_id == rule_id)
            .order_by(AutomationExecutionModel.executed_at.desc(), AutomationExecutionModel.id.desc())
            .limit(limit)
        )
        return [self._to_entity(model) for model in self._session.execute(stmt).scalars().all()]

    def delete_for_rule(self, rule_id: int) -> int:
        result = self._session.execute(
            delete(AutomationExecutionModel)
            .where(AutomationExecutionModel.rule_id == rule_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def statistics(self, rule_id: int) -> Tuple[int, int, Optional[datetime], Optional[datetime]]:
        stmt = select(
            func.count(AutomationExecutionModel.id),
            func.coalesce(func.sum(case((AutomationExecutionModel.success.is_(True), 1), else_=0)), 0),
            func.min(AutomationExecutionModel.executed_at),
            func.max(AutomationExecutionModel.executed_at),
        ).where(AutomationExecutionModel.rule_id == rule_id)

        total, successful, first_execution, last_execution = self._session.execute(stmt).one()
        return (
            int(total),
            int(successful),
            ensure_aware(first_execution),
            ensure_aware(last_execution),
        )

    @staticmethod
    def _to_entity(model: AutomationExecutionModel) -> AutomationExecution:
        return AutomationExecution(
            id=model.id,
            rule_id=model.rule_id,
            ticket_id=model.ticket_id,
            trigger=model.trigger,
            executed_at=ensure_aware(model.executed_at),
            success=model.success,
            conditions_snapshot=list(model.conditions or []),
            actions_snapshot=list(model.actions or []),
            error=model.error,
        )
