"""
Automation Application Services
===============================

RuleEngine: selects the active rules for a trigger, evaluates their
conditions and applies their actions, keeping an audit trail of every
attempt.

Following SOLID principles:
- Single Responsibility: condition evaluation and action handling live
  in ConditionEvaluator and ActionExecutor
- Dependency Inversion: depends on the repository interfaces below
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from helpdesk.automation.application.actions import ActionExecutor
from helpdesk.automation.application.conditions import ConditionEvaluator
from helpdesk.automation.application.dto import (
    ActionOutcome,
    BatchResult,
    ProcessResult,
    RuleCreateDTO,
    RuleStatistics,
    RuleTestResult,
    RuleUpdateDTO,
    rule_data,
)
from helpdesk.automation.domain import (
    AutomationConfig,
    AutomationExecution,
    AutomationRule,
    RuleDefinition,
)
from helpdesk.config import AutomationTrigger
from helpdesk.core import (
    ActionExecutionException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from helpdesk.tickets.application import IUnitOfWork
from helpdesk.tickets.domain import AutomationRuleExecuted, Ticket

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAutomationRuleRepository(ABC):
    """Interface for automation rule persistence."""

    @abstractmethod
    def get_by_id(self, rule_id: int) -> Optional[AutomationRule]:
        """Get rule by ID."""

    @abstractmethod
    def list_active(self, trigger: str) -> List[AutomationRule]:
        """Active rules for a trigger, priority descending then id ascending."""

    @abstractmethod
    def list(self, trigger: Optional[str] = None) -> List[AutomationRule]:
        """All rules, optionally for one trigger, in execution order."""

    @abstractmethod
    def add(self, rule: AutomationRule) -> AutomationRule:
        """Insert a rule and assign its id."""

    @abstractmethod
    def save(self, rule: AutomationRule) -> AutomationRule:
        """Persist a rule's definition."""

    @abstractmethod
    def delete(self, rule_id: int) -> bool:
        """Delete a rule; False if it did not exist."""

    @abstractmethod
    def touch(self, rule_id: int, executed_at: datetime) -> None:
        """Update `last_executed_at`."""


class IAutomationExecutionRepository(ABC):
    """Interface for the rule execution audit log."""

    @abstractmethod
    def add(self, execution: AutomationExecution) -> AutomationExecution:
        """Append an execution record."""

    @abstractmethod
    def list_for_rule(self, rule_id: int, limit: int = 100) -> List[AutomationExecution]:
        """Most recent executions of a rule first."""

    @abstractmethod
    def delete_for_rule(self, rule_id: int) -> int:
        """Delete a rule's history; returns the number of records removed."""

    @abstractmethod
    def statistics(self, rule_id: int) -> Tuple[int, int, Optional[datetime], Optional[datetime]]:
        """Total, successful, first and last execution time."""


class IAutomationConfigProvider(ABC):
    """Interface for the automation section of the configuration."""

    @abstractmethod
    def get_automation_config(self) -> AutomationConfig:
        """Current automation configuration."""


class StaticAutomationConfigProvider(IAutomationConfigProvider):
    """Fixed configuration, for tests and embedded use."""

    def __init__(self, config: Optional[AutomationConfig] = None):
        self._config = config or AutomationConfig()

    def get_automation_config(self) -> AutomationConfig:
        return self._config


class RuleFailed(Exception):
    """An action of the rule returned False."""


# ========== Application Services ==========

class RuleEngine:
    """
    Trigger-driven rule processing.

    Each matching rule's actions run in one savepoint: the first failing
    action rolls back the rule's writes and restores the in-memory
    ticket, then the engine moves on to the next rule. Actions may
    re-enter the engine (a status change that triggers automation); the
    nesting is capped by `AutomationConfig.max_depth`.
    """

    def __init__(
        self,
        rule_repository: IAutomationRuleRepository,
        execution_repository: IAutomationExecutionRepository,
        evaluator: ConditionEvaluator,
        executor: ActionExecutor,
        unit_of_work: IUnitOfWork,
        config_provider: Optional[IAutomationConfigProvider] = None,
        events: Optional[EventDispatcher] = None,
        clock: Clock = utcnow
    ):
        self._rules = rule_repository
        self._executions = execution_repository
        self._evaluator = evaluator
        self._executor = executor
        self._uow = unit_of_work
        self._config_provider = config_provider or StaticAutomationConfigProvider()
        self._events = events or NullEventDispatcher()
        self._clock = clock
        self._depth = 0

    @property
    def config(self) -> AutomationConfig:
        return self._config_provider.get_automation_config()

    # ========== Processing ==========

    def process_ticket(self, ticket: Ticket, trigger: Union[str, AutomationTrigger]) -> ProcessResult:
        """
        Run the active rules of `trigger` against a ticket.

        Returns:
            Rule ids that executed, failed or did not match
        """
        trigger = trigger.value if isinstance(trigger, AutomationTrigger) else trigger
        result = ProcessResult()

        config = self.config
        if not config.enabled or ticket.deleted:
            return result
        if self._depth >= config.max_depth:
            logger.warning(
                "Automation depth limit reached, skipping rules",
                extra={"ticket_id": ticket.id, "trigger": trigger, "depth": self._depth}
            )
            return result

        self._depth += 1
        try:
            for rule in self._rules.list_active(trigger):
                if not self._evaluator.evaluate(rule.conditions, ticket):
                    result.skipped.append(rule.id)
                    continue

                if self._execute_rule(rule, ticket, trigger):
                    result.executed.append(rule.id)
                    if ticket.deleted:
                        logger.info(
                            "Ticket deleted by automation, stopping rule processing",
                            extra={"ticket_id": ticket.id, "rule_id": rule.id, "trigger": trigger}
                        )
                        break
                    if rule.stop_processing:
                        break
                else:
                    result.failed.append(rule.id)
        finally:
            self._depth -= 1

        logger.debug(
            "Automation processed",
            extra={"ticket_id": ticket.id, "trigger": trigger, **result.model_dump()}
        )
        return result

    def process_batch(
        self,
        tickets: Iterable[Ticket],
        trigger: Union[str, AutomationTrigger] = AutomationTrigger.BATCH
    ) -> BatchResult:
        """
        Process tickets one by one; a ticket counts as processed when at
        least one rule executed on it.
        """
        trigger = trigger.value if isinstance(trigger, AutomationTrigger) else trigger
        log = get_context_logger(__name__, str(uuid.uuid4()))
        batch = BatchResult()

        with log_latency(log, "automation_batch", trigger=trigger):
            for ticket in tickets:
                result = self.process_ticket(ticket, trigger)
                batch.details[ticket.id] = result
                if result.executed:
                    batch.processed += 1
                else:
                    batch.failed += 1

        log.info(
            "Automation batch completed",
            extra={"trigger": trigger, "processed": batch.processed, "failed": batch.failed}
        )
        return batch

    def _execute_rule(self, rule: AutomationRule, ticket: Ticket, trigger: str) -> bool:
        snapshot = ticket.snapshot()
        try:
            with self._uow.atomic():
                if not self._executor.execute_actions(rule.actions, ticket, rule.id):
                    raise RuleFailed(f"an action of rule {rule.id} did not complete")
        except Exception as e:
            ticket.restore(snapshot)
            logger.error(
                "Automation rule failed",
                extra={"rule_id": rule.id, "ticket_id": ticket.id, "trigger": trigger, "error": str(e)}
            )
            self._record(rule, ticket, trigger, success=False, error=str(e))
            return False

        executed_at = self._record(rule, ticket, trigger, success=True)
        self._rules.touch(rule.id, executed_at)
        rule.last_executed_at = executed_at

        logger.info(
            "Automation rule executed",
            extra={"rule_id": rule.id, "ticket_id": ticket.id, "trigger": trigger}
        )
        self._events.publish(AutomationRuleExecuted(
            ticket_id=ticket.id, occurred_at=executed_at, rule_id=rule.id, trigger=trigger
        ))
        return True

    def _record(
        self,
        rule: AutomationRule,
        ticket: Ticket,
        trigger: str,
        success: bool,
        error: Optional[str] = None
    ) -> datetime:
        executed_at = self._clock()
        self._executions.add(AutomationExecution(
            id=None,
            rule_id=rule.id,
            ticket_id=ticket.id,
            trigger=trigger,
            executed_at=executed_at,
            success=success,
            conditions_snapshot=rule.conditions_snapshot(),
            actions_snapshot=rule.actions_snapshot(),
            error=error,
        ))
        return executed_at

    # ========== Rule Management ==========

    def create_rule(self, data: Union[RuleCreateDTO, Dict[str, Any]]) -> AutomationRule:
        """
        Create a rule.

        Raises:
            ValidationException: malformed conditions/actions or unknown trigger
        """
        definition = self._parse(RuleCreateDTO, data)
        self._check_trigger(definition.trigger)

        now = self._clock()
        rule = AutomationRule(
            id=None,
            name=definition.name,
            description=definition.description,
            trigger=definition.trigger,
            conditions=list(definition.conditions),
            actions=list(definition.actions),
            priority=definition.priority,
            is_active=definition.is_active,
            stop_processing=definition.stop_processing,
            created_at=now,
            updated_at=now,
        )
        with self._uow.atomic():
            self._rules.add(rule)

        logger.info("Automation rule created", extra={"rule_id": rule.id, "trigger": rule.trigger})
        return rule

    def update_rule(self, rule_id: int, data: Union[RuleUpdateDTO, Dict[str, Any]]) -> AutomationRule:
        """
        Update the given fields of a rule.

        Raises:
            ResourceNotFoundException: no such rule
            ValidationException: malformed data
        """
        rule = self.get_rule(rule_id)
        update = self._parse(RuleUpdateDTO, data)
        changes = {name: getattr(update, name) for name in update.model_fields_set}

        for name in ("name", "trigger", "actions"):
            if name in changes and changes[name] is None:
                raise ValidationException(f"'{name}' cannot be null", {"field": name})
        if changes.get("trigger") is not None:
            self._check_trigger(changes["trigger"])

        for name, value in changes.items():
            if value is None and name in ("conditions", "priority", "is_active", "stop_processing"):
                continue
            setattr(rule, name, list(value) if name in ("conditions", "actions") else value)
        rule.updated_at = self._clock()

        with self._uow.atomic():
            self._rules.save(rule)

        logger.info("Automation rule updated", extra={"rule_id": rule.id, "fields": sorted(changes)})
        return rule

    def delete_rule(self, rule_id: int) -> None:
        """
        Delete a rule and its execution history.

        Raises:
            ResourceNotFoundException: no such rule
        """
        with self._uow.atomic():
            removed = self._executions.delete_for_rule(rule_id)
            if not self._rules.delete(rule_id):
                raise ResourceNotFoundException("Automation rule", rule_id)

        logger.info("Automation rule deleted", extra={"rule_id": rule_id, "executions_removed": removed})

    def get_rule(self, rule_id: int) -> AutomationRule:
        rule = self._rules.get_by_id(rule_id)
        if rule is None:
            raise ResourceNotFoundException("Automation rule", rule_id)
        return rule

    def list_rules(self, trigger: Optional[str] = None) -> List[AutomationRule]:
        return self._rules.list(trigger)

    # ========== Templates & Vocabulary ==========

    def get_triggers(self) -> Dict[str, str]:
        return dict(self.config.triggers)

    def get_rule_templates(self) -> Dict[str, RuleDefinition]:
        return dict(self.config.templates)

    def apply_template(self, template_key: str, overrides: Optional[Dict[str, Any]] = None) -> AutomationRule:
        """
        Create a rule from a configured template.

        Raises:
            ResourceNotFoundException: no such template
        """
        template = self.config.templates.get(template_key)
        if template is None:
            raise ResourceNotFoundException("Rule template", template_key)

        data = template.model_dump()
        data.update(overrides or {})
        return self.create_rule(data)

    # ========== Preview & Statistics ==========

    def test_rule(self, rule: Union[AutomationRule, int], ticket: Ticket) -> RuleTestResult:
        """
        Dry-run a rule against a ticket.

        Every action runs on its own, so one failure does not hide the
        outcome of the next. All writes are rolled back, the ticket is
        restored, domain events are dropped and webhooks and external
        notification channels are skipped. `executed` is False when any
        action failed.
        """
        if not isinstance(rule, AutomationRule):
            rule = self.get_rule(rule)

        result = RuleTestResult()
        snapshot = ticket.snapshot()
        try:
            result.conditions_met = self._evaluator.evaluate(rule.conditions, ticket)
            result.evaluated = True
            if not result.conditions_met:
                return result

            with self._uow.preview(), self._executor.external_muted():
                for spec in rule.actions:
                    result.actions_performed.append(self._preview_action(spec, ticket, rule, result))
            result.executed = not result.errors
        finally:
            ticket.restore(snapshot)

        return result

    def _preview_action(self, spec: Any, ticket: Ticket, rule: AutomationRule, result: RuleTestResult) -> ActionOutcome:
        try:
            with self._uow.atomic():
                success = self._executor.execute_action(spec, ticket, rule.id)
        except Exception as e:
            message = str(e) if isinstance(e, ActionExecutionException) else f"{spec.type}: {e}"
            result.errors.append(message)
            return ActionOutcome(type=spec.type, success=False, error=message)
        return ActionOutcome(type=spec.type, success=success)

    def get_rule_statistics(self, rule_id: int) -> RuleStatistics:
        """
        Execution statistics from the audit log.

        Raises:
            ResourceNotFoundException: no such rule
        """
        self.get_rule(rule_id)
        total, successful, first_execution, last_execution = self._executions.statistics(rule_id)
        return RuleStatistics.from_counts(total, successful, first_execution, last_execution)

    def get_rule_executions(self, rule_id: int, limit: int = 100) -> List[AutomationExecution]:
        self.get_rule(rule_id)
        return self._executions.list_for_rule(rule_id, limit)

    # ========== Internals ==========

    def _check_trigger(self, trigger: str) -> None:
        if trigger not in self.config.triggers:
            raise ValidationException(
                f"Unknown trigger '{trigger}'",
                {"trigger": trigger, "valid_triggers": sorted(self.config.triggers)}
            )

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(rule_data(data))
        except ValidationError as e:
            raise ValidationException("Invalid automation rule", {"errors": e.errors(include_url=False)}) from e
