"""
Workflow Application Services
=============================

StatusTransitionEngine: a named, pluggable, guarded state machine over
ticket status.

A transition runs inside one unit of work: before-actions, the status
change, persistence, after-actions and the optional automation run
either all commit or all roll back, including the in-memory ticket.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from helpdesk.config import AutomationTrigger, TicketStatus
from helpdesk.core import (
    ConfigurationException,
    InvalidTransitionException,
    ResourceNotFoundException,
    UnknownGuardOrActionException,
)
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import ITicketRepository, IUnitOfWork
from helpdesk.tickets.domain import Ticket, TicketStatusChanged
from helpdesk.workflow.domain import (
    AvailableTransition,
    CallableAction,
    CallableGuard,
    Guard,
    TransitionAction,
    TransitionSpec,
    WorkflowDefinition,
    default_workflow,
)

logger = get_logger(__name__)

GuardLike = Union[Guard, Callable[[Ticket, TicketStatus, TicketStatus], bool]]
ActionLike = Union[TransitionAction, Callable[[Ticket, TicketStatus, TicketStatus], None]]


class StatusTransitionEngine:
    """
    Guarded finite-state machine over ticket status.

    Guards and actions are injected at construction; workflows refer to
    them by name and are validated against them when registered.
    """

    DEFAULT_WORKFLOW = "default"

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        unit_of_work: IUnitOfWork,
        guards: Iterable[Guard] = (),
        actions: Iterable[TransitionAction] = (),
        workflows: Optional[Mapping[str, WorkflowDefinition]] = None,
        events: Optional[EventDispatcher] = None,
        clock: Clock = utcnow
    ):
        self._tickets = ticket_repository
        self._uow = unit_of_work
        self._events = events or NullEventDispatcher()
        self._clock = clock
        self._rule_engine: Optional[Any] = None

        self._guards: Dict[str, Guard] = {guard.name: guard for guard in guards}
        self._actions: Dict[str, TransitionAction] = {action.name: action for action in actions}
        self._workflows: Dict[str, WorkflowDefinition] = {}

        workflows = dict(workflows or {})
        workflows.setdefault(self.DEFAULT_WORKFLOW, default_workflow())
        for name, definition in workflows.items():
            self.register_workflow(name, definition)

    def attach_rule_engine(self, rule_engine: Any) -> None:
        """Rule engine invoked by transitions flagged `triggers_automation`."""
        self._rule_engine = rule_engine

    # ========== Registration ==========

    def register_workflow(self, name: str, definition: Union[WorkflowDefinition, dict]) -> WorkflowDefinition:
        """
        Register (or replace) a named workflow.

        Raises:
            ConfigurationException: the definition is malformed
            UnknownGuardOrActionException: it names an unregistered guard/action
        """
        if not isinstance(definition, WorkflowDefinition):
            try:
                definition = WorkflowDefinition.model_validate({**definition, "name": name})
            except ValidationError as e:
                raise ConfigurationException(
                    f"Invalid workflow '{name}'",
                    {"workflow": name, "errors": e.errors(include_url=False)}
                ) from e

        for guard_name in sorted(definition.referenced_guards()):
            if guard_name not in self._guards:
                raise UnknownGuardOrActionException("guard", guard_name, name)
        for action_name in sorted(definition.referenced_actions()):
            if action_name not in self._actions:
                raise UnknownGuardOrActionException("action", action_name, name)

        self._workflows[name] = definition
        logger.info(
            "Workflow registered",
            extra={"workflow": name, "transitions": len(definition.transitions)}
        )
        return definition

    def register_guard(self, name: str, guard: GuardLike) -> None:
        """Register a guard; the last registration for a name wins."""
        if not isinstance(guard, Guard):
            guard = CallableGuard(name, guard)
        self._guards[name] = guard

    def register_action(self, name: str, action: ActionLike) -> None:
        """Register an action; the last registration for a name wins."""
        if not isinstance(action, TransitionAction):
            action = CallableAction(name, action)
        self._actions[name] = action

    def get_workflow(self, name: str = DEFAULT_WORKFLOW) -> WorkflowDefinition:
        workflow = self._workflows.get(name)
        if workflow is None:
            raise ResourceNotFoundException("Workflow", name)
        return workflow

    @property
    def workflow_names(self) -> List[str]:
        return sorted(self._workflows)

    # ========== Queries ==========

    def can_transition(
        self,
        ticket: Ticket,
        to_status: TicketStatus,
        workflow_name: str = DEFAULT_WORKFLOW
    ) -> bool:
        """True when the `current:to` key exists and every guard passes."""
        workflow = self.get_workflow(workflow_name)
        return self._rejection(ticket, TicketStatus(to_status), workflow) is None

    def get_available_transitions(
        self,
        ticket: Ticket,
        workflow_name: str = DEFAULT_WORKFLOW
    ) -> List[AvailableTransition]:
        """Statuses reachable from the current one, in vocabulary order."""
        workflow = self.get_workflow(workflow_name)
        available = []
        for status in TicketStatus:
            if status == ticket.status:
                continue
            if self._rejection(ticket, status, workflow) is not None:
                continue
            spec = workflow.get(ticket.status, status)
            available.append(AvailableTransition(
                status=status,
                label=status.label,
                description=spec.description,
                requires_comment=spec.requires_comment,
                requires_resolution=spec.requires_resolution,
            ))
        return available

    # ========== Commands ==========

    def transition(
        self,
        ticket: Ticket,
        to_status: TicketStatus,
        workflow_name: str = DEFAULT_WORKFLOW,
        strict: bool = False
    ) -> bool:
        """
        Move the ticket to `to_status`.

        Returns:
            True on success; False when not permitted or already there

        Raises:
            InvalidTransitionException: not permitted and `strict` is set
            ConcurrentModificationException: the ticket changed underneath
        """
        to_status = TicketStatus(to_status)
        workflow = self.get_workflow(workflow_name)
        from_status = ticket.status

        rejection = self._rejection(ticket, to_status, workflow)
        if rejection is not None:
            reason, guard_name = rejection
            self._log_rejection(ticket, from_status, to_status, workflow_name, reason, guard_name)
            if strict:
                raise InvalidTransitionException(
                    ticket.id, from_status.value, to_status.value, reason, guard_name
                )
            return False

        spec = workflow.get(from_status, to_status)
        snapshot = ticket.snapshot()
        try:
            with self._uow.atomic():
                self._apply(ticket, spec, from_status, to_status)
        except Exception as e:
            ticket.restore(snapshot)
            logger.error(
                "Ticket transition failed",
                extra={
                    "ticket_id": ticket.id,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "workflow": workflow_name,
                    "error": str(e),
                }
            )
            raise

        if ticket.deleted:
            logger.info(
                "Ticket deleted during transition",
                extra={"ticket_id": ticket.id, "from_status": from_status.value, "to_status": to_status.value}
            )
            return False

        logger.info(
            "Ticket transitioned",
            extra={
                "ticket_id": ticket.id,
                "from_status": from_status.value,
                "to_status": to_status.value,
                "workflow": workflow_name,
            }
        )
        self._events.publish(TicketStatusChanged(
            ticket_id=ticket.id,
            occurred_at=self._clock(),
            from_status=from_status,
            to_status=to_status,
            workflow=workflow_name,
        ))
        return True

    # ========== Internals ==========

    def _apply(
        self,
        ticket: Ticket,
        spec: TransitionSpec,
        from_status: TicketStatus,
        to_status: TicketStatus
    ) -> None:
        self._run_actions(spec.before_actions, ticket, from_status, to_status)
        if ticket.deleted:
            return

        ticket.status = to_status
        if to_status.is_terminal:
            ticket.closed_at = self._clock()
            ticket.mark_resolution()
        elif from_status.is_terminal:
            ticket.closed_at = None

        self._tickets.save(ticket)

        if spec.after_actions:
            self._run_actions(spec.after_actions, ticket, from_status, to_status)
            if not ticket.deleted:
                self._tickets.save(ticket)

        if spec.triggers_automation and self._rule_engine is not None:
            self._rule_engine.process_ticket(ticket, AutomationTrigger.TICKET_STATUS_CHANGED.value)

    def _run_actions(
        self,
        names: List[str],
        ticket: Ticket,
        from_status: TicketStatus,
        to_status: TicketStatus
    ) -> None:
        for name in names:
            action = self._actions.get(name)
            if action is None:
                raise UnknownGuardOrActionException("action", name)
            action.run(ticket, from_status, to_status)

    def _rejection(
        self,
        ticket: Ticket,
        to_status: TicketStatus,
        workflow: WorkflowDefinition
    ) -> Optional[Tuple[str, Optional[str]]]:
        """Reason and guard name when the transition is not permitted."""
        if ticket.deleted:
            return InvalidTransitionException.TICKET_DELETED, None
        if ticket.status == to_status:
            return InvalidTransitionException.ALREADY_IN_STATUS, None

        spec = workflow.get(ticket.status, to_status)
        if spec is None:
            return InvalidTransitionException.NOT_DEFINED, None

        for name in spec.guards:
            guard = self._guards.get(name)
            if guard is None:
                raise UnknownGuardOrActionException("guard", name, workflow.name)
            if not guard.allows(ticket, ticket.status, to_status):
                return InvalidTransitionException.GUARD_REJECTED, name

        return None

    @staticmethod
    def _log_rejection(ticket, from_status, to_status, workflow_name, reason, guard_name) -> None:
        context = {
            "ticket_id": ticket.id,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "workflow": workflow_name,
            "reason": reason,
        }
        if reason == InvalidTransitionException.ALREADY_IN_STATUS:
            logger.info("Ticket already in requested status", extra=context)
        else:
            logger.warning("Ticket transition rejected", extra={**context, "guard": guard_name})
