"""
Ticket Application Services
===========================

Repository and store interfaces consumed by the core services, plus a
small TicketService that creates tickets with SLA due dates and feeds
the automation engine.

Following SOLID principles:
- Dependency Inversion: services depend on these abstractions, the
  SQLAlchemy implementations live in the infrastructure layer
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, List, Optional

from helpdesk.config import AutomationTrigger
from helpdesk.core import ResourceNotFoundException
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application.dto import CommentCreateDTO, TicketCreateDTO
from helpdesk.tickets.domain import (
    Ticket, TicketAssigned, TicketComment, TicketCreated
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket persistence."""

    @abstractmethod
    def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """Load a ticket, or None if it does not exist."""

    @abstractmethod
    def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket and assign its id."""

    @abstractmethod
    def save(self, ticket: Ticket) -> Ticket:
        """
        Persist the ticket's fields.

        Raises:
            ConcurrentModificationException: stored version differs
        """

    @abstractmethod
    def delete(self, ticket: Ticket) -> None:
        """Remove the ticket and its associations, and mark the entity deleted."""

    @abstractmethod
    def list_open(self, limit: int = 500) -> List[Ticket]:
        """Tickets whose status is not terminal, oldest first."""


class IUnitOfWork(ABC):
    """Transaction boundary for the core services."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Commit-or-rollback scope; nested scopes roll back independently."""

    @abstractmethod
    def preview(self) -> AbstractContextManager:
        """Scope that is always rolled back."""


class ITagStore(ABC):
    """Interface for ticket tags."""

    @abstractmethod
    def attach(self, ticket: Ticket, names: List[str]) -> List[str]:
        """Attach tags (created on demand); returns the names newly attached."""

    @abstractmethod
    def detach(self, ticket: Ticket, names: List[str]) -> List[str]:
        """Detach tags; returns the names actually removed."""


class ICategoryStore(ABC):
    """Interface for ticket categories."""

    @abstractmethod
    def exists(self, category_id: int) -> bool:
        """Check a category id."""

    @abstractmethod
    def attach(self, ticket: Ticket, category_id: int) -> bool:
        """Attach a category; False when already attached."""

    @abstractmethod
    def detach(self, ticket: Ticket, category_id: int) -> bool:
        """Detach a category; False when it was not attached."""


class ICommentStore(ABC):
    """Interface for ticket comments and internal notes."""

    @abstractmethod
    def add(self, comment: TicketComment) -> TicketComment:
        """Store a comment and assign its id."""

    @abstractmethod
    def list_for_ticket(self, ticket_id: int) -> List[TicketComment]:
        """Comments of a ticket, oldest first."""

    @abstractmethod
    def count_for_ticket(self, ticket_id: int) -> int:
        """Number of comments on a ticket."""


# ========== Application Services ==========

class TicketService:
    """
    Ticket lifecycle entry points outside the workflow.

    The rule engine is attached after construction since it depends on
    this context's repositories as well.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        unit_of_work: IUnitOfWork,
        tag_store: ITagStore,
        comment_store: ICommentStore,
        sla_clock: Any,
        events: Optional[EventDispatcher] = None,
        clock: Clock = utcnow
    ):
        self._tickets = ticket_repository
        self._uow = unit_of_work
        self._tags = tag_store
        self._comments = comment_store
        self._sla_clock = sla_clock
        self._events = events or NullEventDispatcher()
        self._clock = clock
        self._rule_engine = None

    def attach_rule_engine(self, rule_engine: Any) -> None:
        self._rule_engine = rule_engine

    def create_ticket(self, dto: TicketCreateDTO) -> Ticket:
        """
        Create a ticket in Open status with SLA due dates.

        Runs `ticket_created` automation once the ticket is stored.
        """
        now = self._clock()
        ticket = Ticket(
            id=None,
            subject=dto.subject,
            description=dto.description,
            priority=dto.priority,
            type=dto.type,
            customer_name=dto.customer_name,
            customer_email=dto.customer_email,
            assignee_id=dto.assignee_id,
            meta=dict(dto.meta),
            opened_at=now,
            created_at=now,
            updated_at=now,
        )

        with self._uow.atomic():
            self._sla_clock.calculate_due_dates(ticket)
            self._tickets.add(ticket)
            if dto.tags:
                self._tags.attach(ticket, dto.tags)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "priority": ticket.priority.value,
                "type": ticket.type.value,
            }
        )
        self._events.publish(TicketCreated(ticket_id=ticket.id, occurred_at=now))
        self._run_automation(ticket, AutomationTrigger.TICKET_CREATED)
        return ticket

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    def assign(self, ticket: Ticket, assignee_id: Optional[str]) -> bool:
        """Assign or release a ticket; runs `ticket_assigned` automation on change."""
        with self._uow.atomic():
            if not ticket.assign_to(assignee_id):
                return False
            ticket.updated_at = self._clock()
            self._tickets.save(ticket)

        self._events.publish(TicketAssigned(
            ticket_id=ticket.id,
            occurred_at=ticket.updated_at,
            assignee_id=ticket.assignee_id,
        ))
        self._run_automation(ticket, AutomationTrigger.TICKET_ASSIGNED)
        return True

    def add_comment(self, ticket: Ticket, dto: CommentCreateDTO) -> TicketComment:
        """
        Add a comment. A public comment by an agent counts as the first
        response when none was recorded yet.
        """
        now = self._clock()
        with self._uow.atomic():
            comment = self._comments.add(TicketComment(
                id=None,
                ticket_id=ticket.id,
                body=dto.body,
                is_internal=dto.is_internal,
                author_id=dto.author_id,
                created_at=now,
            ))
            if not dto.is_internal and dto.author_id and ticket.mark_first_response(now):
                ticket.updated_at = now
                self._tickets.save(ticket)

        self._run_automation(ticket, AutomationTrigger.COMMENT_ADDED)
        return comment

    def record_first_response(self, ticket: Ticket) -> bool:
        """Stamp the first response time; False if one was already recorded."""
        now = self._clock()
        with self._uow.atomic():
            if not ticket.mark_first_response(now):
                return False
            ticket.updated_at = now
            self._tickets.save(ticket)
        return True

    def _run_automation(self, ticket: Ticket, trigger: AutomationTrigger) -> None:
        if self._rule_engine is not None:
            self._rule_engine.process_ticket(ticket, trigger.value)
