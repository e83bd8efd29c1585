"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of the ticket interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from helpdesk.config import TERMINAL_STATUSES
from helpdesk.core import ConcurrentModificationException, RepositoryException
from helpdesk.shared.clock import Clock, ensure_aware, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.tickets.application import (
    ICategoryStore, ICommentStore, ITagStore, ITicketRepository, IUnitOfWork
)
from helpdesk.tickets.domain import Ticket, TicketComment
from helpdesk.tickets.infrastructure.models import (
    CategoryModel, CommentModel, TagModel, TicketModel,
    ticket_categories, ticket_tags
)

_DATETIME_FIELDS = (
    "opened_at", "closed_at", "created_at", "updated_at",
    "first_response_at", "first_response_due_at", "resolution_due_at",
)


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Updates are guarded by the `version` column: a save only succeeds
    against the version the entity was loaded with.
    """

    def __init__(self, session: Session, clock: Clock = utcnow):
        self._session = session
        self._clock = clock

    def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID, always reading the current row."""
        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            return None
        return self._to_entity(model)

    def add(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        if ticket.id is not None:
            raise RepositoryException(f"Ticket {ticket.id} already persisted")

        now = self._clock()
        ticket.created_at = ticket.created_at or now
        ticket.updated_at = ticket.updated_at or now
        ticket.version = 1

        model = TicketModel(**self._to_values(ticket), version=ticket.version)
        self._session.add(model)
        self._session.flush()

        ticket.id = model.id
        return ticket

    def save(self, ticket: Ticket) -> Ticket:
        """Update existing ticket, bumping its version."""
        if ticket.id is None:
            raise RepositoryException("Cannot save a ticket that was never added")

        ticket.updated_at = self._clock()
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket.id, TicketModel.version == ticket.version)
            .values(**self._to_values(ticket), version=ticket.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount == 0:
            raise ConcurrentModificationException("Ticket", ticket.id, ticket.version)

        ticket.version += 1
        return ticket

    def delete(self, ticket: Ticket) -> None:
        """Delete ticket with its tags, categories and comments."""
        self._session.execute(delete(ticket_tags).where(ticket_tags.c.ticket_id == ticket.id))
        self._session.execute(delete(ticket_categories).where(ticket_categories.c.ticket_id == ticket.id))
        self._session.execute(delete(CommentModel).where(CommentModel.ticket_id == ticket.id))
        result = self._session.execute(
            delete(TicketModel)
            .where(TicketModel.id == ticket.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RepositoryException(f"Ticket {ticket.id} not found")
        ticket.deleted = True

    def list_open(self, limit: int = 500) -> List[Ticket]:
        """List non-terminal tickets, oldest first."""
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.not_in([s.value for s in TERMINAL_STATUSES]))
            .order_by(TicketModel.opened_at.asc(), TicketModel.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(model) for model in self._session.execute(stmt).scalars().all()]

    # ========== Mapping ==========

    @staticmethod
    def _to_values(ticket: Ticket) -> dict:
        return {
            "subject": ticket.subject,
            "description": ticket.description,
            "status": ticket.status.value,
            "priority": ticket.priority.value,
            "type": ticket.type.value,
            "customer_name": ticket.customer_name,
            "customer_email": ticket.customer_email,
            "assignee_id": ticket.assignee_id,
            "meta": dict(ticket.meta),
            "opened_at": ticket.opened_at,
            "closed_at": ticket.closed_at,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
            "first_response_at": ticket.first_response_at,
            "first_response_due_at": ticket.first_response_due_at,
            "resolution_due_at": ticket.resolution_due_at,
            "sla_breached": ticket.sla_breached,
            "sla_breach_type": ticket.sla_breach_type.value if ticket.sla_breach_type else None,
            "response_time_minutes": ticket.response_time_minutes,
            "resolution_time_minutes": ticket.resolution_time_minutes,
        }

    def _to_entity(self, model: TicketModel) -> Ticket:
        tags = self._session.execute(
            select(TagModel.name)
            .join(ticket_tags, ticket_tags.c.tag_id == TagModel.id)
            .where(ticket_tags.c.ticket_id == model.id)
            .order_by(TagModel.name)
        ).scalars().all()
        category_ids = self._session.execute(
            select(ticket_categories.c.category_id)
            .where(ticket_categories.c.ticket_id == model.id)
            .order_by(ticket_categories.c.category_id)
        ).scalars().all()

        timestamps = {name: ensure_aware(getattr(model, name)) for name in _DATETIME_FIELDS}
        return Ticket(
            id=model.id,
            subject=model.subject,
            description=model.description,
            status=model.status,
            priority=model.priority,
            type=model.type,
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            assignee_id=model.assignee_id,
            meta=dict(model.meta or {}),
            tags=list(tags),
            category_ids=list(category_ids),
            sla_breached=model.sla_breached,
            sla_breach_type=model.sla_breach_type,
            response_time_minutes=model.response_time_minutes,
            resolution_time_minutes=model.resolution_time_minutes,
            version=model.version,
            **timestamps,
        )


class SQLAlchemyTagStore(ITagStore):
    """Tags are created on first use and linked through `ticket_tags`."""

    def __init__(self, session: Session):
        self._session = session

    def attach(self, ticket: Ticket, names: List[str]) -> List[str]:
        attached = []
        for name in names:
            if name in ticket.tags:
                continue
            tag_id = self._get_or_create(name)
            self._session.execute(insert(ticket_tags).values(ticket_id=ticket.id, tag_id=tag_id))
            ticket.tags.append(name)
            attached.append(name)
        return attached

    def detach(self, ticket: Ticket, names: List[str]) -> List[str]:
        removed = []
        for name in names:
            if name not in ticket.tags:
                continue
            tag_id = self._session.execute(
                select(TagModel.id).where(TagModel.name == name)
            ).scalar_one_or_none()
            if tag_id is not None:
                self._session.execute(
                    delete(ticket_tags).where(
                        ticket_tags.c.ticket_id == ticket.id,
                        ticket_tags.c.tag_id == tag_id,
                    )
                )
            ticket.tags.remove(name)
            removed.append(name)
        return removed

    def _get_or_create(self, name: str) -> int:
        tag_id = self._session.execute(
            select(TagModel.id).where(TagModel.name == name)
        ).scalar_one_or_none()
        if tag_id is not None:
            return tag_id
        model = TagModel(name=name)
        self._session.add(model)
        self._session.flush()
        return model.id


class SQLAlchemyCategoryStore(ICategoryStore):
    """Category links through `ticket_categories`."""

    def __init__(self, session: Session):
        self._session = session

    def exists(self, category_id: int) -> bool:
        stmt = select(CategoryModel.id).where(CategoryModel.id == category_id)
        return self._session.execute(stmt).scalar_one_or_none() is not None

    def attach(self, ticket: Ticket, category_id: int) -> bool:
        if category_id in ticket.category_ids:
            return False
        self._session.execute(
            insert(ticket_categories).values(ticket_id=ticket.id, category_id=category_id)
        )
        ticket.category_ids.append(category_id)
        return True

    def detach(self, ticket: Ticket, category_id: int) -> bool:
        if category_id not in ticket.category_ids:
            return False
        self._session.execute(
            delete(ticket_categories).where(
                ticket_categories.c.ticket_id == ticket.id,
                ticket_categories.c.category_id == category_id,
            )
        )
        ticket.category_ids.remove(category_id)
        return True

    def create(self, name: str, slug: str, parent_id: Optional[int] = None) -> int:
        """Create a category and return its id."""
        model = CategoryModel(name=name, slug=slug, parent_id=parent_id)
        self._session.add(model)
        self._session.flush()
        return model.id


class SQLAlchemyCommentStore(ICommentStore):
    """Comments and internal notes."""

    def __init__(self, session: Session, clock: Clock = utcnow):
        self._session = session
        self._clock = clock

    def add(self, comment: TicketComment) -> TicketComment:
        model = CommentModel(
            ticket_id=comment.ticket_id,
            body=comment.body,
            is_internal=comment.is_internal,
            author_id=comment.author_id,
            meta=dict(comment.meta),
            created_at=comment.created_at or self._clock(),
        )
        self._session.add(model)
        self._session.flush()
        comment.id = model.id
        comment.created_at = ensure_aware(model.created_at)
        return comment

    def list_for_ticket(self, ticket_id: int) -> List[TicketComment]:
        stmt = (
            select(CommentModel)
            .where(CommentModel.ticket_id == ticket_id)
            .order_by(CommentModel.id.asc())
        )
        return [
            TicketComment(
                id=model.id,
                ticket_id=model.ticket_id,
                body=model.body,
                is_internal=model.is_internal,
                author_id=model.author_id,
                meta=dict(model.meta or {}),
                created_at=ensure_aware(model.created_at),
            )
            for model in self._session.execute(stmt).scalars().all()
        ]

    def count_for_ticket(self, ticket_id: int) -> int:
        stmt = select(func.count()).select_from(CommentModel).where(CommentModel.ticket_id == ticket_id)
        return self._session.execute(stmt).scalar_one()


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """
    SAVEPOINT-scoped units of work on one session.

    Nested `atomic()` calls nest savepoints, so an inner failure rolls
    back only its own scope. The outermost transaction is committed by
    whoever owns the session.

    Domain events follow the savepoints: they are delivered when the
    outermost scope completes and dropped with a scope that rolls back.
    """

    def __init__(self, session: Session, events: Optional[EventDispatcher] = None):
        self._session = session
        self._events = events or NullEventDispatcher()

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        self._events.hold()
        try:
            with self._session.begin_nested():
                yield self._session
        except BaseException:
            self._events.discard()
            raise
        self._events.release()

    @contextmanager
    def preview(self) -> Iterator[Session]:
        self._events.hold()
        nested = self._session.begin_nested()
        try:
            yield self._session
        finally:
            if nested.is_active:
                nested.rollback()
            self._events.discard()
