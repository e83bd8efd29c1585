"""
Ticket Infrastructure Layer
===========================

Contains:
- SQLAlchemy ORM models
- Repository, store and unit of work implementations
"""

from helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyCategoryStore,
    SQLAlchemyCommentStore,
    SQLAlchemyTagStore,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)

__all__ = [
    "SQLAlchemyCategoryStore",
    "SQLAlchemyCommentStore",
    "SQLAlchemyTagStore",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUnitOfWork",
]
