"""
Ticket Application Layer
========================

Contains:
- Repository and store interfaces (Dependency Inversion)
- TicketService
- DTOs for ticket input
"""

from helpdesk.tickets.application.dto import CommentCreateDTO, TicketCreateDTO
from helpdesk.tickets.application.services import (
    ICategoryStore,
    ICommentStore,
    ITagStore,
    ITicketRepository,
    IUnitOfWork,
    TicketService,
)

__all__ = [
    "CommentCreateDTO",
    "TicketCreateDTO",
    "ICategoryStore",
    "ICommentStore",
    "ITagStore",
    "ITicketRepository",
    "IUnitOfWork",
    "TicketService",
]
