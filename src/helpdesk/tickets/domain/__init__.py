"""
Ticket Domain Layer
===================

Contains:
- Entities: Ticket, TicketComment, Category
- Domain events published when tickets change

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.tickets.domain.entities import Ticket, TicketComment, Category
from helpdesk.tickets.domain.events import (
    TicketEvent,
    TicketCreated,
    TicketStatusChanged,
    TicketAssigned,
    TicketEscalated,
    AutomationRuleExecuted,
    SlaBreached,
)

__all__ = [
    "Ticket",
    "TicketComment",
    "Category",
    "TicketEvent",
    "TicketCreated",
    "TicketStatusChanged",
    "TicketAssigned",
    "TicketEscalated",
    "AutomationRuleExecuted",
    "SlaBreached",
]
