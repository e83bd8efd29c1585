"""
Ticket Domain Events
====================

Immutable records of things that happened to a ticket. Published through
the EventDispatcher; nothing in the core waits on subscribers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from helpdesk.config import SlaBreachType, TicketStatus


@dataclass(frozen=True)
class TicketEvent:
    ticket_id: int
    occurred_at: datetime


@dataclass(frozen=True)
class TicketCreated(TicketEvent):
    pass


@dataclass(frozen=True)
class TicketStatusChanged(TicketEvent):
    from_status: TicketStatus
    to_status: TicketStatus
    workflow: str = "default"


@dataclass(frozen=True)
class TicketAssigned(TicketEvent):
    assignee_id: Optional[str]


@dataclass(frozen=True)
class TicketEscalated(TicketEvent):
    level: int


@dataclass(frozen=True)
class AutomationRuleExecuted(TicketEvent):
    rule_id: int
    trigger: str


@dataclass(frozen=True)
class SlaBreached(TicketEvent):
    breach_type: SlaBreachType
