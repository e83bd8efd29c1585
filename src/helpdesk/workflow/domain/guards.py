"""
Transition Guards
=================

A guard is a pure predicate deciding whether a ticket may move between
two statuses. Engines receive guard instances at construction; the
name only matters where a workflow definition refers to it.
"""

from abc import ABC, abstractmethod
from typing import Callable

from helpdesk.config import TicketStatus
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.tickets.domain import Ticket


class Guard(ABC):
    """Predicate `(ticket, from_status, to_status) -> bool`."""

    name: str = ""

    @abstractmethod
    def allows(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> bool:
        """Return True when the transition may proceed."""


class CallableGuard(Guard):
    """Adapts a plain function to the Guard interface."""

    def __init__(self, name: str, func: Callable[[Ticket, TicketStatus, TicketStatus], bool]):
        self.name = name
        self._func = func

    def allows(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> bool:
        return bool(self._func(ticket, from_status, to_status))


class MustBeAssignedGuard(Guard):
    """Work can only start on an assigned ticket."""

    name = "must_be_assigned"

    def allows(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> bool:
        return ticket.assignee_id is not None


class CanReopenGuard(Guard):
    """
    A closed ticket can be reopened within `window_days` whole days of
    closing. A ticket without `closed_at` counts as closed today.
    """

    name = "can_reopen"

    def __init__(self, window_days: int = 30, clock: Clock = utcnow):
        self.window_days = window_days
        self._clock = clock

    def allows(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> bool:
        if ticket.closed_at is None:
            return True
        days_since_closed = (self._clock() - ticket.closed_at).days
        return days_since_closed <= self.window_days
