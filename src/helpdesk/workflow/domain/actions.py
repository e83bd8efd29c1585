"""
Transition Actions
==================

Side-effecting procedures run before or after a status change, inside
the transition's unit of work. An exception from an action aborts the
whole transition.
"""

from abc import ABC, abstractmethod
from typing import Callable

from helpdesk.config import TicketStatus
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.tickets.domain import Ticket


class TransitionAction(ABC):
    """Procedure `(ticket, from_status, to_status) -> None`."""

    name: str = ""

    @abstractmethod
    def run(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> None:
        """Apply the effect."""


class CallableAction(TransitionAction):
    """Adapts a plain function to the TransitionAction interface."""

    def __init__(self, name: str, func: Callable[[Ticket, TicketStatus, TicketStatus], None]):
        self.name = name
        self._func = func

    def run(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> None:
        self._func(ticket, from_status, to_status)


class MarkFirstResponseAction(TransitionAction):
    """Starting work on a ticket counts as the first response."""

    name = "mark_first_response"

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock

    def run(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> None:
        ticket.mark_first_response(self._clock())
