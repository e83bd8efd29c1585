"""
Built-in transition guards and actions.

Factories returning the implementations the default workflow refers to.
"""

from typing import List, Optional

from helpdesk.config import TicketStatus
from helpdesk.notifications import NotificationDispatcher
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.tickets.domain import Ticket
from helpdesk.workflow.domain import (
    CanReopenGuard, Guard, MarkFirstResponseAction, MustBeAssignedGuard, TransitionAction
)


class NotificationAction(TransitionAction):
    """Sends a notification about the transition through the dispatcher."""

    def __init__(self, name: str, message: str, notifier: Optional[NotificationDispatcher] = None):
        self.name = name
        self.message = message
        self._notifier = notifier

    def run(self, ticket: Ticket, from_status: TicketStatus, to_status: TicketStatus) -> None:
        if self._notifier is None:
            return
        self._notifier.notify(
            self.name,
            ticket,
            self.message.format(
                ticket_id=ticket.id,
                subject=ticket.subject,
                from_status=from_status.label,
                to_status=to_status.label,
            ),
            context={"from_status": from_status.value, "to_status": to_status.value},
        )


def default_guards(clock: Clock = utcnow, reopen_window_days: int = 30) -> List[Guard]:
    return [
        MustBeAssignedGuard(),
        CanReopenGuard(window_days=reopen_window_days, clock=clock),
    ]


def default_actions(
    clock: Clock = utcnow,
    notifier: Optional[NotificationDispatcher] = None
) -> List[TransitionAction]:
    return [
        MarkFirstResponseAction(clock=clock),
        NotificationAction(
            "send_resolution_notification",
            "Ticket #{ticket_id} \"{subject}\" has been resolved.",
            notifier,
        ),
        NotificationAction(
            "request_rating",
            "Ticket #{ticket_id} is closed. How did we do?",
            notifier,
        ),
        NotificationAction(
            "notify_reopened",
            "Ticket #{ticket_id} was reopened ({from_status} -> {to_status}).",
            notifier,
        ),
    ]
