"""
Notification Dispatcher
=======================

Fans a notification out to the enabled channels. Delivery is
best-effort: a failing channel is logged and never propagates.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from helpdesk.notifications.channels import NotificationChannel, NotificationPayload
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.domain import Ticket

logger = get_logger(__name__)


class NotificationDispatcher:
    """Sends payloads to every channel, optionally skipping external ones."""

    def __init__(
        self,
        channels: Sequence[NotificationChannel],
        enabled_events: Optional[Dict[str, bool]] = None,
        clock: Clock = utcnow
    ):
        self._channels = list(channels)
        self._enabled_events = enabled_events or {}
        self._clock = clock
        self._muted = 0

    @property
    def channels(self) -> List[NotificationChannel]:
        return list(self._channels)

    @contextmanager
    def external_muted(self) -> Iterator[None]:
        """Skip external channels for the duration, e.g. while previewing rules."""
        self._muted += 1
        try:
            yield
        finally:
            self._muted -= 1

    def is_enabled(self, event: str) -> bool:
        """Events missing from the toggle map are enabled."""
        return self._enabled_events.get(event, True)

    def dispatch(self, payload: NotificationPayload, skip_external: bool = False) -> Dict[str, bool]:
        """
        Deliver to each channel.

        Returns:
            Channel name -> delivered flag
        """
        results: Dict[str, bool] = {}
        if not self.is_enabled(payload.event):
            logger.debug("Notification event disabled", extra={"event": payload.event})
            return results

        for channel in self._channels:
            if (skip_external or self._muted) and channel.external:
                continue
            try:
                results[channel.name] = channel.send(payload)
            except Exception as e:
                logger.error(
                    "Notification channel failed",
                    extra={"channel": channel.name, "event": payload.event, "error": str(e)}
                )
                results[channel.name] = False
        return results

    def notify(
        self,
        event: str,
        ticket: Ticket,
        message: str,
        subject: Optional[str] = None,
        recipients: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        skip_external: bool = False
    ) -> Dict[str, bool]:
        """Build a payload for a ticket and dispatch it."""
        payload = NotificationPayload(
            event=event,
            ticket_id=ticket.id,
            subject=subject or f"[#{ticket.id}] {ticket.subject}",
            message=message,
            occurred_at=self._clock(),
            priority=ticket.priority.value,
            status=ticket.status.value,
            recipients=list(recipients or []),
            context=dict(context or {}),
        )
        return self.dispatch(payload, skip_external=skip_external)
