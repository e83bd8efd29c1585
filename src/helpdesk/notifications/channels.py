"""
Notification Channels
=====================

Delivery channels for helpdesk notifications:
- Structured log channel
- Slack webhook channel with circuit breaker and retry
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    """What happened to which ticket, for whom."""
    event: str
    ticket_id: Optional[int]
    subject: str
    message: str
    occurred_at: datetime
    priority: Optional[str] = None
    status: Optional[str] = None
    recipients: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "ticket_id": self.ticket_id,
            "subject": self.subject,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
            "priority": self.priority,
            "status": self.status,
            "recipients": list(self.recipients),
            "context": dict(self.context),
        }


class NotificationChannel(ABC):
    """A delivery target. `external` channels leave the process."""

    name: str = ""
    external: bool = False

    @abstractmethod
    def send(self, payload: NotificationPayload) -> bool:
        """Deliver the payload; True on success."""


class LoggingNotificationChannel(NotificationChannel):
    """Writes notifications to the structured log."""

    name = "log"

    def send(self, payload: NotificationPayload) -> bool:
        logger.info(
            "Helpdesk notification",
            extra={
                "event": payload.event,
                "ticket_id": payload.ticket_id,
                "subject": payload.subject,
                "notification_message": payload.message,
                "recipients": payload.recipients,
            }
        )
        return True


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Consecutive-failure breaker for an outbound webhook.

    `failure_threshold` failed deliveries in a row open the circuit for
    `recovery_timeout` seconds. Once that has elapsed a single trial
    delivery is let through: success closes the circuit and a failure
    opens it again straight away.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    monotonic: Callable[[], float] = time.monotonic
    consecutive_failures: int = field(default=0, init=False)
    opened_at: Optional[float] = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        if self.opened_at is None:
            return CircuitState.CLOSED
        if self.monotonic() - self.opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        state = self.state
        if state is CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return state is CircuitState.CLOSED

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit closed after trial delivery")
        self.consecutive_failures = 0
        self.opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self._trial_in_flight or (
            self.opened_at is None and self.consecutive_failures >= self.failure_threshold
        ):
            self._trip()

    def _trip(self) -> None:
        self.opened_at = self.monotonic()
        self._trial_in_flight = False
        logger.warning(
            "Circuit opened",
            extra={"failure_count": self.consecutive_failures, "recovery_timeout": self.recovery_timeout}
        )


class SlackNotificationChannel(NotificationChannel):
    """
    Slack webhook channel.

    Posts Block Kit messages with exponential backoff retry; repeated
    failures open the circuit and further sends are skipped.
    """

    name = "slack"
    external = True

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str = "#helpdesk",
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.webhook_url = webhook_url
        self.channel = channel
        self.max_retries = max_retries
        self._client = client
        self._timeout = timeout_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._sleep = sleep

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def build_message(self, payload: NotificationPayload) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        fields = [{"type": "mrkdwn", "text": f"*Ticket:*\n#{payload.ticket_id}"}]
        if payload.priority:
            fields.append({"type": "mrkdwn", "text": f"*Priority:*\n{payload.priority.title()}"})
        if payload.status:
            fields.append({"type": "mrkdwn", "text": f"*Status:*\n{payload.status.replace('_', ' ').title()}"})

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": payload.subject[:150],
                    "emoji": True
                }
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": payload.message}
            },
            {
                "type": "section",
                "fields": fields
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"{payload.event} | {payload.occurred_at.isoformat()}"
                    }
                ]
            }
        ]

        return {
            "channel": self.channel,
            "text": payload.subject,
            "blocks": blocks
        }

    def send(self, payload: NotificationPayload) -> bool:
        """
        Send the notification to the webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"ticket_id": payload.ticket_id}
            )
            return False

        message = self.build_message(payload)

        for attempt in range(self.max_retries):
            try:
                response = self._get_client().post(self.webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"ticket_id": payload.ticket_id, "event": payload.event}
                    )
                    return True

                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )

            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": payload.ticket_id}
                )

            if attempt < self.max_retries - 1:
                self._sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None
