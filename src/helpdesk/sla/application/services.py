"""
SLA Application Services
========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

- SlaClock: due dates, compliance and breach detection for one ticket
- SlaMonitor: periodic breach scan over open tickets
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from helpdesk.config import (
    AutomationTrigger, SlaMilestoneStatus, SlaBreachType, SlaState
)
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from helpdesk.sla.domain import (
    MilestoneCompliance, SLACalculator, SLAConfig, SlaCompliance
)
from helpdesk.tickets.application import ITicketRepository
from helpdesk.tickets.domain import SlaBreached, Ticket

logger = get_logger(__name__)


# ========== Configuration Interface (Dependency Inversion) ==========

class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_sla_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Provider holding a fixed configuration."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_sla_config(self) -> SLAConfig:
        return self._config


# ========== Application Services ==========

class SlaClock:
    """
    Computes SLA deadlines and compliance from the rule table.

    Never consulted for transition decisions; automation reads its state
    through the computed `sla_status` condition field.
    """

    def __init__(
        self,
        config_provider: ISLAConfigProvider,
        ticket_repository: Optional[ITicketRepository] = None,
        clock: Clock = utcnow,
        events: Optional[EventDispatcher] = None
    ):
        self._config_provider = config_provider
        self._ticket_repo = ticket_repository
        self._clock = clock
        self._events = events or NullEventDispatcher()

    @property
    def config(self) -> SLAConfig:
        return self._config_provider.get_sla_config()

    def now(self):
        return self._clock()

    def calculate_due_dates(self, ticket: Ticket) -> bool:
        """
        Set first response and resolution due dates on the ticket.

        Returns:
            False when SLA is disabled or no rule applies (not an error)
        """
        config = self.config
        if not config.enabled:
            return False

        target = config.get_target(ticket.type, ticket.priority)
        if target is None:
            logger.debug(
                "No SLA rule for ticket",
                extra={"ticket_id": ticket.id, "type": ticket.type.value, "priority": ticket.priority.value}
            )
            return False

        base_time = ticket.opened_at or self._clock()
        if target.first_response is not None:
            ticket.first_response_due_at = SLACalculator.calculate_deadline(base_time, target.first_response)
        if target.resolution is not None:
            ticket.resolution_due_at = SLACalculator.calculate_deadline(base_time, target.resolution)
        return True

    def check_compliance(self, ticket: Ticket) -> SlaCompliance:
        """Report status, remaining-time percentage and overdue flag per milestone."""
        now = self._clock()
        compliance = SlaCompliance()
        opened_at = ticket.opened_at or ticket.created_at or now

        if ticket.first_response_due_at:
            compliance.first_response = self._milestone(
                opened_at, ticket.first_response_due_at, ticket.first_response_at, now
            )

        if ticket.resolution_due_at:
            resolved_at = (ticket.closed_at or now) if ticket.is_terminal else None
            compliance.resolution = self._milestone(
                opened_at, ticket.resolution_due_at, resolved_at, now
            )

        return compliance

    def record_breach_if_needed(self, ticket: Ticket) -> bool:
        """
        Flag and persist a breach when a milestone is overdue.

        First response takes precedence over resolution. Never raises:
        a failed write is logged and reported as no write.
        """
        try:
            now = self._clock()
            breach_type = None
            if ticket.is_first_response_overdue(now):
                breach_type = SlaBreachType.FIRST_RESPONSE
            elif ticket.is_resolution_overdue(now):
                breach_type = SlaBreachType.RESOLUTION

            if breach_type is None or ticket.sla_breached:
                return False

            snapshot = ticket.snapshot()
            ticket.sla_breached = True
            ticket.sla_breach_type = breach_type
            if self._ticket_repo is not None:
                try:
                    self._ticket_repo.save(ticket)
                except Exception:
                    ticket.restore(snapshot)
                    raise

            logger.warning(
                "SLA breach recorded",
                extra={"ticket_id": ticket.id, "breach_type": breach_type.value}
            )
            self._events.publish(SlaBreached(ticket_id=ticket.id, occurred_at=now, breach_type=breach_type))
            return True
        except Exception as e:
            logger.error(
                "Failed to record SLA breach",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            return False

    def sla_state(self, ticket: Ticket) -> SlaState:
        """
        Overall SLA state.

        BREACHED when flagged or any milestone breached/overdue,
        APPROACHING when a pending milestone consumed at least the first
        warning threshold, WITHIN otherwise.
        """
        if ticket.sla_breached:
            return SlaState.BREACHED

        compliance = self.check_compliance(ticket)
        if compliance.is_breached:
            return SlaState.BREACHED

        thresholds = self.config.warning_thresholds
        if not thresholds:
            return SlaState.WITHIN

        now = self._clock()
        opened_at = ticket.opened_at or ticket.created_at or now
        pending = []
        if ticket.first_response_due_at and compliance.first_response.status == SlaMilestoneStatus.PENDING:
            pending.append(ticket.first_response_due_at)
        if ticket.resolution_due_at and compliance.resolution.status == SlaMilestoneStatus.PENDING:
            pending.append(ticket.resolution_due_at)

        for due_at in pending:
            if SLACalculator.consumed_percentage(opened_at, due_at, now) >= thresholds[0]:
                return SlaState.APPROACHING
        return SlaState.WITHIN

    @staticmethod
    def _milestone(opened_at, due_at, reached_at, now) -> MilestoneCompliance:
        status = SLACalculator.milestone_status(due_at, reached_at)
        return MilestoneCompliance(
            status=status,
            percentage=SLACalculator.compliance_percentage(opened_at, due_at, now, reached_at),
            overdue=status == SlaMilestoneStatus.PENDING and now > due_at,
        )


class SlaMonitor:
    """
    Periodic scan over open tickets.

    Newly breached tickets get `sla_breached` automation; the scan is
    driven by SLAScheduler.
    """

    def __init__(
        self,
        sla_clock: SlaClock,
        ticket_repository: ITicketRepository,
        rule_engine: Optional[Any] = None,
        batch_size: int = 500
    ):
        self._sla_clock = sla_clock
        self._ticket_repo = ticket_repository
        self._rule_engine = rule_engine
        self._batch_size = batch_size

    def evaluate_open_tickets(self, correlation_id: Optional[str] = None) -> Dict[str, List[int]]:
        """
        Check every open ticket once.

        Returns:
            Ids of newly breached and of approaching tickets
        """
        log = get_context_logger(__name__, correlation_id)
        result: Dict[str, List[int]] = {"checked": [], "breached": [], "approaching": []}

        with log_latency(log, "sla_evaluation"):
            for ticket in self._ticket_repo.list_open(limit=self._batch_size):
                result["checked"].append(ticket.id)
                if self._sla_clock.record_breach_if_needed(ticket):
                    result["breached"].append(ticket.id)
                    if self._rule_engine is not None:
                        self._rule_engine.process_ticket(ticket, AutomationTrigger.SLA_BREACHED.value)
                elif self._sla_clock.sla_state(ticket) == SlaState.APPROACHING:
                    result["approaching"].append(ticket.id)

        log.info(
            "SLA evaluation completed",
            extra={
                "checked": len(result["checked"]),
                "breached": len(result["breached"]),
                "approaching": len(result["approaching"]),
            }
        )
        return result
