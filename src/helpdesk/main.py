"""
Helpdesk - Composition Root
===========================

Wires the helpdesk services for one database session and manages the
background jobs of a running process.

Layers:
- Application: TicketService, SlaClock, StatusTransitionEngine, RuleEngine
- Domain: Entities and value objects of each bounded context
- Infrastructure: Database, configuration manager, notification channels

Usage:
    runtime = HelpdeskRuntime()
    runtime.start()
    with runtime.session() as helpdesk:
        ticket = helpdesk.tickets.create_ticket(dto)
        helpdesk.workflow.transition(ticket, TicketStatus.RESOLVED)
    runtime.stop()
"""

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

import httpx
from sqlalchemy.orm import Session

from helpdesk.automation.application import (
    WEBHOOK_TIMEOUT_SECONDS, ActionExecutor, ConditionEvaluator, RuleEngine
)
from helpdesk.automation.infrastructure import (
    SQLAlchemyAutomationExecutionRepository,
    SQLAlchemyAutomationRuleRepository,
)
from helpdesk.config import Settings, get_settings
from helpdesk.infrastructure.config_manager import HelpdeskConfigManager
from helpdesk.infrastructure.database import (
    close_database, create_tables, get_session_context, init_database
)
from helpdesk.notifications import (
    LoggingNotificationChannel,
    NotificationChannel,
    NotificationDispatcher,
    SlackNotificationChannel,
)
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher
from helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from helpdesk.sla.application import SlaClock, SlaMonitor
from helpdesk.sla.infrastructure import SLAScheduler
from helpdesk.tickets.application import TicketService
from helpdesk.tickets.infrastructure import (
    SQLAlchemyCategoryStore,
    SQLAlchemyCommentStore,
    SQLAlchemyTagStore,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)
from helpdesk.workflow.application import StatusTransitionEngine, default_actions, default_guards

logger = get_logger(__name__)


@dataclass
class Helpdesk:
    """Services bound to one database session."""
    tickets: TicketService
    sla: SlaClock
    workflow: StatusTransitionEngine
    rules: RuleEngine
    evaluator: ConditionEvaluator
    executor: ActionExecutor
    monitor: SlaMonitor
    notifier: NotificationDispatcher
    events: EventDispatcher


def build_channels(settings: Settings) -> List[NotificationChannel]:
    """Notification channels enabled in the settings."""
    channels: List[NotificationChannel] = []
    for name in settings.notification_channels:
        if name == "log":
            channels.append(LoggingNotificationChannel())
        elif name == "slack":
            channels.append(SlackNotificationChannel(
                webhook_url=settings.slack_webhook_url,
                channel=settings.slack_channel,
                timeout_seconds=settings.slack_timeout_seconds,
            ))
    return channels


def build_notifier(
    settings: Settings,
    config_manager: HelpdeskConfigManager,
    clock: Clock = utcnow
) -> NotificationDispatcher:
    return NotificationDispatcher(
        build_channels(settings),
        enabled_events=config_manager.get_notification_switches(),
        clock=clock,
    )


def build_helpdesk(
    session: Session,
    config_manager: HelpdeskConfigManager,
    settings: Optional[Settings] = None,
    clock: Clock = utcnow,
    notifier: Optional[NotificationDispatcher] = None,
    events: Optional[EventDispatcher] = None,
    http_client: Optional[httpx.Client] = None
) -> Helpdesk:
    """
    Wire every service for one session.

    The caller owns the session and its outer transaction; services
    only open savepoints. Domain events are delivered once the outermost
    savepoint of the operation that raised them completes.
    """
    settings = settings or get_settings()
    events = events or EventDispatcher()
    notifier = notifier or build_notifier(settings, config_manager, clock)

    ticket_repo = SQLAlchemyTicketRepository(session, clock=clock)
    uow = SQLAlchemyUnitOfWork(session, events=events)
    tag_store = SQLAlchemyTagStore(session)
    category_store = SQLAlchemyCategoryStore(session)
    comment_store = SQLAlchemyCommentStore(session, clock=clock)

    sla_clock = SlaClock(config_manager, ticket_repo, clock=clock, events=events)

    workflow = StatusTransitionEngine(
        ticket_repo,
        uow,
        guards=default_guards(clock, settings.reopen_window_days),
        actions=default_actions(clock, notifier),
        workflows=config_manager.get_workflows(),
        events=events,
        clock=clock,
    )

    evaluator = ConditionEvaluator(sla_clock=sla_clock, clock=clock, comment_store=comment_store)
    executor = ActionExecutor(
        ticket_repo,
        tag_store,
        category_store,
        comment_store,
        notifier=notifier,
        response_templates=lambda: config_manager.get_automation_config().response_templates,
        events=events,
        clock=clock,
        http_client=http_client,
    )
    rules = RuleEngine(
        SQLAlchemyAutomationRuleRepository(session),
        SQLAlchemyAutomationExecutionRepository(session),
        evaluator,
        executor,
        uow,
        config_provider=config_manager,
        events=events,
        clock=clock,
    )

    tickets = TicketService(ticket_repo, uow, tag_store, comment_store, sla_clock, events=events, clock=clock)
    monitor = SlaMonitor(sla_clock, ticket_repo, rule_engine=rules)

    executor.attach_transition_engine(workflow)
    workflow.attach_rule_engine(rules)
    tickets.attach_rule_engine(rules)

    return Helpdesk(
        tickets=tickets,
        sla=sla_clock,
        workflow=workflow,
        rules=rules,
        evaluator=evaluator,
        executor=executor,
        monitor=monitor,
        notifier=notifier,
        events=events,
    )


class HelpdeskRuntime:
    """
    Process lifecycle.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load the helpdesk configuration (and watch it when enabled)
    4. Start the SLA scheduler

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop the configuration watcher
    3. Close notification channels and the webhook client
    4. Close database connections
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Clock = utcnow):
        self.settings = settings or get_settings()
        self.clock = clock
        self.config_manager = HelpdeskConfigManager()
        self.events = EventDispatcher()
        self.notifier: Optional[NotificationDispatcher] = None
        self.http_client: Optional[httpx.Client] = None
        self.scheduler = SLAScheduler(interval_seconds=self.settings.sla_evaluation_interval)

    def start(self) -> None:
        setup_logging(self.settings.log_level, self.settings.environment)
        logger.info("Starting helpdesk", extra={
            "version": self.settings.app_version,
            "environment": self.settings.environment,
        })

        init_database(self.settings)
        create_tables()

        self.config_manager.load(self.settings.helpdesk_config_path)
        if self.settings.watch_config:
            self.config_manager.start_watching()

        self.notifier = build_notifier(self.settings, self.config_manager, self.clock)
        self.http_client = httpx.Client(timeout=WEBHOOK_TIMEOUT_SECONDS)
        self.scheduler.start(self.run_sla_evaluation)

    def stop(self) -> None:
        logger.info("Shutting down helpdesk")
        self.scheduler.stop()
        self.config_manager.stop_watching()
        if self.notifier is not None:
            for channel in self.notifier.channels:
                if isinstance(channel, SlackNotificationChannel):
                    channel.close()
        if self.http_client is not None:
            self.http_client.close()
            self.http_client = None
        close_database()

    @contextmanager
    def session(self) -> Iterator[Helpdesk]:
        """Helpdesk services in a committed-on-success session."""
        with get_session_context() as session:
            yield build_helpdesk(
                session,
                self.config_manager,
                settings=self.settings,
                clock=self.clock,
                notifier=self.notifier,
                events=self.events,
                http_client=self.http_client,
            )

    def run_sla_evaluation(self) -> None:
        """Background SLA evaluation job."""
        with self.session() as helpdesk:
            helpdesk.monitor.evaluate_open_tickets(correlation_id=str(uuid.uuid4()))
