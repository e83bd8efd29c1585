"""
Configuration Module
====================

Application settings and closed vocabularies of the helpdesk domain.

Process-level settings come from the environment through Pydantic;
domain configuration (SLA table, workflows, automation templates) is a
YAML document described in `helpdesk.config.document`.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Database ==========
    database_url: str = Field(
        default="sqlite:///helpdesk.db",
        description="SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Helpdesk Configuration ==========
    helpdesk_config_path: Path = Field(
        default=Path("helpdesk.yaml"),
        description="Path to the helpdesk YAML configuration (SLA, workflows, automation)"
    )
    watch_config: bool = Field(
        default=False,
        description="Reload the helpdesk configuration when the file changes"
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between SLA breach scans (0 disables the scheduler)",
        ge=0
    )
    reopen_window_days: int = Field(
        default=30,
        description="Days after closing during which a ticket may be reopened",
        ge=0
    )

    # ========== Notifications ==========
    notification_channels: List[str] = Field(
        default=["log"],
        description="Enabled notification channels (log, slack)"
    )
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#helpdesk",
        description="Slack channel for helpdesk notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("notification_channels")
    @classmethod
    def validate_channels(cls, v: List[str]) -> List[str]:
        """Only known channels can be enabled."""
        unknown = set(v) - {"log", "slack"}
        if unknown:
            raise ValueError(f"unknown notification channels: {sorted(unknown)}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Vocabularies ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @classmethod
    def default(cls) -> "TicketStatus":
        return cls.OPEN

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        """Closed and cancelled tickets only move again through a reopen."""
        return self in (TicketStatus.CLOSED, TicketStatus.CANCELLED)


_STATUS_LABELS = {
    TicketStatus.OPEN: "Open",
    TicketStatus.IN_PROGRESS: "In Progress",
    TicketStatus.ON_HOLD: "On Hold",
    TicketStatus.PENDING: "Pending",
    TicketStatus.RESOLVED: "Resolved",
    TicketStatus.CLOSED: "Closed",
    TicketStatus.CANCELLED: "Cancelled",
}


class TicketPriority(str, Enum):
    """Ticket priority levels."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def default(cls) -> "TicketPriority":
        return cls.NORMAL

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS = {
    TicketPriority.LOW: 1,
    TicketPriority.NORMAL: 2,
    TicketPriority.HIGH: 3,
    TicketPriority.URGENT: 4,
}


class TicketType(str, Enum):
    """Ticket types; SLA overrides are keyed by these."""
    PRODUCT_SUPPORT = "product_support"
    COMMERCIAL = "commercial"


class SlaBreachType(str, Enum):
    """Which SLA clock was breached first."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


class SlaMilestoneStatus(str, Enum):
    """Status of a single SLA milestone (first response or resolution)."""
    PENDING = "pending"
    MET = "met"
    BREACHED = "breached"


class SlaState(str, Enum):
    """Overall SLA state exposed to automation as the `sla_status` field."""
    WITHIN = "within"
    APPROACHING = "approaching"
    BREACHED = "breached"


class AutomationTrigger(str, Enum):
    """Circumstances under which automation rules are considered."""
    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_STATUS_CHANGED = "ticket_status_changed"
    COMMENT_ADDED = "comment_added"
    TIME_BASED = "time_based"
    SLA_APPROACHING = "sla_approaching"
    SLA_BREACHED = "sla_breached"
    MANUAL = "manual"
    BATCH = "batch"


DEFAULT_TRIGGERS: Dict[str, str] = {
    AutomationTrigger.TICKET_CREATED.value: "When a new ticket is created",
    AutomationTrigger.TICKET_UPDATED.value: "When a ticket is updated",
    AutomationTrigger.TICKET_ASSIGNED.value: "When a ticket is assigned",
    AutomationTrigger.TICKET_STATUS_CHANGED.value: "When ticket status changes",
    AutomationTrigger.COMMENT_ADDED.value: "When a comment is added",
    AutomationTrigger.TIME_BASED.value: "Scheduled time-based checks",
    AutomationTrigger.SLA_APPROACHING.value: "When SLA deadline is approaching",
    AutomationTrigger.SLA_BREACHED.value: "When SLA is breached",
    AutomationTrigger.MANUAL.value: "Manual trigger",
    AutomationTrigger.BATCH.value: "Batch processing",
}


# ========== Lists for validation ==========

VALID_STATUSES = [s.value for s in TicketStatus]
VALID_PRIORITIES = [p.value for p in TicketPriority]
VALID_TYPES = [t.value for t in TicketType]
TERMINAL_STATUSES = [s for s in TicketStatus if s.is_terminal]
