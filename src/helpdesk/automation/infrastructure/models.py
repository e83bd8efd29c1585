"""
Automation Infrastructure Models
================================

SQLAlchemy ORM models for automation rules and their execution log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base


class AutomationRuleModel(Base):
    """
    Database model for AutomationRule entity.

    Conditions and actions are stored as JSON lists and validated when
    loaded.
    """
    __tablename__ = "automation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger: Mapped[str] = mapped_column(String(100), nullable=False)

    conditions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    stop_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_automation_rules_selection", "trigger", "is_active", "priority"),
    )


class AutomationExecutionModel(Base):
    """
    Maps to the 'automation_executions' table.

    `ticket_id` is not a foreign key so the log outlives deleted tickets.
    """
    __tablename__ = "automation_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[int] = mapped_column(ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    trigger: Mapped[str] = mapped_column(String(100), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    conditions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
