"""
Automation Domain Entities
==========================

Automation rules and the audit trail of their executions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from helpdesk.automation.domain.value_objects import ActionSpec, ConditionClause


@dataclass
class AutomationRule:
    """
    A trigger-scoped rule: when all conditions hold, run the actions.

    Higher `priority` runs first; ties run in id order. Execution only
    ever touches `last_executed_at`.
    """

    id: Optional[int]
    name: str
    trigger: str
    conditions: List[ConditionClause] = field(default_factory=list)
    actions: List[ActionSpec] = field(default_factory=list)
    priority: int = 0
    is_active: bool = True
    stop_processing: bool = False
    description: Optional[str] = None
    last_executed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def order_key(self) -> Tuple[int, int]:
        return (-self.priority, self.id or 0)

    def conditions_snapshot(self) -> List[Dict[str, Any]]:
        return [clause.model_dump() for clause in self.conditions]

    def actions_snapshot(self) -> List[Dict[str, Any]]:
        return [spec.model_dump() for spec in self.actions]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger,
            "conditions": self.conditions_snapshot(),
            "actions": self.actions_snapshot(),
            "priority": self.priority,
            "is_active": self.is_active,
            "stop_processing": self.stop_processing,
            "last_executed_at": self.last_executed_at.isoformat() if self.last_executed_at else None,
        }


@dataclass(frozen=True)
class AutomationExecution:
    """Immutable audit record of one rule attempt on one ticket."""

    id: Optional[int]
    rule_id: int
    ticket_id: Optional[int]
    trigger: str
    executed_at: datetime
    success: bool
    conditions_snapshot: List[Dict[str, Any]] = field(default_factory=list)
    actions_snapshot: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
