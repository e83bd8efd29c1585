"""
Automation Application DTOs
===========================

Pydantic models for rule input and the results reported by the rule
engine.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from helpdesk.automation.domain import ActionSpec, ConditionClause, RuleDefinition


# ========== Request DTOs ==========

class RuleCreateDTO(RuleDefinition):
    """DTO for creating an automation rule."""


class RuleUpdateDTO(BaseModel):
    """DTO for updating a rule; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    trigger: Optional[str] = Field(None, min_length=1)
    conditions: Optional[List[ConditionClause]] = None
    actions: Optional[List[ActionSpec]] = Field(None, min_length=1)
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    stop_processing: Optional[bool] = None


# ========== Response DTOs ==========

class ProcessResult(BaseModel):
    """Outcome of running one trigger's rules on one ticket."""
    executed: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)
    skipped: List[int] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of a batch run; a ticket counts as processed if any rule executed."""
    processed: int = 0
    failed: int = 0
    details: Dict[int, ProcessResult] = Field(default_factory=dict)


class ActionOutcome(BaseModel):
    """One action's outcome in a rule preview."""
    type: str
    success: bool
    error: Optional[str] = None


class RuleTestResult(BaseModel):
    """Dry-run report of a rule against a ticket."""
    evaluated: bool = False
    executed: bool = False
    conditions_met: bool = False
    actions_performed: List[ActionOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RuleStatistics(BaseModel):
    """Execution statistics from the audit log."""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    success_rate: float = 0.0
    first_execution: Optional[datetime] = None
    last_execution: Optional[datetime] = None

    @classmethod
    def from_counts(
        cls,
        total: int,
        successful: int,
        first_execution: Optional[datetime] = None,
        last_execution: Optional[datetime] = None
    ) -> "RuleStatistics":
        return cls(
            total_executions=total,
            successful_executions=successful,
            failed_executions=total - successful,
            success_rate=round(successful / total * 100, 2) if total else 0.0,
            first_execution=first_execution,
            last_execution=last_execution,
        )


def rule_data(data: Any) -> Dict[str, Any]:
    """Plain dict from a DTO or mapping."""
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)
