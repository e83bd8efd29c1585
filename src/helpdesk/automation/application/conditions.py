"""
Condition Evaluator
===================

Evaluates a rule's AND-list of condition clauses against a ticket.

Evaluation fails closed: an unknown field, an unknown operator or a
value that cannot be compared makes the clause false, so a broken
clause excludes its rule instead of matching every ticket.

Text operators (`contains`, `starts_with`, `ends_with` and their
negations) ignore case on both sides.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Union

from helpdesk.automation.domain import ConditionClause, parse_duration
from helpdesk.config import SlaState, TicketPriority
from helpdesk.core import RuleEvaluationException
from helpdesk.shared.clock import Clock, ensure_aware, utcnow
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import ICommentStore
from helpdesk.tickets.domain import Ticket

logger = get_logger(__name__)

Operator = Callable[[Any, Any, str], bool]

_META_PREFIX = "meta."
_TICKET_FIELDS = {
    "id", "subject", "description", "status", "priority", "type",
    "customer_name", "customer_email", "assignee_id", "tags",
    "opened_at", "closed_at", "created_at", "updated_at",
    "first_response_at", "first_response_due_at", "resolution_due_at",
    "sla_breached", "sla_breach_type", "response_time_minutes",
    "resolution_time_minutes", "meta",
}


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_normalize(item) for item in value]
    return value


def _is_null(value: Any) -> bool:
    return value is None or value == "" or value == []


def _as_text(value: Any) -> str:
    if value is None:
        raise RuleEvaluationException("null value in a string comparison")
    return str(value).lower()


class ConditionEvaluator:
    """Resolves ticket fields and applies clause operators."""

    def __init__(
        self,
        sla_clock: Optional[Any] = None,
        clock: Clock = utcnow,
        comment_store: Optional[ICommentStore] = None
    ):
        self._sla_clock = sla_clock
        self._comments = comment_store
        self._clock = clock
        self._operators: Dict[str, Operator] = {
            "equals": self._equals,
            "not_equals": lambda actual, expected, field: not self._equals(actual, expected, field),
            "in": self._in,
            "not_in": lambda actual, expected, field: not self._in(actual, expected, field),
            "contains": self._contains,
            "not_contains": lambda actual, expected, field: not self._contains(actual, expected, field),
            "older_than": self._older_than,
            "newer_than": self._newer_than,
            "is_null": lambda actual, expected, field: _is_null(actual),
            "is_not_null": lambda actual, expected, field: not _is_null(actual),
            "starts_with": lambda actual, expected, field: _as_text(actual).startswith(_as_text(expected)),
            "ends_with": lambda actual, expected, field: _as_text(actual).endswith(_as_text(expected)),
            "greater_than": lambda actual, expected, field: self._compare(actual, expected, field) > 0,
            "less_than": lambda actual, expected, field: self._compare(actual, expected, field) < 0,
            "greater_or_equal": lambda actual, expected, field: self._compare(actual, expected, field) >= 0,
            "less_or_equal": lambda actual, expected, field: self._compare(actual, expected, field) <= 0,
        }

    def evaluate(self, conditions: Iterable[Union[ConditionClause, dict]], ticket: Ticket) -> bool:
        """AND of every clause; an empty list matches."""
        for clause in conditions or []:
            if not self.evaluate_clause(clause, ticket):
                return False
        return True

    def evaluate_clause(self, clause: Union[ConditionClause, dict], ticket: Ticket) -> bool:
        try:
            if not isinstance(clause, ConditionClause):
                clause = ConditionClause.model_validate(clause)
            operator = self._operators.get(clause.operator)
            if operator is None:
                raise RuleEvaluationException(f"Unknown operator '{clause.operator}'")
            actual = self.resolve_field(ticket, clause.field)
            return bool(operator(actual, clause.value, clause.field))
        except Exception as e:
            logger.debug(
                "Condition clause evaluated as false",
                extra={"ticket_id": ticket.id, "clause": str(clause), "error": str(e)}
            )
            return False

    def resolve_field(self, ticket: Ticket, field: str) -> Any:
        """
        Current value of a ticket field, enums as their values.

        Supports every ticket attribute plus `categories`, `sla_status`,
        `comment_count` and custom fields as `meta.<key>`.

        Raises:
            RuleEvaluationException: the field does not exist
        """
        if field.startswith(_META_PREFIX):
            return _normalize(ticket.meta.get(field[len(_META_PREFIX):]))
        if field == "categories":
            return list(ticket.category_ids)
        if field == "sla_status":
            return self._sla_status(ticket).value
        if field == "comment_count":
            return self._comment_count(ticket)
        if field in _TICKET_FIELDS:
            return _normalize(getattr(ticket, field))
        raise RuleEvaluationException(f"Unknown field '{field}'")

    # ========== Operators ==========

    @staticmethod
    def _equals(actual: Any, expected: Any, field: str) -> bool:
        expected = _normalize(expected)
        if isinstance(actual, list):
            return actual == (expected if isinstance(expected, list) else [expected])
        return actual == expected

    @staticmethod
    def _in(actual: Any, expected: Any, field: str) -> bool:
        options = [str(option) for option in _normalize(list(expected))]
        if isinstance(actual, list):
            return any(str(item) in options for item in actual)
        return actual is not None and str(actual) in options

    @staticmethod
    def _contains(actual: Any, expected: Any, field: str) -> bool:
        if isinstance(actual, list):
            return str(_normalize(expected)) in [str(item) for item in actual]
        if isinstance(actual, dict):
            return str(expected) in actual
        return _as_text(expected) in _as_text(actual)

    def _elapsed(self, actual: Any) -> Any:
        if not isinstance(actual, datetime):
            raise RuleEvaluationException("time operators need a timestamp field")
        return self._clock() - ensure_aware(actual)

    def _older_than(self, actual: Any, expected: Any, field: str) -> bool:
        if actual is None:
            return False
        return self._elapsed(actual) >= parse_duration(expected)

    def _newer_than(self, actual: Any, expected: Any, field: str) -> bool:
        if actual is None:
            return False
        return self._elapsed(actual) < parse_duration(expected)

    @staticmethod
    def _compare(actual: Any, expected: Any, field: str) -> int:
        """Three-way comparison; priorities compare by weight."""
        if actual is None:
            raise RuleEvaluationException(f"'{field}' is null")
        expected = _normalize(expected)

        if field == "priority":
            left, right = TicketPriority(actual).weight, TicketPriority(expected).weight
        elif isinstance(actual, datetime):
            right_value = expected if isinstance(expected, datetime) else datetime.fromisoformat(str(expected))
            left, right = ensure_aware(actual), ensure_aware(right_value)
        elif isinstance(actual, list):
            left, right = len(actual), float(expected)
        else:
            left, right = float(actual), float(expected)

        return (left > right) - (left < right)

    # ========== Computed fields ==========

    def _sla_status(self, ticket: Ticket) -> SlaState:
        if self._sla_clock is not None:
            return self._sla_clock.sla_state(ticket)
        now = self._clock()
        if ticket.sla_breached or ticket.is_first_response_overdue(now) or ticket.is_resolution_overdue(now):
            return SlaState.BREACHED
        return SlaState.WITHIN

    def _comment_count(self, ticket: Ticket) -> int:
        if self._comments is None:
            raise RuleEvaluationException("no comment store to count comments")
        if ticket.id is None:
            return 0
        return self._comments.count_for_ticket(ticket.id)
