"""
Tests for condition evaluation
"""
from datetime import timedelta

import pytest

from helpdesk.automation.application import ConditionEvaluator
from helpdesk.sla.application import SlaClock, StaticSLAConfigProvider
from helpdesk.tickets.application import CommentCreateDTO
from helpdesk.tickets.domain import Ticket


@pytest.fixture
def evaluator(clock):
    return ConditionEvaluator(clock=clock)


@pytest.fixture
def ticket(clock):
    return Ticket(
        id=1,
        subject="Invoice #42 is wrong",
        priority="high",
        status="open",
        customer_email="billing@example.com",
        tags=["billing", "vip"],
        category_ids=[3],
        meta={"customer_type": "vip", "seats": 25},
        opened_at=clock.now - timedelta(hours=3),
        updated_at=clock.now - timedelta(minutes=10),
    )


def clause(field, operator, value=None):
    return {"field": field, "operator": operator, "value": value}


class TestBasicOperators:
    """Equality, membership and text operators"""

    def test_empty_conditions_match(self, evaluator, ticket):
        """Test a rule without conditions always matches"""
        assert evaluator.evaluate([], ticket) is True

    def test_all_clauses_must_hold(self, evaluator, ticket):
        """Test clauses are ANDed"""
        conditions = [clause("status", "equals", "open"), clause("priority", "equals", "low")]
        assert evaluator.evaluate(conditions, ticket) is False
        assert evaluator.evaluate(conditions[:1], ticket) is True

    def test_equals_and_not_equals(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("priority", "equals", "high"), ticket)
        assert evaluator.evaluate_clause(clause("priority", "not_equals", "low"), ticket)
        assert not evaluator.evaluate_clause(clause("status", "equals", "closed"), ticket)

    def test_in_with_scalar_and_list_fields(self, evaluator, ticket):
        """Test list fields match when any item is in the options"""
        assert evaluator.evaluate_clause(clause("status", "in", ["open", "pending"]), ticket)
        assert evaluator.evaluate_clause(clause("tags", "in", ["vip"]), ticket)
        assert evaluator.evaluate_clause(clause("tags", "not_in", ["spam"]), ticket)
        assert evaluator.evaluate_clause(clause("categories", "in", [3]), ticket)

    def test_contains(self, evaluator, ticket):
        """Test substring match is case-insensitive and lists check membership"""
        assert evaluator.evaluate_clause(clause("subject", "contains", "INVOICE"), ticket)
        assert evaluator.evaluate_clause(clause("tags", "contains", "billing"), ticket)
        assert evaluator.evaluate_clause(clause("tags", "not_contains", "spam"), ticket)

    def test_starts_and_ends_with(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("customer_email", "starts_with", "Billing"), ticket)
        assert evaluator.evaluate_clause(clause("customer_email", "ends_with", "@example.com"), ticket)

    def test_null_checks(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("assignee_id", "is_null"), ticket)
        assert evaluator.evaluate_clause(clause("subject", "is_not_null"), ticket)
        assert evaluator.evaluate_clause(clause("meta.region", "is_null"), ticket)


class TestTimeAndComparison:
    """Duration and ordering operators"""

    def test_older_and_newer_than(self, evaluator, ticket):
        """Test durations in units and bare minutes"""
        assert evaluator.evaluate_clause(clause("opened_at", "older_than", "2h"), ticket)
        assert not evaluator.evaluate_clause(clause("opened_at", "older_than", "1d"), ticket)
        assert evaluator.evaluate_clause(clause("updated_at", "newer_than", 15), ticket)

    def test_time_operators_on_missing_timestamp(self, evaluator, ticket):
        """Test a null timestamp is neither older nor newer"""
        assert not evaluator.evaluate_clause(clause("closed_at", "older_than", "1h"), ticket)
        assert not evaluator.evaluate_clause(clause("closed_at", "newer_than", "1h"), ticket)

    def test_priority_compares_by_weight(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("priority", "greater_or_equal", "high"), ticket)
        assert evaluator.evaluate_clause(clause("priority", "greater_than", "normal"), ticket)
        assert not evaluator.evaluate_clause(clause("priority", "greater_than", "urgent"), ticket)

    def test_numeric_and_datetime_comparison(self, evaluator, ticket, clock):
        assert evaluator.evaluate_clause(clause("meta.seats", "greater_than", 10), ticket)
        assert evaluator.evaluate_clause(clause("meta.seats", "less_or_equal", "25"), ticket)
        assert evaluator.evaluate_clause(clause("opened_at", "less_than", clock.now.isoformat()), ticket)

    def test_list_length_comparison(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("tags", "greater_or_equal", 2), ticket)


class TestFailClosed:
    """Broken clauses never match"""

    def test_unknown_field(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("moon_phase", "equals", "full"), ticket) is False

    def test_unknown_operator(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("status", "like", "open"), ticket) is False

    def test_malformed_value(self, evaluator, ticket):
        """Test list operators need a list and durations must parse"""
        assert evaluator.evaluate_clause(clause("status", "in", "open"), ticket) is False
        assert evaluator.evaluate_clause(clause("opened_at", "older_than", "soon"), ticket) is False

    def test_uncomparable_values(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("subject", "greater_than", 3), ticket) is False
        assert evaluator.evaluate_clause(clause("assignee_id", "greater_than", 3), ticket) is False


class TestSlaStatusField:
    """The computed sla_status field"""

    def test_sla_status_from_clock(self, clock, ticket):
        """Test a ticket past its first response deadline reads as breached"""
        sla_clock = SlaClock(StaticSLAConfigProvider(), clock=clock)
        evaluator = ConditionEvaluator(sla_clock=sla_clock, clock=clock)
        sla_clock.calculate_due_dates(ticket)

        assert evaluator.resolve_field(ticket, "sla_status") == "breached"
        assert evaluator.evaluate_clause(clause("sla_status", "equals", "breached"), ticket)

    def test_sla_status_within(self, clock):
        sla_clock = SlaClock(StaticSLAConfigProvider(), clock=clock)
        evaluator = ConditionEvaluator(sla_clock=sla_clock, clock=clock)
        fresh = Ticket(id=2, subject="New", priority="low", opened_at=clock.now)
        sla_clock.calculate_due_dates(fresh)

        assert evaluator.resolve_field(fresh, "sla_status") == "within"


class TestCommentCountField:
    """The computed comment_count field"""

    def test_counts_stored_comments(self, helpdesk, make_ticket):
        ticket = make_ticket()
        helpdesk.tickets.add_comment(ticket, CommentCreateDTO(body="First", author_id="agent-1"))
        helpdesk.tickets.add_comment(ticket, CommentCreateDTO(body="Note", is_internal=True, author_id="agent-1"))

        assert helpdesk.evaluator.resolve_field(ticket, "comment_count") == 2
        assert helpdesk.evaluator.evaluate_clause(clause("comment_count", "greater_or_equal", 1), ticket)
        assert helpdesk.evaluator.evaluate_clause(clause("comment_count", "equals", 2), ticket)
        assert not helpdesk.evaluator.evaluate_clause(clause("comment_count", "less_than", 2), ticket)

    def test_ticket_without_comments(self, helpdesk, make_ticket):
        assert helpdesk.evaluator.evaluate_clause(clause("comment_count", "equals", 0), make_ticket())

    def test_without_comment_store_fails_closed(self, evaluator, ticket):
        assert evaluator.evaluate_clause(clause("comment_count", "greater_or_equal", 0), ticket) is False
