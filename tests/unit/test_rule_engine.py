"""
Tests for rule processing, rule management and previews
"""
import pytest
from sqlalchemy import select

from helpdesk.automation.domain import AutomationConfig
from helpdesk.config import TicketPriority, TicketStatus
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.infrastructure.config_manager import HelpdeskConfigManager
from helpdesk.config.document import HelpdeskConfig
from helpdesk.tickets.domain import AutomationRuleExecuted, TicketAssigned, TicketStatusChanged
from helpdesk.tickets.infrastructure import SQLAlchemyCommentStore, SQLAlchemyTicketRepository
from helpdesk.tickets.infrastructure.models import ticket_tags


def rule(name, trigger="manual", priority=0, conditions=None, actions=None, **extra):
    data = {
        "name": name,
        "trigger": trigger,
        "priority": priority,
        "conditions": conditions or [],
        "actions": actions or [{"type": "add_tags", "tags": [name]}],
    }
    data.update(extra)
    return data


class TestRuleOrdering:
    """Rules run by priority descending, then id ascending"""

    def test_priority_then_id(self, helpdesk, make_ticket):
        """Test R3 (priority 20) runs before R1 and R2 (priority 10)"""
        r1 = helpdesk.rules.create_rule(rule("r1", priority=10))
        r2 = helpdesk.rules.create_rule(rule("r2", priority=10))
        r3 = helpdesk.rules.create_rule(rule("r3", priority=20))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.executed == [r3.id, r1.id, r2.id]
        assert result.failed == []
        assert result.skipped == []

    def test_non_matching_rules_are_skipped(self, helpdesk, make_ticket):
        """Test rules whose conditions fail land in skipped"""
        urgent_only = helpdesk.rules.create_rule(rule(
            "urgent-only", conditions=[{"field": "priority", "operator": "equals", "value": "urgent"}]
        ))
        ticket = make_ticket(priority="low")

        result = helpdesk.rules.process_ticket(ticket, "manual")
        assert result.skipped == [urgent_only.id]
        assert result.executed == []

    def test_other_triggers_and_inactive_rules_ignored(self, helpdesk, make_ticket):
        """Test only active rules of the trigger are considered"""
        helpdesk.rules.create_rule(rule("other", trigger="ticket_updated"))
        helpdesk.rules.create_rule(rule("inactive", is_active=False))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")
        assert result.executed == result.failed == result.skipped == []


class TestStopProcessing:
    """stop_processing applies only after a successful rule"""

    def test_successful_rule_stops_processing(self, helpdesk, make_ticket):
        """Test lower priority rules do not run after a stopping rule"""
        first = helpdesk.rules.create_rule(rule("first", priority=5, stop_processing=True))
        helpdesk.rules.create_rule(rule("second", priority=1))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")
        assert result.executed == [first.id]
        assert ticket.tags == ["first"]

    def test_failing_stop_rule_does_not_stop(self, helpdesk, make_ticket):
        """Test a throwing R1 still lets R2 run"""
        r1 = helpdesk.rules.create_rule(rule(
            "r1", priority=5, stop_processing=True,
            actions=[{"type": "add_category", "category_id": 999}],
        ))
        r2 = helpdesk.rules.create_rule(rule("r2", priority=1))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")
        assert result.failed == [r1.id]
        assert result.executed == [r2.id]


class TestRuleAtomicity:
    """A failing action undoes the rule's earlier actions"""

    def test_partial_actions_rolled_back(self, helpdesk, make_ticket, session):
        """Test tags and priority are restored when a later action fails"""
        failing = helpdesk.rules.create_rule(rule("partial", actions=[
            {"type": "add_tags", "tags": ["touched"]},
            {"type": "change_priority", "priority": "urgent"},
            {"type": "add_category", "category_id": 999},
        ]))
        ticket = make_ticket(priority="low")

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.failed == [failing.id]
        assert ticket.tags == []
        assert ticket.priority == TicketPriority.LOW
        stored = SQLAlchemyTicketRepository(session).get_by_id(ticket.id)
        assert stored.tags == []
        assert stored.priority == TicketPriority.LOW

    def test_rolled_back_rule_publishes_no_events(self, helpdesk, make_ticket, recorder):
        """Test assignment and status change events are dropped with the failed rule"""
        failing = helpdesk.rules.create_rule(rule("claim", actions=[
            {"type": "assign", "assignee_id": "agent-7"},
            {"type": "change_status", "status": "in_progress"},
            {"type": "add_category", "category_id": 999},
        ]))
        ticket = make_ticket()
        recorder.events.clear()

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.failed == [failing.id]
        assert ticket.assignee_id is None
        assert ticket.status == TicketStatus.OPEN
        assert recorder.of_type(TicketAssigned) == []
        assert recorder.of_type(TicketStatusChanged) == []

    def test_committed_rule_delivers_events_in_order(self, helpdesk, make_ticket, recorder):
        """Test events of a successful rule arrive once its savepoint is released"""
        helpdesk.rules.create_rule(rule("claim", actions=[
            {"type": "assign", "assignee_id": "agent-7"},
            {"type": "change_status", "status": "in_progress"},
        ]))
        ticket = make_ticket()
        recorder.events.clear()

        helpdesk.rules.process_ticket(ticket, "manual")

        assert [type(event) for event in recorder.events] == [
            TicketAssigned, TicketStatusChanged, AutomationRuleExecuted
        ]

    def test_failure_recorded_in_audit_log(self, helpdesk, make_ticket):
        """Test failed attempts count in the statistics"""
        flaky = helpdesk.rules.create_rule(rule(
            "flaky",
            conditions=[{"field": "priority", "operator": "equals", "value": "high"}],
            actions=[{"type": "add_category", "category_id": 999}],
        ))
        helpdesk.rules.process_ticket(make_ticket(priority="high"), "manual")

        executions = helpdesk.rules.get_rule_executions(flaky.id)
        assert len(executions) == 1
        assert executions[0].success is False
        assert "999" in executions[0].error

    def test_statistics(self, helpdesk, make_ticket, clock):
        """Test success rate and first/last execution times"""
        stats_rule = helpdesk.rules.create_rule(rule("stats", actions=[
            {"type": "add_category", "category_id": 999},
        ]))
        helpdesk.rules.process_ticket(make_ticket(), "manual")
        first_time = clock.now

        helpdesk.rules.update_rule(stats_rule.id, {"actions": [{"type": "add_tags", "tags": ["ok"]}]})
        clock.advance(minutes=5)
        helpdesk.rules.process_ticket(make_ticket(), "manual")

        stats = helpdesk.rules.get_rule_statistics(stats_rule.id)
        assert stats.total_executions == 2
        assert stats.successful_executions == 1
        assert stats.failed_executions == 1
        assert stats.success_rate == 50.0
        assert stats.first_execution == first_time
        assert stats.last_execution == clock.now

    def test_statistics_without_executions(self, helpdesk):
        """Test an unused rule reports zeros"""
        unused = helpdesk.rules.create_rule(rule("unused"))
        stats = helpdesk.rules.get_rule_statistics(unused.id)
        assert stats.total_executions == 0
        assert stats.success_rate == 0.0
        assert stats.first_execution is None


class TestTicketDeletion:
    """A delete action ends rule processing for the ticket"""

    def test_lower_priority_rules_skipped_after_delete(self, helpdesk, make_ticket, session):
        """Test no tags or comments are written for a deleted ticket"""
        purge = helpdesk.rules.create_rule(rule("purge", priority=10, actions=[{"type": "delete"}]))
        helpdesk.rules.create_rule(rule("annotate", priority=5, actions=[
            {"type": "add_tags", "tags": ["late"]},
            {"type": "add_comment", "body": "Seen by automation"},
        ]))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.executed == [purge.id]
        assert result.failed == []
        assert ticket.deleted is True
        assert session.execute(select(ticket_tags).where(ticket_tags.c.ticket_id == ticket.id)).all() == []
        assert SQLAlchemyCommentStore(session).count_for_ticket(ticket.id) == 0

    def test_actions_after_delete_in_same_rule_skipped(self, helpdesk, make_ticket, session):
        """Test the rest of the deleting rule does not run"""
        purge = helpdesk.rules.create_rule(rule("purge", actions=[
            {"type": "delete"},
            {"type": "add_tags", "tags": ["late"]},
        ]))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.executed == [purge.id]
        assert session.execute(select(ticket_tags).where(ticket_tags.c.ticket_id == ticket.id)).all() == []

    def test_delete_from_status_change_automation(self, helpdesk, make_ticket, session):
        """Test a status change whose automation deletes the ticket still counts as executed"""
        helpdesk.workflow.register_workflow("purge", {
            "transitions": {"open:closed": {"trigger_automations": True}},
        })
        close = helpdesk.rules.create_rule(rule(
            "close", actions=[{"type": "change_status", "status": "closed", "workflow": "purge"}]
        ))
        helpdesk.rules.create_rule(rule(
            "purge-closed", trigger="ticket_status_changed", actions=[{"type": "delete"}]
        ))
        ticket = make_ticket()

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.executed == [close.id]
        assert SQLAlchemyTicketRepository(session).get_by_id(ticket.id) is None

    def test_deleted_ticket_is_not_processed(self, helpdesk, make_ticket):
        helpdesk.rules.create_rule(rule("tagger"))
        ticket = make_ticket()
        helpdesk.executor.execute_action({"type": "delete"}, ticket)

        result = helpdesk.rules.process_ticket(ticket, "manual")

        assert result.executed == [] and result.skipped == [] and result.failed == []


class TestAutomationSwitches:
    """Global switch and re-entry bound"""

    def test_disabled_automation_returns_empty(self, session, settings, clock, make_ticket):
        """Test nothing runs when automation is disabled"""
        from helpdesk.main import build_helpdesk

        manager = HelpdeskConfigManager.from_config(HelpdeskConfig(automation=AutomationConfig(enabled=False)))
        helpdesk = build_helpdesk(session, manager, settings=settings, clock=clock)
        helpdesk.rules.create_rule(rule("never"))

        result = helpdesk.rules.process_ticket(make_ticket(), "manual")
        assert result.executed == result.failed == result.skipped == []

    def test_reentry_is_bounded(self, helpdesk, make_ticket):
        """Test rules that keep changing status stop at the depth limit"""
        helpdesk.workflow.register_workflow("loop", {
            "transitions": {
                "open:pending": {"trigger_automations": True},
                "pending:open": {"trigger_automations": True},
            },
        })
        to_open = helpdesk.rules.create_rule(rule(
            "to-open", trigger="ticket_status_changed", stop_processing=True,
            conditions=[{"field": "status", "operator": "equals", "value": "pending"}],
            actions=[{"type": "change_status", "status": "open", "workflow": "loop"}],
        ))
        to_pending = helpdesk.rules.create_rule(rule(
            "to-pending", trigger="ticket_status_changed", stop_processing=True,
            conditions=[{"field": "status", "operator": "equals", "value": "open"}],
            actions=[{"type": "change_status", "status": "pending", "workflow": "loop"}],
        ))
        ticket = make_ticket()

        assert helpdesk.workflow.transition(ticket, TicketStatus.PENDING, "loop") is True

        assert ticket.status == TicketStatus.OPEN
        assert helpdesk.rules.get_rule_statistics(to_open.id).successful_executions == 2
        assert helpdesk.rules.get_rule_statistics(to_pending.id).successful_executions == 1


class TestBatchProcessing:
    """Tickets are processed independently"""

    def test_batch_counts(self, helpdesk, make_ticket):
        """Test a ticket is processed only when some rule executed"""
        helpdesk.rules.create_rule(rule(
            "high-only", trigger="batch",
            conditions=[{"field": "priority", "operator": "equals", "value": "high"}],
        ))
        high = make_ticket(priority="high")
        low = make_ticket(priority="low")

        batch = helpdesk.rules.process_batch([high, low])

        assert batch.processed == 1
        assert batch.failed == 1
        assert batch.details[high.id].executed
        assert batch.details[low.id].executed == []


class TestRuleManagement:
    """Create, update, delete and templates"""

    def test_unknown_trigger_rejected(self, helpdesk):
        """Test triggers must come from the vocabulary"""
        with pytest.raises(ValidationException):
            helpdesk.rules.create_rule(rule("bad", trigger="moon_phase"))

    def test_malformed_conditions_rejected(self, helpdesk):
        """Test unknown operators never reach storage"""
        with pytest.raises(ValidationException):
            helpdesk.rules.create_rule(rule(
                "bad", conditions=[{"field": "subject", "operator": "like", "value": "x"}]
            ))
        assert helpdesk.rules.list_rules() == []

    def test_empty_action_list_rejected(self, helpdesk):
        """Test a rule needs at least one action"""
        with pytest.raises(ValidationException):
            helpdesk.rules.create_rule({"name": "empty", "trigger": "manual", "actions": []})

    def test_update_rule(self, helpdesk):
        """Test only given fields change"""
        created = helpdesk.rules.create_rule(rule("editable", priority=1))
        helpdesk.rules.update_rule(created.id, {"priority": 50, "is_active": False})

        stored = helpdesk.rules.get_rule(created.id)
        assert stored.priority == 50
        assert stored.is_active is False
        assert stored.name == "editable"

    def test_delete_rule_removes_history(self, helpdesk, make_ticket):
        """Test executions go with the rule"""
        doomed = helpdesk.rules.create_rule(rule("doomed"))
        helpdesk.rules.process_ticket(make_ticket(), "manual")

        helpdesk.rules.delete_rule(doomed.id)

        with pytest.raises(ResourceNotFoundException):
            helpdesk.rules.get_rule(doomed.id)
        with pytest.raises(ResourceNotFoundException):
            helpdesk.rules.delete_rule(doomed.id)

    def test_apply_template_with_overrides(self, helpdesk):
        """Test templates become rules"""
        created = helpdesk.rules.apply_template("auto_tag_vip", {"priority": 7})
        assert created.trigger == "ticket_created"
        assert created.priority == 7
        assert created.name == "Auto-tag VIP Customers"

    def test_unknown_template(self, helpdesk):
        """Test a missing template key is reported"""
        with pytest.raises(ResourceNotFoundException):
            helpdesk.rules.apply_template("does_not_exist")

    def test_vocabulary(self, helpdesk):
        """Test triggers and templates are exposed"""
        assert "sla_breached" in helpdesk.rules.get_triggers()
        assert set(helpdesk.rules.get_rule_templates()) == {
            "escalate_high_priority", "auto_tag_vip", "auto_close_resolved", "sla_breach_notification",
        }

    def test_vip_template_end_to_end(self, helpdesk, make_ticket, clock, recorder):
        """Test ticket creation runs ticket_created rules"""
        helpdesk.rules.apply_template("auto_tag_vip")

        ticket = make_ticket(meta={"customer_type": "vip"})

        assert ticket.tags == ["vip", "priority-customer"]
        assert ticket.priority == TicketPriority.HIGH
        assert (ticket.first_response_due_at - ticket.opened_at).total_seconds() == 30 * 60
        assert len(recorder.of_type(AutomationRuleExecuted)) == 1


class TestRulePreview:
    """test_rule never leaves traces"""

    def test_preview_rolls_back_everything(self, helpdesk, make_ticket, session, external_channel, internal_channel):
        """Test actions report success but nothing persists"""
        preview = helpdesk.rules.create_rule(rule("preview", actions=[
            {"type": "add_tags", "tags": ["previewed"]},
            {"type": "change_priority", "priority": "urgent"},
            {"type": "notify", "message": "Heads up on #{ticket_id}"},
        ]))
        ticket = make_ticket(priority="low")
        sent_before = len(internal_channel.sent)

        result = helpdesk.rules.test_rule(preview, ticket)

        assert result.evaluated and result.conditions_met and result.executed
        assert [outcome.success for outcome in result.actions_performed] == [True, True, True]
        assert ticket.tags == []
        assert ticket.priority == TicketPriority.LOW
        stored = SQLAlchemyTicketRepository(session).get_by_id(ticket.id)
        assert stored.tags == []
        assert stored.priority == TicketPriority.LOW
        assert external_channel.sent == []
        assert len(internal_channel.sent) == sent_before + 1
        assert helpdesk.rules.get_rule_statistics(preview.id).total_executions == 0

    def test_preview_reports_each_action(self, helpdesk, make_ticket):
        """Test a failing action does not hide the next one"""
        preview = helpdesk.rules.create_rule(rule("preview", actions=[
            {"type": "add_category", "category_id": 999},
            {"type": "add_tags", "tags": ["after"]},
        ]))

        result = helpdesk.rules.test_rule(preview.id, make_ticket())

        assert [outcome.success for outcome in result.actions_performed] == [False, True]
        assert len(result.errors) == 1
        assert result.executed is False

    def test_preview_publishes_no_events(self, helpdesk, make_ticket, recorder):
        """Test a dry run does not reach event subscribers"""
        preview = helpdesk.rules.create_rule(rule("preview", actions=[
            {"type": "assign", "assignee_id": "agent-7"},
            {"type": "escalate", "level": 2},
        ]))
        ticket = make_ticket()
        recorder.events.clear()

        result = helpdesk.rules.test_rule(preview, ticket)

        assert result.executed is True
        assert recorder.events == []

    def test_preview_skips_webhooks(self, helpdesk, make_ticket):
        """Test webhook actions are not sent during a dry run"""
        preview = helpdesk.rules.create_rule(rule("preview", actions=[
            {"type": "trigger_webhook", "url": "http://unreachable.invalid/hook"},
        ]))

        result = helpdesk.rules.test_rule(preview, make_ticket())

        assert result.executed is True
        assert [outcome.success for outcome in result.actions_performed] == [True]

    def test_preview_conditions_not_met(self, helpdesk, make_ticket):
        """Test nothing runs when conditions fail"""
        preview = helpdesk.rules.create_rule(rule(
            "preview", conditions=[{"field": "status", "operator": "equals", "value": "closed"}]
        ))

        result = helpdesk.rules.test_rule(preview, make_ticket())

        assert result.evaluated is True
        assert result.conditions_met is False
        assert result.executed is False
        assert result.actions_performed == []
