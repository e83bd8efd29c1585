"""
Tests for the automation action catalogue
"""
import json
from types import SimpleNamespace

import httpx
import pytest

from helpdesk.automation.application import render_placeholders
from helpdesk.config import TicketPriority, TicketStatus
from helpdesk.core import ActionExecutionException
from helpdesk.main import build_helpdesk
from helpdesk.tickets.domain import TicketAssigned, TicketEscalated
from helpdesk.tickets.infrastructure import (
    SQLAlchemyCategoryStore, SQLAlchemyCommentStore, SQLAlchemyTicketRepository
)


@pytest.fixture
def repository(session):
    return SQLAlchemyTicketRepository(session)


@pytest.fixture
def comments(session):
    return SQLAlchemyCommentStore(session)


@pytest.fixture
def webhook(session, config_manager, settings, clock, notifier, events):
    """Helpdesk whose webhook client answers with the queued statuses (200 once empty)."""
    requests = []
    statuses = []

    def handler(request):
        requests.append(request)
        status = statuses.pop(0) if statuses else 200
        if status == "refused":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    helpdesk = build_helpdesk(
        session,
        config_manager,
        settings=settings,
        clock=clock,
        notifier=notifier,
        events=events,
        http_client=client,
    )
    yield SimpleNamespace(executor=helpdesk.executor, requests=requests, statuses=statuses)
    client.close()


class TestAssignmentActions:
    """assign / unassign"""

    def test_assign(self, helpdesk, make_ticket, repository, recorder):
        ticket = make_ticket()

        assert helpdesk.executor.execute_action({"type": "assign", "assignee_id": "agent-3"}, ticket) is True

        assert repository.get_by_id(ticket.id).assignee_id == "agent-3"
        assert recorder.of_type(TicketAssigned)[-1].assignee_id == "agent-3"

    def test_assign_requires_assignee(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException) as exc_info:
            helpdesk.executor.execute_action({"type": "assign"}, make_ticket())
        assert exc_info.value.action_type == "assign"

    def test_unassign(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(assignee_id="agent-3")
        helpdesk.executor.execute_action({"type": "unassign"}, ticket)
        assert repository.get_by_id(ticket.id).assignee_id is None


class TestStatusAndPriorityActions:
    """change_status goes through the workflow"""

    def test_change_status_respects_guards(self, helpdesk, make_ticket):
        """Test an unassigned ticket cannot be moved to in_progress"""
        ticket = make_ticket()
        assert helpdesk.executor.execute_action({"type": "change_status", "status": "in_progress"}, ticket) is False
        assert ticket.status == TicketStatus.OPEN

    def test_change_status(self, helpdesk, make_ticket, repository):
        ticket = make_ticket()
        assert helpdesk.executor.execute_action({"type": "change_status", "status": "resolved"}, ticket) is True
        assert repository.get_by_id(ticket.id).status == TicketStatus.RESOLVED

    def test_change_status_to_current_status(self, helpdesk, make_ticket):
        """Test an already satisfied status change succeeds"""
        ticket = make_ticket()
        assert helpdesk.executor.execute_action({"type": "change_status", "status": "open"}, ticket) is True

    def test_change_status_unknown_status(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "change_status", "status": "archived"}, make_ticket())

    def test_change_priority(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(priority="low")
        helpdesk.executor.execute_action({"type": "change_priority", "priority": "urgent"}, ticket)
        assert repository.get_by_id(ticket.id).priority == TicketPriority.URGENT

    def test_escalate(self, helpdesk, make_ticket, repository, recorder, clock):
        """Test escalation records level, raises priority and publishes"""
        ticket = make_ticket(priority="normal")

        helpdesk.executor.execute_action(
            {"type": "escalate", "level": 2, "priority": "urgent", "assignee_id": "lead-1"}, ticket
        )

        stored = repository.get_by_id(ticket.id)
        assert stored.meta["escalation_level"] == 2
        assert stored.meta["escalated_at"] == clock.now.isoformat()
        assert stored.priority == TicketPriority.URGENT
        assert stored.assignee_id == "lead-1"
        assert recorder.of_type(TicketEscalated)[-1].level == 2

    def test_escalate_level_must_be_positive(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "escalate", "level": 0}, make_ticket())


class TestLabelActions:
    """Tags and categories"""

    def test_add_and_remove_tags(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(tags=["billing"])

        helpdesk.executor.execute_action({"type": "add_tags", "tags": ["vip", "billing"]}, ticket)
        assert repository.get_by_id(ticket.id).tags == ["billing", "vip"]

        helpdesk.executor.execute_action({"type": "remove_tags", "tags": ["billing"]}, ticket)
        assert repository.get_by_id(ticket.id).tags == ["vip"]

    def test_tags_required(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "add_tags", "tags": []}, make_ticket())

    def test_categories(self, helpdesk, make_ticket, repository, session):
        category_id = SQLAlchemyCategoryStore(session).create("Billing", "billing")
        ticket = make_ticket()

        helpdesk.executor.execute_action({"type": "add_category", "category_id": category_id}, ticket)
        assert repository.get_by_id(ticket.id).category_ids == [category_id]

        helpdesk.executor.execute_action({"type": "remove_category", "category_id": category_id}, ticket)
        assert repository.get_by_id(ticket.id).category_ids == []

    def test_unknown_category(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "add_category", "category_id": 404}, make_ticket())


class TestCommunicationActions:
    """Comments, notifications and response templates"""

    def test_add_comment_is_internal_by_default(self, helpdesk, make_ticket, comments):
        ticket = make_ticket()
        helpdesk.executor.execute_action({"type": "add_comment", "body": "Checked #{ticket_id}"}, ticket, rule_id=9)

        [comment] = comments.list_for_ticket(ticket.id)
        assert comment.is_internal is True
        assert comment.body == f"Checked #{ticket.id}"
        assert comment.meta["automation_rule_id"] == 9

    def test_notify_renders_message(self, helpdesk, make_ticket, internal_channel):
        ticket = make_ticket(priority="high")
        helpdesk.executor.execute_action(
            {"type": "notify", "message": "{ticket_priority} ticket #{ticket_id}", "recipients": "assignee"},
            ticket,
        )

        payload = internal_channel.sent[-1]
        assert payload.event == "automation_notification"
        assert payload.message == f"High ticket #{ticket.id}"
        assert payload.recipients == ["assignee"]

    def test_apply_template(self, helpdesk, make_ticket, comments):
        """Test response templates become public replies"""
        ticket = make_ticket(customer_name="Grace")
        helpdesk.executor.execute_action({"type": "apply_template", "template": "welcome"}, ticket)

        [reply] = comments.list_for_ticket(ticket.id)
        assert reply.is_internal is False
        assert "Hello Grace" in reply.body
        assert f"#{ticket.id}" in reply.body
        assert "Support Team" in reply.body

    def test_apply_template_with_variables(self, helpdesk, make_ticket, comments):
        ticket = make_ticket()
        helpdesk.executor.execute_action(
            {"type": "apply_template", "template": "awaiting-response", "variables": {"message": "Send logs"}},
            ticket,
        )
        assert "Send logs" in comments.list_for_ticket(ticket.id)[0].body

    def test_unknown_template(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "apply_template", "template": "nope"}, make_ticket())

    def test_unknown_placeholders_left_alone(self):
        assert render_placeholders("Hi {name}, {unknown}", {"name": "Ada"}) == "Hi Ada, {unknown}"


class TestDataActions:
    """delete, update_sla and set_custom_field"""

    def test_delete(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(tags=["spam"])
        helpdesk.executor.execute_action({"type": "delete"}, ticket)
        assert repository.get_by_id(ticket.id) is None
        assert ticket.deleted is True

    def test_deleted_ticket_rejects_actions(self, helpdesk, make_ticket):
        ticket = make_ticket()
        helpdesk.executor.execute_action({"type": "delete"}, ticket)

        with pytest.raises(ActionExecutionException) as exc_info:
            helpdesk.executor.execute_action({"type": "add_tags", "tags": ["late"]}, ticket)
        assert "deleted" in exc_info.value.message

    def test_update_sla(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(priority="low")
        helpdesk.executor.execute_action(
            {"type": "update_sla", "first_response_minutes": 15, "resolution_minutes": 60}, ticket
        )

        stored = repository.get_by_id(ticket.id)
        assert (stored.first_response_due_at - stored.opened_at).total_seconds() == 15 * 60
        assert (stored.resolution_due_at - stored.opened_at).total_seconds() == 60 * 60

    def test_update_sla_needs_a_target(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "update_sla"}, make_ticket())

    def test_set_custom_field(self, helpdesk, make_ticket, repository):
        ticket = make_ticket(meta={"plan": "free"})
        helpdesk.executor.execute_action({"type": "set_custom_field", "field": "plan", "value": "pro"}, ticket)
        assert repository.get_by_id(ticket.id).meta == {"plan": "pro"}


class TestActionLists:
    """execute_actions is fail-fast"""

    def test_stops_at_first_failure(self, helpdesk, make_ticket):
        ticket = make_ticket()
        ok = helpdesk.executor.execute_actions([
            {"type": "change_status", "status": "in_progress"},
            {"type": "add_tags", "tags": ["never"]},
        ], ticket)

        assert ok is False
        assert ticket.tags == []

    def test_all_succeed(self, helpdesk, make_ticket):
        ticket = make_ticket()
        ok = helpdesk.executor.execute_actions([
            {"type": "add_tags", "tags": ["a"]},
            {"type": "set_custom_field", "field": "seen", "value": True},
        ], ticket)
        assert ok is True

    def test_unknown_action_type(self, helpdesk, make_ticket):
        with pytest.raises(ActionExecutionException):
            helpdesk.executor.execute_action({"type": "teleport"}, make_ticket())


class TestWebhookAction:
    """trigger_webhook posts the ticket through httpx"""

    HOOK_URL = "https://hooks.example.test/helpdesk"

    def test_posts_ticket_payload(self, webhook, make_ticket, clock):
        ticket = make_ticket(priority="high", tags=["billing"])

        ok = webhook.executor.execute_action(
            {"type": "trigger_webhook", "url": self.HOOK_URL, "headers": {"X-Token": "s3cret"}}, ticket, 4
        )

        assert ok is True
        [request] = webhook.requests
        assert request.method == "POST"
        assert str(request.url) == self.HOOK_URL
        assert request.headers["x-token"] == "s3cret"
        body = json.loads(request.content)
        assert body["ticket"]["id"] == ticket.id
        assert body["ticket"]["priority"] == "high"
        assert body["ticket"]["tags"] == ["billing"]
        assert body["trigger"] == "automation"
        assert body["timestamp"] == clock.now.isoformat()

    def test_method_and_trigger_params(self, webhook, make_ticket):
        webhook.executor.execute_action(
            {"type": "trigger_webhook", "url": self.HOOK_URL, "method": "put", "trigger": "escalation"},
            make_ticket(),
        )

        [request] = webhook.requests
        assert request.method == "PUT"
        assert json.loads(request.content)["trigger"] == "escalation"

    def test_non_2xx_fails(self, webhook, make_ticket):
        webhook.statuses.append(502)
        assert webhook.executor.execute_action({"type": "trigger_webhook", "url": self.HOOK_URL}, make_ticket()) is False

    def test_any_2xx_succeeds(self, webhook, make_ticket):
        webhook.statuses.append(204)
        assert webhook.executor.execute_action({"type": "trigger_webhook", "url": self.HOOK_URL}, make_ticket()) is True

    def test_transport_error_fails(self, webhook, make_ticket):
        webhook.statuses.append("refused")
        assert webhook.executor.execute_action({"type": "trigger_webhook", "url": self.HOOK_URL}, make_ticket()) is False

    def test_url_required(self, webhook, make_ticket):
        with pytest.raises(ActionExecutionException) as exc_info:
            webhook.executor.execute_action({"type": "trigger_webhook"}, make_ticket())
        assert exc_info.value.action_type == "trigger_webhook"

    def test_muted_executor_sends_nothing(self, webhook, make_ticket):
        with webhook.executor.external_muted():
            ok = webhook.executor.execute_action({"type": "trigger_webhook", "url": self.HOOK_URL}, make_ticket())

        assert ok is True
        assert webhook.requests == []
