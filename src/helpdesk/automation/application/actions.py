"""
Action Executor
===============

Applies automation actions to a ticket. Each handler validates its own
parameters and raises ActionExecutionException when they are missing or
invalid; `execute_actions` stops at the first failure.

A `delete` action ends processing of the ticket: the remaining actions
of the rule are skipped and the rule engine runs no further rules.
"""

import re
from contextlib import ExitStack, contextmanager
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from helpdesk.automation.domain import ActionSpec, ResponseTemplate
from helpdesk.config import TicketPriority, TicketStatus
from helpdesk.core import ActionExecutionException
from helpdesk.notifications import NotificationDispatcher
from helpdesk.shared.clock import Clock, utcnow
from helpdesk.shared.infrastructure.events import EventDispatcher, NullEventDispatcher
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import (
    ICategoryStore, ICommentStore, ITagStore, ITicketRepository
)
from helpdesk.tickets.domain import Ticket, TicketAssigned, TicketComment, TicketEscalated

logger = get_logger(__name__)

Handler = Callable[[Dict[str, Any], Ticket, Optional[int]], bool]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

WEBHOOK_TIMEOUT_SECONDS = 10.0


def ticket_variables(ticket: Ticket) -> Dict[str, Any]:
    """Placeholder values for messages and response templates."""
    return {
        "ticket_id": ticket.id,
        "ticket_number": ticket.id,
        "ticket_subject": ticket.subject,
        "ticket_type": ticket.type.value.replace("_", " ").title(),
        "ticket_status": ticket.status.label,
        "ticket_priority": ticket.priority.value.title(),
        "customer_name": ticket.customer_name or "",
        "customer_email": ticket.customer_email or "",
        "agent_name": "Support Team",
    }


def webhook_payload(ticket: Ticket, trigger: str, occurred_at: Any) -> Dict[str, Any]:
    """JSON body posted by `trigger_webhook`."""
    return {
        "ticket": {
            "id": ticket.id,
            "subject": ticket.subject,
            "type": ticket.type.value,
            "status": ticket.status.value,
            "priority": ticket.priority.value,
            "assignee_id": ticket.assignee_id,
            "customer_name": ticket.customer_name,
            "customer_email": ticket.customer_email,
            "tags": list(ticket.tags),
            "meta": dict(ticket.meta),
            "opened_at": ticket.opened_at.isoformat() if ticket.opened_at else None,
            "sla_breached": ticket.sla_breached,
        },
        "trigger": trigger,
        "timestamp": occurred_at.isoformat(),
    }


def render_placeholders(text: str, variables: Mapping[str, Any]) -> str:
    """Replace `{name}` placeholders; unknown names are left as written."""
    return _PLACEHOLDER.sub(
        lambda match: str(variables[match.group(1)]) if match.group(1) in variables else match.group(0),
        text,
    )


class ActionExecutor:
    """
    Fixed catalogue of automation actions.

    `change_status` goes through the transition engine, so guards and
    transition side effects apply to automation as well.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        tag_store: ITagStore,
        category_store: ICategoryStore,
        comment_store: ICommentStore,
        notifier: Optional[NotificationDispatcher] = None,
        response_templates: Optional[Callable[[], Mapping[str, ResponseTemplate]]] = None,
        events: Optional[EventDispatcher] = None,
        clock: Clock = utcnow,
        http_client: Optional[httpx.Client] = None
    ):
        self._tickets = ticket_repository
        self._tags = tag_store
        self._categories = category_store
        self._comments = comment_store
        self._notifier = notifier
        self._response_templates = response_templates or (lambda: {})
        self._events = events or NullEventDispatcher()
        self._clock = clock
        self._http_client = http_client
        self._muted = 0
        self._transition_engine: Optional[Any] = None

        self._handlers: Dict[str, Handler] = {
            "assign": self._assign,
            "unassign": self._unassign,
            "change_status": self._change_status,
            "change_priority": self._change_priority,
            "add_tags": self._add_tags,
            "remove_tags": self._remove_tags,
            "add_category": self._add_category,
            "remove_category": self._remove_category,
            "add_comment": self._add_comment,
            "notify": self._notify,
            "escalate": self._escalate,
            "apply_template": self._apply_template,
            "delete": self._delete,
            "update_sla": self._update_sla,
            "set_custom_field": self._set_custom_field,
            "trigger_webhook": self._trigger_webhook,
        }

    def attach_transition_engine(self, engine: Any) -> None:
        self._transition_engine = engine

    @contextmanager
    def external_muted(self) -> Iterator[None]:
        """Skip webhooks and external notification channels for the duration."""
        with ExitStack() as stack:
            if self._notifier is not None:
                stack.enter_context(self._notifier.external_muted())
            self._muted += 1
            try:
                yield
            finally:
                self._muted -= 1

    def _get_http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=WEBHOOK_TIMEOUT_SECONDS)
        return self._http_client

    def close(self) -> None:
        """Close the webhook HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def execute_action(
        self,
        spec: Union[ActionSpec, dict],
        ticket: Ticket,
        rule_id: Optional[int] = None
    ) -> bool:
        """
        Apply one action.

        Raises:
            ActionExecutionException: unknown type or invalid parameters
        """
        if not isinstance(spec, ActionSpec):
            try:
                spec = ActionSpec.model_validate(spec)
            except ValidationError as e:
                action_type = spec.get("type", "unknown") if isinstance(spec, dict) else "unknown"
                raise ActionExecutionException(str(action_type), "invalid action spec") from e

        handler = self._handlers.get(spec.type)
        if handler is None:
            raise ActionExecutionException(spec.type, "no handler registered")
        if ticket.deleted:
            raise ActionExecutionException(spec.type, f"ticket {ticket.id} has been deleted")

        result = handler(spec.params, ticket, rule_id)
        logger.debug(
            "Automation action applied",
            extra={"ticket_id": ticket.id, "action_type": spec.type, "rule_id": rule_id, "success": result}
        )
        return result

    def execute_actions(
        self,
        specs: Iterable[Union[ActionSpec, dict]],
        ticket: Ticket,
        rule_id: Optional[int] = None
    ) -> bool:
        """
        Run actions in order; stop and return False at the first failure.

        Actions after a successful `delete` are skipped.
        """
        for spec in specs:
            if ticket.deleted:
                logger.info(
                    "Ticket deleted, skipping remaining actions",
                    extra={"ticket_id": ticket.id, "rule_id": rule_id}
                )
                break
            if not self.execute_action(spec, ticket, rule_id):
                logger.warning(
                    "Automation action failed",
                    extra={
                        "ticket_id": ticket.id,
                        "rule_id": rule_id,
                        "action_type": spec.type if isinstance(spec, ActionSpec) else spec.get("type"),
                    }
                )
                return False
        return True

    # ========== Parameter helpers ==========

    @staticmethod
    def _require(params: Dict[str, Any], action_type: str, *names: str) -> Any:
        """First present parameter among `names` (aliases)."""
        for name in names:
            value = params.get(name)
            if value not in (None, "", []):
                return value
        raise ActionExecutionException(action_type, f"missing required parameter '{names[0]}'")

    @staticmethod
    def _string_list(value: Any, action_type: str) -> List[str]:
        items = [value] if isinstance(value, str) else list(value)
        names = [str(item).strip() for item in items if str(item).strip()]
        if not names:
            raise ActionExecutionException(action_type, "empty tag list")
        return names

    @staticmethod
    def _int(value: Any, action_type: str, name: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ActionExecutionException(action_type, f"'{name}' must be an integer") from None

    # ========== Handlers ==========

    def _assign(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        assignee_id = self._require(params, "assign", "assignee_id", "user_id")
        if ticket.assign_to(str(assignee_id)):
            self._tickets.save(ticket)
            self._events.publish(TicketAssigned(
                ticket_id=ticket.id, occurred_at=self._clock(), assignee_id=ticket.assignee_id
            ))
        return True

    def _unassign(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        if ticket.release_assignment():
            self._tickets.save(ticket)
            self._events.publish(TicketAssigned(
                ticket_id=ticket.id, occurred_at=self._clock(), assignee_id=None
            ))
        return True

    def _change_status(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        raw_status = self._require(params, "change_status", "status")
        try:
            status = TicketStatus(raw_status)
        except ValueError:
            raise ActionExecutionException("change_status", f"unknown status '{raw_status}'") from None

        if self._transition_engine is None:
            raise ActionExecutionException("change_status", "no transition engine attached")
        if ticket.status == status:
            return True
        moved = self._transition_engine.transition(ticket, status, params.get("workflow", "default"))
        # status-change automation may have deleted the ticket
        return moved or ticket.deleted

    def _change_priority(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        raw_priority = self._require(params, "change_priority", "priority")
        try:
            priority = TicketPriority(raw_priority)
        except ValueError:
            raise ActionExecutionException("change_priority", f"unknown priority '{raw_priority}'") from None

        if ticket.priority != priority:
            ticket.priority = priority
            self._tickets.save(ticket)
        return True

    def _add_tags(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        names = self._string_list(self._require(params, "add_tags", "tags", "tag_names"), "add_tags")
        self._tags.attach(ticket, names)
        return True

    def _remove_tags(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        names = self._string_list(self._require(params, "remove_tags", "tags", "tag_names"), "remove_tags")
        self._tags.detach(ticket, names)
        return True

    def _add_category(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        category_id = self._int(self._require(params, "add_category", "category_id"), "add_category", "category_id")
        if not self._categories.exists(category_id):
            raise ActionExecutionException("add_category", f"category {category_id} does not exist")
        self._categories.attach(ticket, category_id)
        return True

    def _remove_category(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        category_id = self._int(
            self._require(params, "remove_category", "category_id"), "remove_category", "category_id"
        )
        self._categories.detach(ticket, category_id)
        return True

    def _add_comment(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        body = self._require(params, "add_comment", "body", "note")
        self._comments.add(TicketComment(
            id=None,
            ticket_id=ticket.id,
            body=render_placeholders(str(body), ticket_variables(ticket)),
            is_internal=bool(params.get("internal", True)),
            meta={"automation_rule_id": rule_id, "type": "automation_note"},
            created_at=self._clock(),
        ))
        return True

    def _notify(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        message = self._require(params, "notify", "message")
        if self._notifier is None:
            logger.debug("No notifier configured, skipping notify action", extra={"ticket_id": ticket.id})
            return True

        recipients = params.get("recipients", [])
        if isinstance(recipients, str):
            recipients = [recipients]
        self._notifier.notify(
            str(params.get("event", "automation_notification")),
            ticket,
            render_placeholders(str(message), ticket_variables(ticket)),
            subject=params.get("subject"),
            recipients=[str(recipient) for recipient in recipients],
            context={"rule_id": rule_id},
        )
        return True

    def _escalate(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        level = self._int(params.get("level", 1), "escalate", "level")
        if level < 1:
            raise ActionExecutionException("escalate", "'level' must be at least 1")

        now = self._clock()
        ticket.meta = {**ticket.meta, "escalation_level": level, "escalated_at": now.isoformat()}

        if params.get("priority"):
            try:
                ticket.priority = TicketPriority(params["priority"])
            except ValueError:
                raise ActionExecutionException("escalate", f"unknown priority '{params['priority']}'") from None
        if params.get("assignee_id"):
            ticket.assign_to(str(params["assignee_id"]))

        self._tickets.save(ticket)
        self._events.publish(TicketEscalated(ticket_id=ticket.id, occurred_at=now, level=level))
        logger.info(
            "Ticket escalated",
            extra={"ticket_id": ticket.id, "level": level, "rule_id": rule_id}
        )
        return True

    def _apply_template(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        key = self._require(params, "apply_template", "template")
        template = self._response_templates().get(key)
        if template is None:
            raise ActionExecutionException("apply_template", f"response template '{key}' not found")

        variables = {**ticket_variables(ticket), **dict(params.get("variables") or {})}
        self._comments.add(TicketComment(
            id=None,
            ticket_id=ticket.id,
            body=render_placeholders(template.body, variables),
            is_internal=bool(params.get("internal", False)),
            meta={"automation_rule_id": rule_id, "response_template": key},
            created_at=self._clock(),
        ))
        return True

    def _delete(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        self._tickets.delete(ticket)
        logger.info("Ticket deleted by automation", extra={"ticket_id": ticket.id, "rule_id": rule_id})
        return True

    def _update_sla(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        first_response = params.get("first_response_minutes")
        resolution = params.get("resolution_minutes")
        if first_response is None and resolution is None:
            raise ActionExecutionException(
                "update_sla", "missing required parameter 'first_response_minutes' or 'resolution_minutes'"
            )
        if ticket.opened_at is None:
            raise ActionExecutionException("update_sla", "ticket has no opened_at")

        if first_response is not None:
            minutes = self._int(first_response, "update_sla", "first_response_minutes")
            ticket.first_response_due_at = ticket.opened_at + timedelta(minutes=minutes)
        if resolution is not None:
            minutes = self._int(resolution, "update_sla", "resolution_minutes")
            ticket.resolution_due_at = ticket.opened_at + timedelta(minutes=minutes)

        self._tickets.save(ticket)
        return True

    def _set_custom_field(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        field = self._require(params, "set_custom_field", "field")
        ticket.meta = {**ticket.meta, str(field): params.get("value")}
        self._tickets.save(ticket)
        return True

    def _trigger_webhook(self, params: Dict[str, Any], ticket: Ticket, rule_id: Optional[int]) -> bool:
        url = str(self._require(params, "trigger_webhook", "url"))
        method = str(params.get("method", "POST")).upper()
        headers = {str(name): str(value) for name, value in dict(params.get("headers") or {}).items()}

        if self._muted:
            logger.debug("External delivery muted, skipping webhook", extra={"ticket_id": ticket.id, "url": url})
            return True

        payload = webhook_payload(ticket, str(params.get("trigger", "automation")), self._clock())
        try:
            response = self._get_http_client().request(
                method, url, json=payload, headers=headers, timeout=WEBHOOK_TIMEOUT_SECONDS
            )
        except httpx.HTTPError as e:
            logger.error(
                "Automation webhook failed",
                extra={"ticket_id": ticket.id, "rule_id": rule_id, "url": url, "error": str(e)}
            )
            return False

        if not response.is_success:
            logger.warning(
                "Automation webhook rejected",
                extra={"ticket_id": ticket.id, "rule_id": rule_id, "url": url, "status_code": response.status_code}
            )
            return False

        logger.info(
            "Automation webhook delivered",
            extra={"ticket_id": ticket.id, "rule_id": rule_id, "url": url, "status_code": response.status_code}
        )
        return True
