"""
Core Exceptions
================

Custom exceptions for the helpdesk following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class InvalidTransitionException(DomainException):
    """
    Raised by strict transitions when a status change is not permitted.

    `reason` tells an already-satisfied request apart from a rejected one.
    """

    ALREADY_IN_STATUS = "already_in_status"
    NOT_DEFINED = "not_defined"
    GUARD_REJECTED = "guard_rejected"
    TICKET_DELETED = "ticket_deleted"

    def __init__(
        self,
        ticket_id: Any,
        from_status: Any,
        to_status: Any,
        reason: str,
        guard: Optional[str] = None
    ):
        self.ticket_id = ticket_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        self.guard = guard
        message = f"Ticket {ticket_id} cannot move from {from_status} to {to_status}: {reason}"
        if guard:
            message += f" ({guard})"
        super().__init__(
            message,
            {
                "ticket_id": ticket_id,
                "from_status": from_status,
                "to_status": to_status,
                "reason": reason,
                "guard": guard,
            }
        )


class RuleEvaluationException(DomainException):
    """A condition clause could not be evaluated (unknown field, bad value)."""


class ActionExecutionException(DomainException):
    """An automation action could not be applied."""

    def __init__(self, action_type: str, message: str, details: Optional[dict] = None):
        self.action_type = action_type
        super().__init__(f"{action_type}: {message}", details or {"action_type": action_type})


class UnknownGuardOrActionException(ConfigurationException):
    """A workflow references a guard or action name that is not registered."""

    def __init__(self, kind: str, name: str, workflow: Optional[str] = None):
        self.kind = kind
        self.name = name
        self.workflow = workflow
        message = f"Unknown {kind} '{name}'"
        if workflow:
            message += f" in workflow '{workflow}'"
        super().__init__(message, {"kind": kind, "name": name, "workflow": workflow})


class ConcurrentModificationException(RepositoryException):
    """The stored row changed since the entity was loaded."""

    def __init__(self, entity: str, entity_id: Any, expected_version: int):
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity} {entity_id} was modified concurrently (expected version {expected_version})",
            {"entity": entity, "id": entity_id, "expected_version": expected_version}
        )
