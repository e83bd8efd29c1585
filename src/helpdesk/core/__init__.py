"""
Core Module
============

Shared core utilities and abstractions used across the helpdesk.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from helpdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    InvalidTransitionException,
    RuleEvaluationException,
    ActionExecutionException,
    UnknownGuardOrActionException,
    ConcurrentModificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "InvalidTransitionException",
    "RuleEvaluationException",
    "ActionExecutionException",
    "UnknownGuardOrActionException",
    "ConcurrentModificationException",
]
