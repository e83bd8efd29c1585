"""
Workflow Module
===============

Bounded context for ticket status transitions.

Follows Clean Architecture:
- domain/: Workflow definitions, guards, transition actions
- application/: StatusTransitionEngine
"""
