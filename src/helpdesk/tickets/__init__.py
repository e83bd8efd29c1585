"""
Tickets Module
==============

Bounded context for the ticket aggregate: entity, domain events,
persistence and collaborator stores (tags, categories, comments).

Follows Clean Architecture:
- domain/: Business entities and events
- application/: Interfaces and services
- infrastructure/: Database models and repositories
"""
