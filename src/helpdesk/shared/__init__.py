"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (tickets, SLA,
workflow, automation).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from the bounded contexts to the shared kernel.
"""
