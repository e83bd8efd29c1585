"""
Helpdesk
========

Ticket workflow, automation and SLA tracking for a support helpdesk.

Modules:
- Workflow: Guarded status state machine with before/after actions
- Automation: Priority-ordered rule engine (conditions + actions)
- SLA: Due-date calculation, compliance and breach detection

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, configuration, notifications
"""

__version__ = "1.0.0"
