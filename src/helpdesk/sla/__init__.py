"""
SLA Module
==========

Bounded context for SLA deadlines, compliance and breach detection.

Follows Clean Architecture:
- domain/: Rule table value objects and compliance reports
- application/: SlaClock and SlaMonitor
- infrastructure/: Background scheduler
"""
