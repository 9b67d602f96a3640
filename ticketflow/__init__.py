"""
Ticketflow
==========

Ticket lifecycle and SLA engine.

Architecture Pattern: Modular Monolith
- tickets: lifecycle state machine and mutations
- sla: business-hour TAT and escalation
- assignment: routing tickets to admins
- outbox: reliable notifications
- identity: local mirror of identity-provider users
"""

__version__ = "1.0.0"
