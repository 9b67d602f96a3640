"""
Tickets Module
==============

Bounded context for the ticket lifecycle.

Responsibilities:
- Status registry and state machine
- Creation, comments, reassignment, rating and description edits
- TAT pause/resume and extensions through the SLA module
- Activity log with per-audience visibility
"""
