"""
SLA Module
==========

Bounded context for turnaround time (TAT) tracking and escalation.

Responsibilities:
- Business-hour deadlines on a configurable calendar
- Pause/resume while waiting on the ticket creator
- TAT extensions
- Manual and automatic escalation along configured rules
- Config hot-reload via watchdog
"""
