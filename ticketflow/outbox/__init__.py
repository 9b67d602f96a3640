"""
Outbox Module
=============

Bounded context for reliable, at-least-once delivery of ticket side effects.

Responsibilities:
- Durable event queue written after ticket mutations
- Exclusive claiming by one or more dispatchers
- Retry with exponential backoff and dead-lettering
- Slack and email delivery adapters
"""
