"""
Tickets Infrastructure Layer
============================

SQLAlchemy models and repositories for tickets, statuses, categories,
activity and idempotency keys.
"""
