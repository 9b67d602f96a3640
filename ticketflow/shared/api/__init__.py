"""
Shared API
==========

Middleware, exception handlers, common dependencies and the cron triggers.
"""
