"""
Shared Kernel Module
====================

Generic infrastructure used across all bounded contexts (tickets, SLA,
assignment, outbox).

DO NOT add ticket or SLA business logic to the shared kernel.
"""
