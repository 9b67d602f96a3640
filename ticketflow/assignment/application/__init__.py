"""
Assignment Application Layer
============================
"""

from ticketflow.assignment.application.interfaces import IAssignmentRepository

__all__ = ["IAssignmentRepository"]
