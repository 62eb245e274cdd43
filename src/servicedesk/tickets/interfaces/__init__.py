"""
Ticket Interfaces Layer
=======================

FastAPI routes for the ticket workflow.
"""

from servicedesk.tickets.interfaces.controllers import router

__all__ = ["router"]
