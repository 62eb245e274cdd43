"""
Scheduler Interfaces Layer
==========================

FastAPI routes for job introspection.
"""

from servicedesk.scheduler.interfaces.controllers import router

__all__ = ["router"]
