"""
Survey Interfaces Layer
=======================

FastAPI routes for CSAT surveys.
"""

from servicedesk.surveys.interfaces.controllers import router

__all__ = ["router"]
