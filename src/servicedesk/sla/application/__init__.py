"""
SLA Application Layer
=====================

Contains:
- SLABreachService: breach check scheduling, execution and startup resync
"""

from servicedesk.sla.application.services import SLABreachService, BreachCheckResult

__all__ = [
    "SLABreachService",
    "BreachCheckResult",
]
