"""
Scheduler Infrastructure Layer
==============================

- External: APScheduler tick loop
"""

from servicedesk.scheduler.infrastructure.external import TickLoop

__all__ = ["TickLoop"]
