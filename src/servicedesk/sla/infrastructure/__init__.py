"""
SLA Infrastructure Layer
=========================

- External: YAML policy loading and hot-reload
"""

from servicedesk.sla.infrastructure.external import SLAPolicyManager, PolicyFileHandler

__all__ = [
    "SLAPolicyManager",
    "PolicyFileHandler",
]
