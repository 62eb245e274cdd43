"""
Escalation Application Layer
============================

Contains:
- EscalationEngine: next-team resolution and reassignment
"""

from servicedesk.escalation.application.services import EscalationEngine, EscalationResult

__all__ = [
    "EscalationEngine",
    "EscalationResult",
]
