"""
Escalation Domain Layer
=======================

Contains:
- Value Objects: EscalationPolicy
"""

from servicedesk.escalation.domain.value_objects import EscalationPolicy, TIER_PATTERN, tier_of

__all__ = [
    "EscalationPolicy",
    "TIER_PATTERN",
    "tier_of",
]
