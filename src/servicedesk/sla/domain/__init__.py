"""
SLA Domain Layer
================

Contains:
- Value Objects: SLARule, SLAPolicy, EscalationConfig, SLADeadline
- Domain Services: SLAPolicyResolver

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from servicedesk.sla.domain.value_objects import (
    SLARule,
    SLAPolicy,
    EscalationConfig,
    SLAPolicyResolver,
    StaticPolicyProvider,
    SLADeadline,
    DEFAULT_SLA_RULES,
)

__all__ = [
    "SLARule",
    "SLAPolicy",
    "EscalationConfig",
    "SLAPolicyResolver",
    "StaticPolicyProvider",
    "SLADeadline",
    "DEFAULT_SLA_RULES",
]
