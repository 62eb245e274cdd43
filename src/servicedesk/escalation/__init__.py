"""
Escalation Module
=================

Bounded context for moving breached tickets up the support tiers.

Responsibilities:
- Resolve an organization's ordered escalation chain
- Reassign a ticket to the next team and clear its assignee
- Surface missing escalation targets as operational errors
"""

__version__ = "1.0.0"
