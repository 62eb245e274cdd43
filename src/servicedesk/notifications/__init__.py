"""
Notifications Module
====================

Bounded context for outbound ticket notifications.

Responsibilities:
- Resolve recipients per notification type
- Render subject and HTML body for a ticket
- Deliver one message per recipient, isolating per-recipient failures
"""

__version__ = "1.0.0"
