"""
Surveys Module
==============

Bounded context for customer satisfaction (CSAT) surveys.

Responsibilities:
- Schedule the survey e-mail after a ticket is resolved
- Decline to send when the ticket has been reopened meanwhile
- Accept one token-addressed response per survey
- Aggregate CSAT metrics per organization
"""

__version__ = "1.0.0"
