"""
ServiceDesk Core
================

Ticket lifecycle automation core.

Modules:
- tickets: workflow state machine and ticket mutations
- sla: SLA policy, deadlines and breach checks
- scheduler: delayed job scheduler and tick loop
- escalation: team escalation chain
- notifications: recipient resolution and outbound channels
- surveys: CSAT surveys and metrics
"""

__version__ = "1.0.0"
