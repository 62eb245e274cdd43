"""
Tickets Module
==============

Bounded context for the ticket lifecycle.

Responsibilities:
- Validate status transitions against the workflow state machine
- Apply transition side-effects and write the audit trail
- Stamp SLA deadlines on new tickets and hand deferred work to the scheduler
- Expose the in-process API used by the ticket CRUD handlers
"""

__version__ = "1.0.0"
