"""
Delayed Job Scheduler Module
============================

Bounded context for deferred, time-ordered work.

Responsibilities:
- Hold typed jobs until their scheduled time
- Execute due jobs once per tick, in insertion order
- Retry transient failures with backoff, dead-letter the rest
- Purge completed jobs after the retention window
"""

__version__ = "1.0.0"
