"""
SLA Module
==========

Bounded context for service level agreements.

Responsibilities:
- Load the per-priority SLA policy (YAML, hot reload)
- Compute resolution and first-response deadlines
- Schedule and execute breach checks
"""

__version__ = "1.0.0"
