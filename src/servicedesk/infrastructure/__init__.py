"""
Infrastructure Layer
====================

Cross-cutting infrastructure shared by all bounded contexts.
"""
