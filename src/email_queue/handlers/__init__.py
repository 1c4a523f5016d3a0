"""
Module: handlers
Description: Package initialization for invocation handlers.

- process_queue: HTTP endpoints (FastAPI router)
- scheduled: Lambda entry points for scheduled runs
"""

__all__ = []
