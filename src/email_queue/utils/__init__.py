"""
Module: utils
Description: Package initialization for shared utilities.

- logger: structlog configuration
- metrics: CloudWatch metrics publishing
"""

__all__ = []
