"""
Module: storage
Description: Package initialization for the queue persistence layer.

This package contains the DynamoDB queue store:
- dynamodb: conditional claim and lock-guarded finalization
"""

from .dynamodb import QueueStoreClient, StoreUnavailableError

__all__ = ["QueueStoreClient", "StoreUnavailableError"]
