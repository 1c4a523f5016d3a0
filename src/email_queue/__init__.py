"""
Package: email_queue
Description: Queue-draining worker for outbound email.

Claims batches of queued emails from DynamoDB, dispatches them to a
delivery provider and records each item's fate with lock-guarded writes.
"""

__version__ = "0.1.0"
