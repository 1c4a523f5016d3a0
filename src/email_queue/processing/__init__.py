"""
Package: processing
Description: Batch claiming, run coordination and stale-lock reconciliation.
"""
