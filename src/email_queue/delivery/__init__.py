"""
Package: delivery
Description: Email delivery for the queue processor.

Provides the provider boundary, concrete providers, the retry/backoff
policy and the dispatch loop that finalizes claimed items.
"""
