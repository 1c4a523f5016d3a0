"""
Package: config
Description: Environment-driven configuration for the queue processor.
"""
