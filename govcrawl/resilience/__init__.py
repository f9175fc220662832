"""Retry and backoff policies."""

from govcrawl.resilience.retry import RetryPolicy

__all__ = ["RetryPolicy"]
