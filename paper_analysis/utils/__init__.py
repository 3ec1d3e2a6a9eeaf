"""Utilities."""

from .retry import retry_with_exponential_backoff

__all__ = ["retry_with_exponential_backoff"]
