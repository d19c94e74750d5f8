"""Realtime change delivery."""

from .feed import ChangeFeed, Subscription

__all__ = ["ChangeFeed", "Subscription"]
