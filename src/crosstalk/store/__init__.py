"""Record store collaborators."""

from .base import RecordStore, Subscription
from .memory import ChangeFeed, FeedSubscription, MemoryStore

__all__ = ["ChangeFeed", "FeedSubscription", "MemoryStore", "RecordStore", "Subscription"]
