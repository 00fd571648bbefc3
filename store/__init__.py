"""Persistence for queue items (diskcache-backed)."""

from store.activity_store import ActivityStore

__all__ = ['ActivityStore']
