"""
Persistent activity queue.

Items are named work with a payload, stored durably and processed later by a
late-bound callback. Public entry point: activity_queue.manager.QueueManager.
"""

from activity_queue.callbacks import (
    EXAMPLE_CALLBACK_NAME,
    CallbackRegistry,
    example_callback,
    resolve_path,
)
from activity_queue.models import ItemMeta, ItemStatus, MalformedItemError, QueueItem, build_item, parse_item

__all__ = [
    'EXAMPLE_CALLBACK_NAME',
    'CallbackRegistry',
    'example_callback',
    'resolve_path',
    'ItemMeta',
    'ItemStatus',
    'MalformedItemError',
    'QueueItem',
    'build_item',
    'parse_item',
]
