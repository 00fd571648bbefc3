"""
Queue inspection and dead-letter operations.

Stateless operations that work on the store instance passed in.
"""

import time
from typing import List

from activity_queue.models import ItemStatus, MalformedItemError, parse_item
from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("Queue")

STATUS_VALUES = tuple(status.value for status in ItemStatus)


def get_stats(store, namespace: str) -> dict:
    """
    Count queue entries by status.

    Args:
        store: Activity store
        namespace: Queue namespace

    Returns:
        Dict with counts: {
            'new': int,
            'ready': int,
            'processing': int,
            'malformed': int,
            'unknown': int,
            'total': int
        }
    """
    stats = {
        'new': 0,
        'ready': 0,
        'processing': 0,
        'malformed': 0,
        'unknown': 0,
        'total': 0,
    }
    for key, raw in store.read_all(namespace):
        stats['total'] += 1
        try:
            item = parse_item(key, raw)
        except MalformedItemError:
            stats['malformed'] += 1
            continue
        if item.status in STATUS_VALUES:
            stats[item.status] += 1
        else:
            stats['unknown'] += 1
    return stats


def get_dead_letters(store, dead_letter_namespace: str) -> List[dict]:
    """
    List dead-lettered items, oldest first.

    Returns:
        List of item dicts as stored (each has 'key' and meta.last_error)
    """
    return [raw for _, raw in store.read_all(dead_letter_namespace) if isinstance(raw, dict)]


def recover_dead_letters(store, dead_letter_namespace: str, namespace: str) -> int:
    """
    Move every dead letter back into the live queue as a new item.

    The attempt counter is reset; the recovered item gets a new key.

    Returns:
        Number of items recovered
    """
    recovered = 0
    for key, raw in store.read_all(dead_letter_namespace):
        if not isinstance(raw, dict) or not isinstance(raw.get('meta'), dict):
            log_warn(f"Skipping unreadable dead letter {key}")
            continue
        record = dict(raw)
        record.pop('key', None)
        meta = dict(record['meta'])
        meta['status'] = ItemStatus.NEW.value
        meta['attempts'] = 0
        meta['recovered_at'] = time.time()
        record['meta'] = meta
        store.create(namespace, record)
        store.delete(key)
        recovered += 1
    if recovered:
        log_notice(f"Recovered {recovered} dead letter(s) into '{namespace}'")
    return recovered
