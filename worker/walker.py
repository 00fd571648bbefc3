"""
Queue walker: drains one snapshot of the persisted queue.

The snapshot is read once by the caller and consumed front to back; items
enqueued during the walk are not visited. The walk never waits on a
dispatched callback, so it runs to completion synchronously and always ends
by emitting the empty signal.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Tuple

from activity_queue.models import DISPATCHABLE, ItemStatus, MalformedItemError, parse_item
from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("Walker")

# Seconds a malformed or unknown-status entry is kept before the store reaps it
GRACE_EXPIRY = 10.0

MALFORMED_ERROR = 'bad item type or missing required properties'
UNKNOWN_STATUS_ERROR = 'unknown item status'


@dataclass
class WalkResult:
    """Outcome of one walk."""
    visited: int = 0
    dispatched: int = 0
    skipped: int = 0
    malformed: int = 0
    unknown: int = 0
    errors: List[str] = field(default_factory=list)


class QueueWalker:
    """
    Walks a queue snapshot, dispatching new/ready items.

    Args:
        store: Activity store (set_expiry for malformed entries)
        processor: ItemProcessor used for dispatch
        grace_expiry: TTL in seconds applied to malformed/unknown entries
        on_empty: Called with the WalkResult when a snapshot is exhausted
    """

    def __init__(
        self,
        store,
        processor,
        grace_expiry: float = GRACE_EXPIRY,
        on_empty: Optional[Callable[[WalkResult], None]] = None,
    ):
        self.store = store
        self.processor = processor
        self.grace_expiry = grace_expiry
        self.on_empty = on_empty

    def walk(self, snapshot: Iterable[Tuple[str, Any]]) -> WalkResult:
        """
        Drain a snapshot of (key, value) entries.

        Returns:
            WalkResult with per-outcome counts
        """
        queue = deque(snapshot)
        result = WalkResult()

        while queue:
            key, raw = queue.popleft()
            result.visited += 1
            error = self._visit(key, raw, result)
            if error:
                result.errors.append(error)
                log_error(f"Item error: {error}", {'error': error, 'key': key})

        log_debug("Queue snapshot exhausted", {
            'dispatched': result.dispatched,
            'skipped': result.skipped,
        })
        if self.on_empty is not None:
            self.on_empty(result)
        return result

    def _visit(self, key: str, raw: Any, result: WalkResult) -> Optional[str]:
        try:
            item = parse_item(key, raw)
        except MalformedItemError as e:
            log_debug(f"Malformed entry {key}: {e}")
            result.malformed += 1
            self._demote(key)
            return MALFORMED_ERROR

        if item.status == ItemStatus.PROCESSING.value:
            result.skipped += 1
            return None

        if isinstance(item.status, str) and item.status in DISPATCHABLE:
            if self.processor.is_in_flight(key):
                # Stale snapshot: this process already owns the dispatch
                result.skipped += 1
                return None
            try:
                error = self.processor.dispatch(item)
            except Exception as e:
                return f"dispatch failed: {e}"
            if error is None:
                result.dispatched += 1
            return error

        result.unknown += 1
        self._demote(key)
        return UNKNOWN_STATUS_ERROR

    def _demote(self, key: str) -> None:
        """Shorten an entry's TTL to the grace window."""
        try:
            self.store.set_expiry(key, self.grace_expiry)
        except Exception as e:
            log_error(f"Failed to set grace expiry on {key}: {e}")
