"""
Item processor: dispatches one queue item to its callback.

Implements the item lifecycle with a persisted status field:
- new/ready -> processing: written to the store before the callback runs,
  so a concurrent walk sees the item as in flight
- processing -> deleted: callback completed
- processing -> ready: callback declined (raised), timed out, or was
  cancelled; the next walk dispatches it again
- processing -> dead letter: declined with the attempt cap reached
  (only when max_attempts is configured)

Dispatch is fire-and-forget: the callback runs in its own asyncio task and
dispatch() returns as soon as the task is scheduled.
"""

import asyncio
import inspect
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from activity_queue.callbacks import example_callback
from activity_queue.models import ItemStatus, QueueItem
from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("Processor")


class CallbackDeclined(Exception):
    """Raised by a callback when conditions are not yet met; retry later."""
    pass


@dataclass
class ProcessorStats:
    """Counters for one processor's lifetime."""
    dispatched: int = 0
    completed: int = 0
    declined: int = 0
    timed_out: int = 0
    cancelled: int = 0
    dead_lettered: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ItemProcessor:
    """
    Dispatches queue items and applies their outcome to the store.

    Args:
        store: Activity store (write/delete/create)
        registry: CallbackRegistry used to resolve item callback names
        callback_timeout: Seconds a callback may run before it is cancelled
                          and treated as declined (None = no deadline)
        max_attempts: Dispatches before a declining item is dead-lettered
                      (None = retry forever)
        dead_letter_namespace: Namespace dead-lettered items are moved to
    """

    def __init__(
        self,
        store,
        registry,
        callback_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        dead_letter_namespace: Optional[str] = None,
    ):
        if max_attempts is not None and not dead_letter_namespace:
            raise ValueError("dead_letter_namespace is required when max_attempts is set")
        self.store = store
        self.registry = registry
        self.callback_timeout = callback_timeout
        self.max_attempts = max_attempts
        self.dead_letter_namespace = dead_letter_namespace
        self.stats = ProcessorStats()
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_in_flight(self, key: str) -> bool:
        """True if this processor has a running dispatch for key."""
        return key in self._tasks

    @property
    def in_flight_count(self) -> int:
        return len(self._tasks)

    def _resolve(self, item: QueueItem) -> Any:
        if item.callback is None:
            # Items stored without a callback name go to the example callback
            return example_callback
        return self.registry.resolve(item.callback)

    def dispatch(self, item: QueueItem) -> Optional[str]:
        """
        Mark item processing and schedule its callback.

        Must be called with a running event loop.

        Args:
            item: Validated item with status new or ready

        Returns:
            Error message, or None when the callback was scheduled

        Raises:
            RuntimeError: no running event loop (raised before any store write)
        """
        loop = asyncio.get_running_loop()
        callback = self._resolve(item)

        item.meta.status = ItemStatus.PROCESSING.value
        item.meta.attempts += 1
        try:
            self.store.write(item.key, item.to_record())
        except Exception as e:
            self.stats.errors += 1
            return f"failed to mark item processing: {e}"

        log_debug("Item callback attempt", {'key': item.key, 'attempt': item.meta.attempts})
        if not callable(callback):
            # Left in processing; nothing reverts it automatically
            self.stats.errors += 1
            return f"callback not a function: {item.callback}"

        task = loop.create_task(self._run(item, callback), name=f"eventual:{item.key}")
        self._tasks[item.key] = task
        task.add_done_callback(lambda t, item=item: self._on_done(item, t))
        self.stats.dispatched += 1
        return None

    async def _run(self, item: QueueItem, callback: Callable) -> None:
        try:
            result = callback(item)
            if inspect.isawaitable(result):
                if self.callback_timeout is not None:
                    await asyncio.wait_for(result, self.callback_timeout)
                else:
                    await result
        except asyncio.TimeoutError:
            self.stats.timed_out += 1
            log_warn(
                f"Item callback exceeded {self.callback_timeout}s deadline",
                {'key': item.key, 'callback': item.callback},
            )
            self._decline(item, "timeout")
        except Exception as e:
            # Any raised exception means "conditions not met yet"
            self.stats.declined += 1
            log_debug("Item callback rejected", {'key': item.key, 'error': f"{type(e).__name__}: {e}"})
            self._decline(item, f"{type(e).__name__}: {e}")
        else:
            self._complete(item, callback)

    def _on_done(self, item: QueueItem, task: asyncio.Task) -> None:
        self._tasks.pop(item.key, None)
        if task.cancelled():
            # Covers tasks cancelled before their first step as well
            self.stats.cancelled += 1
            self._return_to_ready(item)
            log_debug("Item callback cancelled", {'key': item.key})

    def _complete(self, item: QueueItem, callback: Callable) -> None:
        callback_name = getattr(callback, '__name__', 'not available')
        try:
            self.store.delete(item.key)
        except Exception as e:
            self.stats.errors += 1
            log_error(f"Failed to remove completed item {item.key}: {e}")
            return
        self.stats.completed += 1
        log_notice("Callback complete", {'callback': callback_name, 'key': item.key})

    def _decline(self, item: QueueItem, reason: str) -> None:
        if self.max_attempts is not None and item.meta.attempts >= self.max_attempts:
            self._dead_letter(item, reason)
            return
        self._return_to_ready(item)

    def _return_to_ready(self, item: QueueItem) -> None:
        item.meta.status = ItemStatus.READY.value
        try:
            self.store.write(item.key, item.to_record())
        except Exception as e:
            self.stats.errors += 1
            log_error(f"Failed to return item {item.key} to ready: {e}")

    def _dead_letter(self, item: QueueItem, reason: str) -> None:
        record = item.to_record()
        record['meta']['status'] = ItemStatus.READY.value
        record['meta']['last_error'] = reason
        record['meta']['dead_lettered_at'] = time.time()
        record['meta']['origin_key'] = item.key
        try:
            self.store.create(self.dead_letter_namespace, record)
        except Exception as e:
            self.stats.errors += 1
            log_error(f"Failed to dead-letter item {item.key}: {e}")
            self._return_to_ready(item)
            return
        try:
            self.store.delete(item.key)
        except Exception as e:
            # Live copy stays retryable; it may also exist as a dead letter
            self.stats.errors += 1
            log_error(f"Failed to remove dead-lettered item {item.key} from the queue: {e}")
            self._return_to_ready(item)
            return
        self.stats.dead_lettered += 1
        log_warn(
            f"Item {item.key} exceeded max attempts ({self.max_attempts}), moved to dead letters",
            {'callback': item.callback, 'error': reason},
        )

    def cancel_all(self) -> int:
        """Cancel every in-flight dispatch. Returns the number cancelled."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        return len(tasks)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight dispatches to settle.

        Returns:
            True if nothing is left in flight
        """
        tasks = list(self._tasks.values())
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending
