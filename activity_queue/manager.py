"""
Queue manager: the public surface of the activity queue.

Wires the store, callback registry, processor, walker and arrival watch
together and exposes push(), restart(), start() and stop(). None of the
public methods raise on queue or store failures; problems are logged and
the item is left for a later walk.

Example:
    >>> manager = QueueManager.from_config(QueueConfig(data_dir="/tmp/eventual"))
    >>> manager.registry.register('app.handlers.do_thing', do_thing)
    >>> async def main():
    ...     manager.start()
    ...     manager.push({'id': 1}, 'app.handlers.do_thing', process_now=True)
    ...     await manager.wait_idle()
"""

import asyncio
from typing import Any, Callable, List, Optional, Set

from activity_queue.callbacks import CallbackRegistry
from activity_queue.models import build_item
from activity_queue.operations import get_stats as get_queue_stats
from shared.log import create_logger
from store.activity_store import ActivityStore
from validation.config import QueueConfig
from worker.processor import ItemProcessor
from worker.walker import QueueWalker, WalkResult
from worker.watch import ArrivalWatch

log_debug, log_notice, log_warn, log_error = create_logger("Manager")


class QueueManager:
    """
    Activity queue facade.

    Args:
        store: Activity store (see store.activity_store.ActivityStore for the
               contract)
        registry: CallbackRegistry; a fresh one is created if omitted
        config: QueueConfig; defaults if omitted
        context: Context reader with get(field) for enqueue-time metadata
    """

    def __init__(
        self,
        store,
        registry: Optional[CallbackRegistry] = None,
        config: Optional[QueueConfig] = None,
        context=None,
    ):
        self.config = config or QueueConfig()
        self.store = store
        self.registry = registry or CallbackRegistry()
        self.context = context
        self.namespace = self.config.namespace

        self.processor = ItemProcessor(
            store,
            self.registry,
            callback_timeout=self.config.callback_timeout,
            max_attempts=self.config.max_attempts,
            dead_letter_namespace=self.config.dead_letters,
        )
        self.walker = QueueWalker(
            store,
            self.processor,
            grace_expiry=self.config.grace_expiry,
            on_empty=self._emit_empty,
        )

        self._empty_listeners: List[Callable[[WalkResult], Any]] = []
        self._watches: Set[ArrivalWatch] = set()
        self._drain_task: Optional[asyncio.Task] = None
        self.walks = 0

    @classmethod
    def from_config(cls, config: QueueConfig, registry=None, context=None) -> 'QueueManager':
        """Create a manager backed by an ActivityStore in config.data_dir."""
        return cls(ActivityStore(config.data_dir), registry=registry, config=config, context=context)

    # -------------------------------------------------------------------------
    # Empty signal
    # -------------------------------------------------------------------------

    def on_empty(self, listener: Callable[[WalkResult], Any]) -> None:
        """Register a listener called once per walk that drains its snapshot."""
        self._empty_listeners.append(listener)

    def _emit_empty(self, result: WalkResult) -> None:
        for listener in list(self._empty_listeners):
            try:
                listener(result)
            except Exception as e:
                log_error(f"Empty listener {listener!r} failed: {e}")

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def push(self, data: Any, callback: str, process_now: bool = False) -> Optional[str]:
        """
        Add an item to the persistent queue.

        Args:
            data: Payload stored with the item
            callback: Name of the callback that processes the item
            process_now: Walk the queue as soon as the item is stored
                         instead of waiting for the next walk

        Returns:
            The item's store key, or None if the store did not return one
            (write not acknowledged, or the write failed)
        """
        try:
            initial_length = self.store.count(self.namespace) if process_now else 0
            key = self.store.create(self.namespace, build_item(data, callback, self.context))
        except Exception as e:
            log_error(f"Failed to add item: {e}", {'callback': callback})
            return None

        log_data = dict(data) if isinstance(data, dict) else {'data': data}
        log_data['callback'] = callback
        log_notice("Item added", log_data)

        if process_now:
            if key is not None:
                self.restart()
            else:
                self._watch_for_arrival(initial_length)
        return key

    def _watch_for_arrival(self, initial_length: int) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            log_warn("No running event loop; item will be processed on the next walk")
            return
        watch = ArrivalWatch(
            self.store,
            self.namespace,
            self.walk,
            interval=self.config.watch_interval,
            max_checks=self.config.watch_max_checks,
        )
        self._watches.add(watch)
        watch.start(initial_length).add_done_callback(lambda _t: self._watches.discard(watch))

    # -------------------------------------------------------------------------
    # Walk triggers
    # -------------------------------------------------------------------------

    def walk(self, snapshot) -> Optional[WalkResult]:
        """Walk an already-read snapshot."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            log_error("Queue walk requires a running event loop")
            return None
        self.walks += 1
        try:
            return self.walker.walk(snapshot)
        except Exception as e:
            log_error(f"Queue walk failed: {e}")
            return None

    def restart(self) -> Optional[WalkResult]:
        """Kick off a round of queue process attempts over the current queue."""
        try:
            snapshot = self.store.read_all(self.namespace)
        except Exception as e:
            log_error(f"Failed to read queue: {e}")
            return None
        return self.walk(snapshot)

    def start(self) -> Optional[WalkResult]:
        """
        Check the queue once, and start periodic walks if drain_interval is set.

        Must be called from a running event loop.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log_error("start() must be called from a running event loop")
            return None
        result = self.restart()
        if self.config.drain_interval and (self._drain_task is None or self._drain_task.done()):
            self._drain_task = loop.create_task(
                self._drain_periodically(self.config.drain_interval),
                name=f"eventual-drain:{self.namespace}",
            )
            log_debug(f"Periodic walks every {self.config.drain_interval}s")
        return result

    async def _drain_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.restart()

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for dispatched callbacks to settle. True if none remain."""
        return await self.processor.wait_idle(timeout)

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop periodic walks and watches, and cancel in-flight callbacks.

        Cancelled items are returned to ready so the next walk retries them.
        """
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        for watch in list(self._watches):
            watch.cancel()
        cancelled = self.processor.cancel_all()
        if cancelled:
            log_debug(f"Cancelled {cancelled} in-flight callback(s)")
        await self.processor.wait_idle(timeout)
        log_debug("Queue manager stopped", self.get_stats())

    def get_stats(self) -> dict:
        """Processor counters plus current queue counts by status."""
        stats = {
            'walks': self.walks,
            'in_flight': self.processor.in_flight_count,
            'processor': self.processor.stats.to_dict(),
        }
        try:
            stats['queue'] = get_queue_stats(self.store, self.namespace)
        except Exception as e:
            log_error(f"Failed to read queue stats: {e}")
        return stats
