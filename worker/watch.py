"""
Arrival watch for stores that cannot acknowledge writes.

After push(process_now=True) against such a store, the watch polls the
namespace length a bounded number of times. Once the length grows past the
length read before the write, the watch stops and hands the snapshot it read
to the walker. If the checks run out first it stops silently and the item
waits for the next regular walk.
"""

import asyncio
from typing import Any, Callable, List, Optional, Tuple

from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("Watch")

DEFAULT_INTERVAL = 0.5
DEFAULT_MAX_CHECKS = 6


class ArrivalWatch:
    """
    Bounded polling watch over one namespace.

    Args:
        store: Activity store (read_all)
        namespace: Namespace to watch
        on_arrival: Called with the snapshot once the namespace has grown
        interval: Seconds between checks
        max_checks: Checks before giving up
    """

    def __init__(
        self,
        store,
        namespace: str,
        on_arrival: Callable[[List[Tuple[str, Any]]], Any],
        interval: float = DEFAULT_INTERVAL,
        max_checks: int = DEFAULT_MAX_CHECKS,
    ):
        self.store = store
        self.namespace = namespace
        self.on_arrival = on_arrival
        self.interval = interval
        self.max_checks = max_checks
        self.checks = 0
        self._task: Optional[asyncio.Task] = None

    def start(self, initial_length: int) -> asyncio.Task:
        """Start watching. Requires a running event loop."""
        log_debug(
            f"Monitoring for pushes to attempt immediate processing. Length: {initial_length}"
        )
        self._task = asyncio.get_running_loop().create_task(
            self._watch(initial_length), name=f"eventual-watch:{self.namespace}"
        )
        return self._task

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def _watch(self, initial_length: int) -> bool:
        while self.checks < self.max_checks:
            await asyncio.sleep(self.interval)
            self.checks += 1
            try:
                snapshot = self.store.read_all(self.namespace)
            except Exception as e:
                log_error(f"Watch failed to read queue: {e}")
                continue
            log_debug(f"Checking for item addition. Length: {len(snapshot)}")
            if len(snapshot) > initial_length:
                self.on_arrival(snapshot)
                return True

        log_debug(f"Item not observed after {self.checks} checks, leaving it for the next walk")
        return False
