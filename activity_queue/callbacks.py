"""
Callback lookup for queue items.

Items name their callback with a string. Names are looked up in an explicit
registry at dispatch time, so a callback may be registered after items
referencing it were enqueued. Names not in the registry fall back to a dotted
path walk over an optional root object.
"""

import asyncio
from typing import Any, Callable, Dict

from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("Callbacks")

EXAMPLE_CALLBACK_NAME = 'eventual.example'

# Seconds the example callback waits before completing
EXAMPLE_CALLBACK_DELAY = 5.0


def _has_own(obj: Any, name: str) -> bool:
    """Own-membership test: mapping keys, or the object's own namespace."""
    if isinstance(obj, dict):
        return name in obj
    try:
        return name in vars(obj)
    except TypeError:
        # No __dict__ (slots, builtins)
        return False


def _get_own(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj[name]
    return vars(obj)[name]


def resolve_path(root: Any, lineage: str) -> Any:
    """
    Access a nested member of root by dotted path.

    Each segment must be an own member of the current object (a dict key, or
    an entry in the object's own __dict__; inherited attributes do not count).

    Args:
        root: Object to start from
        lineage: Dotted path, e.g. "app.handlers.do_thing"

    Returns:
        The member referred to, or False if any segment is missing

    Example:
        >>> resolve_path({'app': {'handlers': {'run': print}}}, 'app.handlers.run')
        <built-in function print>
        >>> resolve_path({'app': {}}, 'app.handlers.run')
        False
    """
    obj = root
    for segment in lineage.split('.'):
        if not _has_own(obj, segment):
            return False
        obj = _get_own(obj, segment)
    return obj


class CallbackRegistry:
    """
    Mapping from callback name to callable.

    Args:
        root: Optional object searched with resolve_path() for names that
              were never registered
        include_example: Register example_callback as "eventual.example"

    Usage:
        registry = CallbackRegistry()
        registry.register('app.handlers.do_thing', do_thing)

        @registry.callback('app.handlers.other')
        async def other(item):
            ...
    """

    def __init__(self, root: Any = None, include_example: bool = True):
        self._callbacks: Dict[str, Callable] = {}
        self._root = root
        if include_example:
            self.register(EXAMPLE_CALLBACK_NAME, example_callback)

    def register(self, name: str, func: Callable) -> None:
        """Register func under name, replacing any previous registration."""
        if not callable(func):
            raise TypeError(f"callback for {name!r} is not callable")
        if name in self._callbacks:
            log_debug(f"Replacing callback {name}")
        self._callbacks[name] = func

    def callback(self, name: str):
        """Decorator form of register()."""
        def decorator(func):
            self.register(name, func)
            return func
        return decorator

    def unregister(self, name: str) -> None:
        self._callbacks.pop(name, None)

    def resolve(self, name: Any) -> Any:
        """
        Look up a callback by name.

        Returns:
            The registered callable; otherwise the result of resolve_path()
            against the root object; otherwise False (also for names that
            are not strings). The result is not guaranteed to be callable.
        """
        if not isinstance(name, str) or not name:
            return False
        if name in self._callbacks:
            return self._callbacks[name]
        if self._root is not None:
            return resolve_path(self._root, name)
        return False

    def names(self) -> list:
        return sorted(self._callbacks)

    def __contains__(self, name: str) -> bool:
        return name in self._callbacks


async def example_callback(item):
    """
    Example/test queue-item callback. Waits, then reports the item's data.

    Registered as "eventual.example" and used for items stored without a
    callback name.
    """
    data = dict(item.data) if isinstance(item.data, dict) else {'data': item.data}
    data['_meta'] = item.meta.model_dump()
    log_warn("Test function used", data)
    await asyncio.sleep(EXAMPLE_CALLBACK_DELAY)
