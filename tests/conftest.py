"""
Shared pytest fixtures for queue tests.

Provides reusable fixtures for:
- Stores (real diskcache-backed ActivityStore, in-memory MemoryStore double)
- Callback registry and configuration objects
- Queue managers wired to either store
- Sample items (well-formed, processing, malformed)

The in-memory store records every call so tests can assert on the exact
sequence of store operations, and can simulate store-side expiry reaping
and unacknowledged (write-behind) writes.
"""

import copy
import logging

import pytest


@pytest.fixture(autouse=True)
def restore_queue_logger():
    """Undo configure_logging() so later tests still reach caplog."""
    logger = logging.getLogger("Eventual")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


# =============================================================================
# Store Fixtures
# =============================================================================

class MemoryStore:
    """
    In-memory activity store double.

    Args:
        acknowledge_writes: If False, create() returns None and the item only
                            becomes visible after flush()
    """

    def __init__(self, acknowledge_writes: bool = True):
        self.acknowledge_writes = acknowledge_writes
        self.entries = {}
        self.expiry = {}
        self.pending = []
        self.calls = []
        self._sequence = 0

    def create(self, namespace, item):
        self._sequence += 1
        key = f"{namespace}.{self._sequence:012d}"
        stored = copy.deepcopy(item)
        stored['key'] = key
        self.calls.append(('create', key))
        if not self.acknowledge_writes:
            self.pending.append((key, stored))
            return None
        self.entries[key] = stored
        return key

    def flush(self):
        """Apply unacknowledged writes."""
        for key, stored in self.pending:
            self.entries[key] = stored
        self.pending = []

    def read_all(self, namespace):
        self.calls.append(('read_all', namespace))
        prefix = f"{namespace}."
        return [
            (key, copy.deepcopy(value))
            for key, value in self.entries.items()
            if key.startswith(prefix)
        ]

    def count(self, namespace):
        return len(self.read_all(namespace))

    def get(self, key):
        return copy.deepcopy(self.entries.get(key))

    def write(self, key, item):
        self.calls.append(('write', key, copy.deepcopy(item)))
        self.entries[key] = copy.deepcopy(item)

    def delete(self, key):
        self.calls.append(('delete', key))
        return self.entries.pop(key, None) is not None

    def set_expiry(self, key, seconds):
        self.calls.append(('set_expiry', key, seconds))
        if key not in self.entries:
            return False
        self.expiry[key] = seconds
        return True

    def reap(self):
        """Simulate every pending expiry elapsing."""
        for key in list(self.expiry):
            self.entries.pop(key, None)
        self.expiry.clear()

    def put_raw(self, key, value):
        """Store a value exactly as given (for malformed entries)."""
        self.entries[key] = value

    def writes_for(self, key):
        return [call[2] for call in self.calls if call[0] == 'write' and call[1] == key]

    def close(self):
        pass


@pytest.fixture
def memory_store():
    """In-memory store that acknowledges writes."""
    return MemoryStore()


@pytest.fixture
def unacked_store():
    """In-memory store whose create() cannot acknowledge the write."""
    return MemoryStore(acknowledge_writes=False)


@pytest.fixture
def activity_store(tmp_path):
    """Real diskcache-backed ActivityStore in a temporary directory."""
    from store.activity_store import ActivityStore

    store = ActivityStore(str(tmp_path))
    yield store
    store.close()


# =============================================================================
# Registry / Config Fixtures
# =============================================================================

@pytest.fixture
def registry():
    """CallbackRegistry with only the example callback registered."""
    from activity_queue.callbacks import CallbackRegistry

    return CallbackRegistry()


@pytest.fixture
def queue_config(tmp_path):
    """
    QueueConfig tuned for fast tests.

    Short watch interval, short callback deadline, no periodic drain.
    """
    from validation.config import QueueConfig

    return QueueConfig(
        data_dir=str(tmp_path),
        callback_timeout=1.0,
        watch_interval=0.05,
        watch_max_checks=6,
    )


@pytest.fixture
def valid_config_dict(tmp_path):
    """Dictionary with valid configuration values for QueueConfig."""
    return {
        "namespace": "jQueue",
        "data_dir": str(tmp_path),
        "grace_expiry": 10.0,
        "callback_timeout": 30.0,
        "max_attempts": 5,
        "watch_interval": 0.5,
        "watch_max_checks": 6,
    }


@pytest.fixture
def page_context():
    """Context reader with all enqueue-time fields set."""
    from shared.context import PageContext

    return PageContext({
        'url': 'https://example.com/node/7',
        'entityBundle': 'article',
        'entityNid': '7',
        'entityTnid': '3',
    })


# =============================================================================
# Manager Fixtures
# =============================================================================

@pytest.fixture
def manager(memory_store, registry, queue_config, page_context):
    """QueueManager on the in-memory store."""
    from activity_queue.manager import QueueManager

    return QueueManager(memory_store, registry=registry, config=queue_config, context=page_context)


# =============================================================================
# Sample Item Fixtures
# =============================================================================

@pytest.fixture
def make_item():
    """
    Factory for stored item dicts.

    Usage:
        def test_walk(make_item):
            raw = make_item(status='ready', callback='app.handlers.do_thing')
    """
    def _make(status='new', callback='app.handlers.do_thing', data=None, attempts=0):
        return {
            'callback': callback,
            'data': {'id': 1} if data is None else data,
            'meta': {
                'status': status,
                'url': 'https://example.com/node/7',
                'entityBundle': 'article',
                'entityNid': '7',
                'entityTnid': '3',
                'attempts': attempts,
                'created_at': 1700000000.0,
            },
        }
    return _make
