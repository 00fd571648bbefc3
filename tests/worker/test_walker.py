"""
Tests for worker/walker.py - snapshot walk.

Tests verify:
- Every new/ready item in the snapshot is dispatched, processing items skipped
- Empty snapshot emits the empty signal with no store side effects
- Malformed and unknown-status entries get the grace expiry and an error
- A key already in flight is not dispatched twice by overlapping walks
"""

import asyncio

import pytest


NAMESPACE = 'jQueue'


@pytest.fixture
def processor(memory_store, registry):
    from worker.processor import ItemProcessor

    return ItemProcessor(memory_store, registry, callback_timeout=1.0)


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def walker(memory_store, processor, emitted):
    from worker.walker import QueueWalker

    return QueueWalker(memory_store, processor, on_empty=emitted.append)


@pytest.fixture
def blocking_callback(registry):
    """Registers app.handlers.do_thing as a callback that waits on an event."""
    release = asyncio.Event()
    calls = []

    async def do_thing(item):
        calls.append(item.key)
        await release.wait()

    registry.register('app.handlers.do_thing', do_thing)
    return release, calls


class TestWalkDispatch:
    """Tests for dispatching new/ready items."""

    @pytest.mark.asyncio
    async def test_dispatches_all_but_processing(self, walker, processor, memory_store, make_item, blocking_callback):
        """N items, K processing: exactly N-K dispatched."""
        release, calls = blocking_callback
        keys = [
            memory_store.create(NAMESPACE, make_item(status='new')),
            memory_store.create(NAMESPACE, make_item(status='processing')),
            memory_store.create(NAMESPACE, make_item(status='ready')),
            memory_store.create(NAMESPACE, make_item(status='processing')),
            memory_store.create(NAMESPACE, make_item(status='new')),
        ]

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.visited == 5
        assert result.dispatched == 3
        assert result.skipped == 2
        assert result.errors == []
        for key in (keys[0], keys[2], keys[4]):
            assert memory_store.get(key)['meta']['status'] == 'processing'

        release.set()
        await processor.wait_idle(1)
        assert sorted(calls) == sorted([keys[0], keys[2], keys[4]])

    @pytest.mark.asyncio
    async def test_processing_items_untouched(self, walker, memory_store, make_item):
        key = memory_store.create(NAMESPACE, make_item(status='processing'))

        walker.walk(memory_store.read_all(NAMESPACE))

        assert memory_store.writes_for(key) == []
        assert ('set_expiry', key, 10.0) not in memory_store.calls

    @pytest.mark.asyncio
    async def test_walk_does_not_wait_for_callbacks(self, walker, processor, memory_store, make_item, blocking_callback, emitted):
        """Empty signal fires while callbacks are still pending."""
        release, _ = blocking_callback
        memory_store.create(NAMESPACE, make_item())

        walker.walk(memory_store.read_all(NAMESPACE))

        assert len(emitted) == 1
        assert processor.in_flight_count == 1
        release.set()
        await processor.wait_idle(1)

    @pytest.mark.asyncio
    async def test_items_added_during_walk_not_visited(self, walker, processor, memory_store, make_item, registry):
        """The walk consumes the snapshot it was given, not the live store."""
        def enqueue_more(item):
            memory_store.create(NAMESPACE, make_item())

        registry.register('app.handlers.do_thing', enqueue_more)
        memory_store.create(NAMESPACE, make_item())

        result = walker.walk(memory_store.read_all(NAMESPACE))
        await processor.wait_idle(1)

        assert result.visited == 1
        assert memory_store.count(NAMESPACE) == 1

    @pytest.mark.asyncio
    async def test_uncallable_callback_reported_as_error(self, walker, memory_store, make_item, emitted):
        key = memory_store.create(NAMESPACE, make_item(callback='app.handlers.nowhere'))

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == ['callback not a function: app.handlers.nowhere']
        assert result.dispatched == 0
        assert memory_store.get(key)['meta']['status'] == 'processing'
        assert len(emitted) == 1


class TestStoreFailures:
    """Tests for store errors during a walk."""

    @pytest.mark.asyncio
    async def test_failed_processing_write_does_not_stop_walk(self, walker, processor, memory_store, make_item, blocking_callback, emitted):
        """A store error on one item is an item error; the rest of the snapshot is still walked."""
        release, calls = blocking_callback
        first = memory_store.create(NAMESPACE, make_item())
        second = memory_store.create(NAMESPACE, make_item())
        real_write = memory_store.write

        def flaky_write(key, item):
            if key == first:
                raise OSError("disk full")
            real_write(key, item)

        memory_store.write = flaky_write

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == ['failed to mark item processing: disk full']
        assert result.dispatched == 1
        assert len(emitted) == 1
        assert memory_store.get(first)['meta']['status'] == 'new'
        assert memory_store.get(second)['meta']['status'] == 'processing'

        release.set()
        await processor.wait_idle(1)
        assert calls == [second]

    @pytest.mark.asyncio
    async def test_dispatch_exception_is_an_item_error(self, memory_store, make_item):
        from worker.walker import QueueWalker

        class BrokenProcessor:
            def is_in_flight(self, key):
                return False

            def dispatch(self, item):
                raise RuntimeError("boom")

        emitted = []
        walker = QueueWalker(memory_store, BrokenProcessor(), on_empty=emitted.append)
        memory_store.create(NAMESPACE, make_item())
        memory_store.create(NAMESPACE, make_item())

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.visited == 2
        assert result.errors == ['dispatch failed: boom', 'dispatch failed: boom']
        assert len(emitted) == 1


class TestLenientItems:
    """Tests for items with odd optional fields."""

    @pytest.mark.asyncio
    async def test_odd_url_still_dispatched(self, walker, processor, memory_store, make_item, blocking_callback):
        release, calls = blocking_callback
        raw = make_item()
        raw['meta']['url'] = {'href': 'https://example.com/node/7'}
        raw['meta']['attempts'] = 'lots'
        key = memory_store.create(NAMESPACE, raw)

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.dispatched == 1
        assert result.malformed == 0
        assert ('set_expiry', key, 10.0) not in memory_store.calls
        assert memory_store.get(key)['meta']['attempts'] == 1

        release.set()
        await processor.wait_idle(1)
        assert calls == [key]

    @pytest.mark.asyncio
    async def test_non_string_callback_reported(self, walker, memory_store, make_item):
        key = memory_store.create(NAMESPACE, make_item(callback=['app', 'handlers']))

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == ["callback not a function: ['app', 'handlers']"]
        assert memory_store.get(key)['meta']['status'] == 'processing'

    @pytest.mark.asyncio
    async def test_unhashable_status_is_unknown(self, walker, memory_store, make_item):
        from worker.walker import UNKNOWN_STATUS_ERROR

        key = memory_store.create(NAMESPACE, make_item(status=['new']))

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == [UNKNOWN_STATUS_ERROR]
        assert ('set_expiry', key, 10.0) in memory_store.calls


class TestEmptyWalk:
    """Tests for the empty-queue signal."""

    @pytest.mark.asyncio
    async def test_empty_snapshot_emits_once(self, walker, memory_store, emitted):
        result = walker.walk([])

        assert len(emitted) == 1
        assert emitted[0] is result
        assert result.visited == 0

    @pytest.mark.asyncio
    async def test_empty_snapshot_has_no_store_side_effects(self, walker, memory_store):
        walker.walk([])

        assert memory_store.calls == []

    def test_walker_without_listener(self, memory_store, processor):
        from worker.walker import QueueWalker

        walker = QueueWalker(memory_store, processor)

        assert walker.walk([]).visited == 0


class TestMalformedEntries:
    """Tests for malformed and unknown-status entries."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "just a string",
        42,
        None,
        {'callback': 'app.handlers.do_thing', 'data': {}},
        {'callback': 'app.handlers.do_thing', 'meta': {}},
        {'callback': 'app.handlers.do_thing', 'meta': {'status': ''}},
        {'callback': 'app.handlers.do_thing', 'meta': 'new'},
    ])
    async def test_malformed_entry_gets_grace_expiry(self, walker, memory_store, raw):
        from worker.walker import MALFORMED_ERROR

        memory_store.put_raw('jQueue.000000000001', raw)

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == [MALFORMED_ERROR]
        assert result.malformed == 1
        assert ('set_expiry', 'jQueue.000000000001', 10.0) in memory_store.calls

    @pytest.mark.asyncio
    async def test_malformed_entry_gone_after_grace(self, walker, processor, memory_store, make_item, blocking_callback):
        release, _ = blocking_callback
        memory_store.put_raw('jQueue.000000000999', ['not', 'an', 'item'])
        good = memory_store.create(NAMESPACE, make_item())

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.dispatched == 1
        memory_store.reap()
        assert memory_store.get('jQueue.000000000999') is None
        assert memory_store.get(good) is not None

        release.set()
        await processor.wait_idle(1)

    @pytest.mark.asyncio
    async def test_malformed_entry_does_not_stop_walk(self, walker, processor, memory_store, make_item, blocking_callback):
        release, calls = blocking_callback
        memory_store.create(NAMESPACE, make_item())
        memory_store.put_raw('jQueue.000000000099', 'garbage')
        memory_store.create(NAMESPACE, make_item())

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.dispatched == 2
        assert result.malformed == 1
        release.set()
        await processor.wait_idle(1)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unknown_status_gets_grace_expiry(self, walker, memory_store, make_item):
        from worker.walker import UNKNOWN_STATUS_ERROR

        key = memory_store.create(NAMESPACE, make_item(status='finished'))

        result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.errors == [UNKNOWN_STATUS_ERROR]
        assert result.unknown == 1
        assert ('set_expiry', key, 10.0) in memory_store.calls
        assert memory_store.writes_for(key) == []

    @pytest.mark.asyncio
    async def test_custom_grace_expiry(self, memory_store, processor):
        from worker.walker import QueueWalker

        walker = QueueWalker(memory_store, processor, grace_expiry=2.5)
        memory_store.put_raw('jQueue.000000000001', 'garbage')

        walker.walk(memory_store.read_all(NAMESPACE))

        assert ('set_expiry', 'jQueue.000000000001', 2.5) in memory_store.calls

    @pytest.mark.asyncio
    async def test_set_expiry_failure_is_logged(self, walker, memory_store, caplog):
        def broken(key, seconds):
            raise OSError("disk gone")

        memory_store.set_expiry = broken
        memory_store.put_raw('jQueue.000000000001', 'garbage')

        with caplog.at_level('DEBUG', logger='Eventual'):
            result = walker.walk(memory_store.read_all(NAMESPACE))

        assert result.malformed == 1
        assert any('Failed to set grace expiry' in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_item_error_logged(self, walker, memory_store, caplog):
        memory_store.put_raw('jQueue.000000000001', 'garbage')

        with caplog.at_level('DEBUG', logger='Eventual'):
            walker.walk(memory_store.read_all(NAMESPACE))

        errors = [r for r in caplog.records if r.getMessage().startswith('Item error:')]
        assert len(errors) == 1
        assert errors[0].levelname == 'ERROR'
        assert errors[0].data['key'] == 'jQueue.000000000001'


class TestOverlappingWalks:
    """Tests for walks that overlap with in-flight dispatches."""

    @pytest.mark.asyncio
    async def test_stale_snapshot_does_not_redispatch(self, walker, processor, memory_store, make_item, blocking_callback):
        """Second walk over an old snapshot skips the key already in flight."""
        release, calls = blocking_callback
        memory_store.create(NAMESPACE, make_item())
        stale = memory_store.read_all(NAMESPACE)

        first = walker.walk(stale)
        second = walker.walk(stale)

        assert first.dispatched == 1
        assert second.dispatched == 0
        assert second.skipped == 1

        release.set()
        await processor.wait_idle(1)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fresh_snapshot_sees_processing(self, walker, processor, memory_store, make_item, blocking_callback):
        release, calls = blocking_callback
        memory_store.create(NAMESPACE, make_item())

        walker.walk(memory_store.read_all(NAMESPACE))
        second = walker.walk(memory_store.read_all(NAMESPACE))

        assert second.skipped == 1
        release.set()
        await processor.wait_idle(1)
        assert len(calls) == 1
