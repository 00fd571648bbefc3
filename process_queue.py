#!/usr/bin/env python3
"""
Manual queue processor.

Run this script to walk the activity queue once and wait for the dispatched
callbacks to settle. Callbacks are registered by the modules passed with
--import; each must expose register(registry).

Usage:
    python process_queue.py [--data-dir ./data] [--import myapp.queue_callbacks]
    python process_queue.py --stats-only
    python process_queue.py --push '{"id": 1}' --callback eventual.example
"""

import argparse
import asyncio
import importlib
import json
import sys

from shared.log import create_logger

log_debug, log_notice, log_warn, log_error = create_logger("CLI")


def load_callbacks(registry, module_names):
    """Import callback modules and let each register its callbacks."""
    for name in module_names:
        module = importlib.import_module(name)
        register = getattr(module, 'register', None)
        if not callable(register):
            raise ValueError(f"{name} has no register(registry) function")
        register(registry)
        log_debug(f"Loaded callbacks from {name}")


async def process_queue(manager, wait: float) -> int:
    """Walk the queue once and wait for dispatched callbacks."""
    result = manager.start()
    if result is None:
        return 1
    log_notice(
        f"Walk dispatched {result.dispatched} item(s), skipped {result.skipped}, "
        f"{len(result.errors)} error(s)"
    )
    idle = await manager.wait_idle(timeout=wait)
    if not idle:
        log_warn(f"Callbacks still running after {wait}s, cancelling")
    await manager.stop()

    stats = manager.get_stats()
    log_notice(f"Final stats: {json.dumps(stats)}")
    return 0 if not result.errors else 1


def main(argv=None):
    parser = argparse.ArgumentParser(description='Process the activity queue manually')
    parser.add_argument('--data-dir', '-d', help='Activity store directory (or set EVENTUAL_DATA_DIR)')
    parser.add_argument('--namespace', '-n', help='Queue namespace (or set EVENTUAL_NAMESPACE)')
    parser.add_argument('--import', dest='imports', action='append', default=[],
                        metavar='MODULE', help='Module exposing register(registry); repeatable')
    parser.add_argument('--push', metavar='JSON', help='Add an item with this JSON payload first')
    parser.add_argument('--callback', default='eventual.example', help='Callback name for --push')
    parser.add_argument('--wait', type=float, default=30.0, help='Seconds to wait for callbacks')
    parser.add_argument('--stats-only', '-s', action='store_true', help='Only show queue stats')
    parser.add_argument('--json-logs', action='store_true', help='Structured JSON log output')

    args = parser.parse_args(argv)

    # Import here to allow script to show help without dependencies
    from activity_queue.callbacks import CallbackRegistry
    from activity_queue.manager import QueueManager
    from activity_queue.operations import get_stats
    from shared.context import PageContext
    from shared.logging_config import configure_logging
    from validation.config import validate_config

    overrides = {}
    if args.data_dir:
        overrides['data_dir'] = args.data_dir
    if args.namespace:
        overrides['namespace'] = args.namespace
    if args.json_logs:
        overrides['json_logs'] = True

    config, error = validate_config(overrides)
    if config is None:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        return 1

    configure_logging(config.log_level, json_output=config.json_logs)
    config.log_config()

    registry = CallbackRegistry()
    try:
        load_callbacks(registry, args.imports)
    except (ImportError, ValueError) as e:
        log_error(f"Failed to load callbacks: {e}")
        return 1

    manager = QueueManager.from_config(config, registry=registry, context=PageContext.from_env())

    try:
        if args.stats_only:
            print(json.dumps(get_stats(manager.store, config.namespace), indent=2))
            return 0

        if args.push is not None:
            try:
                payload = json.loads(args.push)
            except json.JSONDecodeError as e:
                log_error(f"--push is not valid JSON: {e}")
                return 1
            manager.push(payload, args.callback)

        return asyncio.run(process_queue(manager, args.wait))
    finally:
        manager.store.close()


if __name__ == '__main__':
    sys.exit(main())
