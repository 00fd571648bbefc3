"""
Queue processing engine.

Exports the walker that drains queue snapshots, the processor that
dispatches single items, and the arrival watch used by push(process_now=True).
"""

from worker.processor import CallbackDeclined, ItemProcessor, ProcessorStats
from worker.walker import GRACE_EXPIRY, QueueWalker, WalkResult
from worker.watch import ArrivalWatch

__all__ = [
    'CallbackDeclined',
    'ItemProcessor',
    'ProcessorStats',
    'GRACE_EXPIRY',
    'QueueWalker',
    'WalkResult',
    'ArrivalWatch',
]
