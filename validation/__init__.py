"""
Validation module for the queue.

Provides queue configuration validation.
"""

from validation.config import QueueConfig, validate_config

__all__ = [
    'QueueConfig',
    'validate_config',
]
