"""
Queue item data models.

Items are persisted as plain dicts so that a corrupt entry is stored and read
back exactly as it is; QueueItem is the validated, typed view the worker
operates on.
"""

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

# Page-identity fields snapshotted into item meta at enqueue time
CONTEXT_FIELDS = ('entityBundle', 'entityNid', 'entityTnid')


class ItemStatus(str, Enum):
    """Queue item statuses."""
    NEW = "new"
    READY = "ready"
    PROCESSING = "processing"


# Statuses that may be dispatched
DISPATCHABLE = frozenset({ItemStatus.NEW.value, ItemStatus.READY.value})


class MalformedItemError(ValueError):
    """Stored value is not an item dict or is missing meta.status."""
    pass


class ItemMeta(BaseModel):
    """
    Item metadata.

    status is kept as stored: values outside ItemStatus are reported by the
    walker as an error condition, never coerced. The remaining fields are
    informational and accept whatever was stored, so an odd value never
    turns a dispatchable item into a malformed one.
    """
    model_config = ConfigDict(extra='allow')

    status: Any
    url: Any = None
    entityBundle: Any = None
    entityNid: Any = None
    entityTnid: Any = None
    attempts: int = 0
    created_at: Any = None

    @field_validator('attempts', mode='before')
    @classmethod
    def validate_attempts(cls, v):
        """Unreadable counters restart at 0."""
        if isinstance(v, int) and not isinstance(v, bool) and v >= 0:
            return v
        return 0


class QueueItem(BaseModel):
    """Validated queue item."""
    model_config = ConfigDict(extra='allow')

    key: str
    callback: Any = None
    data: Any = None
    meta: ItemMeta

    @property
    def status(self) -> Any:
        return self.meta.status

    def to_record(self) -> dict:
        """Dict form written back to the store."""
        return self.model_dump(exclude_none=False)


def build_item(data: Any, callback: str, context=None) -> dict:
    """
    Build a new queue item record.

    Args:
        data: Caller payload, stored unmodified
        callback: Dotted callback name, resolved at dispatch time
        context: Context reader with get(field); None for no context

    Returns:
        Item dict with status "new" and a context snapshot in meta
    """
    meta = {
        'status': ItemStatus.NEW.value,
        'url': context.get('url') if context is not None else None,
        'attempts': 0,
        'created_at': time.time(),
    }
    for field in CONTEXT_FIELDS:
        meta[field] = context.get(field) if context is not None else None

    return {
        'callback': callback,
        'data': data,
        'meta': meta,
    }


def parse_item(key: str, raw: Any) -> QueueItem:
    """
    Validate a stored value as a queue item.

    Args:
        key: Storage key the value was read from (copied into the item)
        raw: Value as stored

    Returns:
        QueueItem

    Raises:
        MalformedItemError: raw is not a dict, or meta/status is missing or invalid
    """
    if not isinstance(raw, dict):
        raise MalformedItemError(f"expected item dict, got {type(raw).__name__}")
    meta = raw.get('meta')
    if not isinstance(meta, dict) or not meta.get('status'):
        raise MalformedItemError("missing meta.status")

    record = dict(raw)
    record['key'] = key
    try:
        return QueueItem.model_validate(record)
    except ValidationError as e:
        fields = ', '.join('.'.join(str(loc) for loc in err['loc']) for err in e.errors())
        raise MalformedItemError(f"invalid item fields: {fields}") from e
