"""
Read-only page/environment context for enqueue-time metadata.

Queue items snapshot a small set of identity fields when they are created
(current URL plus entity bundle/nid/tnid). PageContext is the lookup those
fields come from.
"""

import os
from types import MappingProxyType
from typing import Any, Mapping, Optional

# Field name -> environment variable consulted by PageContext.from_env()
ENV_FIELDS = {
    'url': 'EVENTUAL_URL',
    'entityBundle': 'EVENTUAL_ENTITY_BUNDLE',
    'entityNid': 'EVENTUAL_ENTITY_NID',
    'entityTnid': 'EVENTUAL_ENTITY_TNID',
}


class PageContext:
    """
    Read-only key/value lookup.

    Args:
        values: Mapping of field name to value. Copied; later changes to the
                source mapping are not visible.

    Example:
        >>> context = PageContext({'url': 'https://example.com/node/1', 'entityNid': '1'})
        >>> context.get('entityNid')
        '1'
        >>> context.get('entityTnid') is None
        True
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values = MappingProxyType(dict(values or {}))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'PageContext':
        """Build a context from EVENTUAL_* environment variables."""
        environ = os.environ if environ is None else environ
        return cls({
            field: environ[var]
            for field, var in ENV_FIELDS.items()
            if var in environ
        })

    def get(self, field: str) -> Any:
        """Return the value for field, or None when it is not set."""
        return self._values.get(field)

    def __repr__(self) -> str:
        return f"PageContext({dict(self._values)!r})"
