"""Exceptions raised by the cache layer.

Setup failures (connect, schema, write) derive from ``CacheSetupError``;
``CachingParser`` catches exactly those and falls back to parsing the
source directly. Read-path failures derive from ``CacheReadError`` and are
always raised, so they cannot be mistaken for a missing record.
"""


class GedcomCacheError(Exception):
    """Base class for cache errors."""


class CacheSetupError(GedcomCacheError):
    """The cache could not be prepared for use."""


class CacheConnectError(CacheSetupError):
    """The cache database file could not be created or opened."""


class CacheSchemaError(CacheSetupError):
    """Creating the cache table or its indexes failed."""


class CacheWriteError(CacheSetupError):
    """Writing to the cache failed (including duplicate record ids)."""


class CacheReadError(GedcomCacheError):
    """Reading from an established cache failed."""


class CacheSerializationError(CacheReadError):
    """A record payload could not be encoded or decoded."""
