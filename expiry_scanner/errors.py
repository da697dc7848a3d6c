"""Exception types raised across the resolution cascade."""

from __future__ import annotations


class ExpiryScanError(Exception):
    """Base class for all expiry scanner errors."""


class InputError(ExpiryScanError):
    """The scan input carried neither a usable code nor an image."""


class ConfigError(ExpiryScanError):
    """A required credential or setting is missing."""


class UpstreamError(ExpiryScanError):
    """The inference provider could not be reached or rejected the request."""


class ParseError(ExpiryScanError):
    """The provider reply did not contain a usable JSON object."""


class CatalogLookupError(ExpiryScanError):
    """The reference catalog could not be queried."""


class PersistenceError(ExpiryScanError):
    """Saving an accepted result to the inventory failed."""
