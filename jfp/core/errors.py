"""
Error hierarchy for the sync core.

Recoverable conditions (corrupt cache, corrupt manifest, network
failures on the read path) never raise — they are logged and folded
into results.  These exceptions cover the cases a caller must decide on.
"""

from __future__ import annotations


class JfpError(Exception):
    """Base class for all jfp errors."""


class ConfigError(JfpError):
    """Raised when the configuration file is invalid."""


class UnsafePathError(JfpError):
    """Raised when an identifier would resolve outside its install root."""


class SyncInProgressError(JfpError):
    """Raised when another process holds the library sync lock."""


class NotAuthorizedError(JfpError):
    """Raised when the caller has no usable credentials."""


class LibrarySyncError(JfpError):
    """Raised when the library download fails for any other reason."""
