"""
Comic Catalog errors

Every error carries a code, a message and a details dict that to_dict()
flattens for log lines.

    CatalogBaseError
    ├── UpstreamError
    │   └── UpstreamTransportError
    └── RecordStoreError

A well-formed upstream response with a non-200 status code is NOT an error:
it is returned to the caller as data (see ComicPage.code).
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class CatalogBaseError(Exception):
    """
    Root of every error raised by Comic Catalog.

    Attributes:
        message: what went wrong, for people
        code: stable identifier, for callers and log queries
        details: request context (url, status, key, ...)
        severity: P0-P3
    """

    default_code: str = "CATALOG_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Flat dict for structured log lines."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# UPSTREAM (MARVEL API) ERRORS
# =============================================================================

class UpstreamError(CatalogBaseError):
    """Base exception for failures talking to the upstream comics API."""
    default_code = "UPSTREAM_ERROR"
    default_severity = "P2"


class UpstreamTransportError(UpstreamError):
    """
    Network failure or non-parseable response from the upstream API.

    Never cached and never retried internally; retry policy belongs to the caller.
    """
    default_code = "UPSTREAM_TRANSPORT_FAILED"

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "url": url,
            "status_code": status_code,
        })
        self.url = url
        self.status_code = status_code
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RECORD STORE ERRORS
# =============================================================================

class RecordStoreError(CatalogBaseError):
    """Misuse of the record store or corrupt cached data."""
    default_code = "RECORD_STORE_ERROR"
    default_severity = "P3"
