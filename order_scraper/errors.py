"""Failure types raised while scraping.

Callers branch on :attr:`ScrapeError.kind` rather than on the concrete class:

* ``SIGN_IN_REQUIRED``: a page lacked its structural marker (no year filter,
  no invoice links); the session must be escalated to interactive mode.
* ``INVOICE_PARSING_FAILED``: the parser produced conflicting or missing
  fields; the raw content is attached for fixture creation.
* ``TRANSIENT_FETCH``: navigation kept failing after every retry.
* ``CACHE_CORRUPTION``: cached content could not be parsed; the scraper
  discards the entry and fetches live, so this never reaches callers.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    SIGN_IN_REQUIRED = "sign_in_required"
    INVOICE_PARSING_FAILED = "invoice_parsing_failed"
    TRANSIENT_FETCH = "transient_fetch"
    CACHE_CORRUPTION = "cache_corruption"


class ScrapeError(RuntimeError):
    kind: ErrorKind

    def __init__(self, message: str, *, url: Optional[str] = None, content: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url
        self.content = content


class SignInRequiredError(ScrapeError):
    """Raised when a page looks like a sign-in or verification wall."""

    kind = ErrorKind.SIGN_IN_REQUIRED

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        content: Optional[str] = None,
        page: Any = None,
    ) -> None:
        super().__init__(message, url=url, content=content)
        self.page = page


class InvoiceParsingFailedError(ScrapeError):
    kind = ErrorKind.INVOICE_PARSING_FAILED

    def __init__(self, reason: str, *, content: str, url: Optional[str] = None) -> None:
        super().__init__(f"Failed to parse invoice: {reason}", url=url, content=content)
        self.reason = reason


class TransientFetchError(ScrapeError):
    kind = ErrorKind.TRANSIENT_FETCH

    def __init__(self, message: str, *, url: str, attempts: int) -> None:
        super().__init__(message, url=url)
        self.attempts = attempts


class CacheCorruptionError(ScrapeError):
    kind = ErrorKind.CACHE_CORRUPTION

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"Cached content for {key} could not be parsed: {cause}")
        self.key = key
        self.cause = cause
