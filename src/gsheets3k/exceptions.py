"""
Exception classes for gsheets3k.

Nothing in the library exits the process, every failure surfaces as one of
these so the hosting application decides what is fatal.
"""
import json

from googleapiclient.errors import HttpError

# reasons Google puts in the error details for a quota/rate limit hit
_QUOTA_REASONS = {"rateLimitExceeded", "userRateLimitExceeded",
                  "RATE_LIMIT_EXCEEDED", "RESOURCE_EXHAUSTED"}
_QUOTA_MESSAGE = "quota exceeded"


class GoogleSheets3kError(Exception):
    """Base class for everything raised by gsheets3k."""
    pass


class TransportFailure(GoogleSheets3kError):
    """Raised when a call to the Sheets service or the auth provider fails.

    Wraps the vendor exception (available as __cause__) and keeps the
    HTTP status when there was one.  Common causes include:
        - Authentication failures or revoked tokens
        - Invalid spreadsheet IDs or missing permissions
        - Network connectivity issues
    """
    def __init__(self, message: str, status: int|None = None, reason: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class QuotaExceeded(TransportFailure):
    """Raised when the Sheets API rejects a call for quota/rate limit reasons.

    Write paths that retry will only raise this once the retry budget is
    spent, attempts records how many calls were made in total.
    """
    def __init__(self, message: str, status: int|None = None, reason: str = "",
                 attempts: int = 1) -> None:
        super().__init__(message, status, reason)
        self.attempts = attempts


class TabNotFound(GoogleSheets3kError, LookupError):
    """Raised when no tab in a spreadsheet snapshot carries the requested title."""
    def __init__(self, tab_name: str, spreadsheet_id: str = "") -> None:
        super().__init__(f"Sheet {tab_name} not found in SpreadsheetID: {spreadsheet_id}")
        self.tab_name = tab_name
        self.spreadsheet_id = spreadsheet_id


class TypeMismatch(GoogleSheets3kError, TypeError):
    """Raised when a cell value is not of the scalar type an operation needs."""
    pass


class IndexOutOfRange(GoogleSheets3kError, IndexError):
    """Raised when a column index falls outside a row."""
    pass


def _http_status(err: Exception) -> int|None:
    status = getattr(getattr(err, "resp", None), "status", None)
    try:
        return int(status)
    except (TypeError, ValueError):
        return None


def _error_reasons(err: Exception) -> set[str]:
    """
    The machine readable reasons in a Google error body:
    {"error": {"status": ..., "errors": [{"reason": ...}], "details": [{"reason": ...}]}}
    """
    reasons = set()
    content = getattr(err, "content", None)
    try:
        error = json.loads(content.decode("utf-8"))["error"]
    except (AttributeError, ValueError, KeyError, TypeError):
        error = None
    if isinstance(error, dict):
        if isinstance(error.get("status"), str):
            reasons.add(error["status"])
        for key in ("errors", "details"):
            for d in error.get(key) or []:
                if isinstance(d, dict) and isinstance(d.get("reason"), str):
                    reasons.add(d["reason"])
    details = getattr(err, "error_details", None)
    if isinstance(details, list):
        reasons.update(d["reason"] for d in details
                       if isinstance(d, dict) and isinstance(d.get("reason"), str))
    return reasons


def is_quota_error(err: Exception) -> bool:
    """
    Does this HttpError mean we ran out of quota?
    The status code and structured reasons are checked first, the
    message match is only a fallback for older style 403 replies.
    """
    if _http_status(err) == 429:
        return True
    if _error_reasons(err) & _QUOTA_REASONS:
        return True
    return _QUOTA_MESSAGE in str(err).lower()


def classify_http_error(err: HttpError, operation: str = "") -> TransportFailure:
    """
    Translate a client HttpError into our error kinds.
    Returns the exception for the caller to raise so the chain is kept:
        raise classify_http_error(e, "append") from e
    """
    status = _http_status(err)
    reason = getattr(err, "reason", "")
    reason = reason if isinstance(reason, str) else ""
    prefix = f"{operation} failed" if operation else "Sheets API call failed"
    if is_quota_error(err):
        return QuotaExceeded(f"{prefix}, quota exceeded: {reason or err}", status, reason)
    return TransportFailure(f"{prefix}: {reason or err}", status, reason)
