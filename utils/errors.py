from __future__ import annotations


class ReportError(Exception):
    """Base class for errors surfaced to report callers."""

    kind = "ReportError"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "message": self.message}


class InvalidFilter(ReportError):
    kind = "InvalidFilter"


class InvalidDateRange(ReportError):
    kind = "InvalidDateRange"


class UnknownReport(ReportError):
    kind = "UnknownReport"
    status_code = 404


class DataStoreUnavailable(ReportError):
    """Raised once the ledger has exhausted its retries."""

    kind = "DataStoreUnavailable"
    status_code = 503
