"""
Failure taxonomy for the report engine.

Fatal conditions are raised as exceptions. Inconsistent source data is not
an exception: it is attached to the returned report as a diagnostic (see
``schemas.DiagnosticCode``).
"""

from typing import Iterable, Optional


class ReportError(Exception):
    """Raised when report generation fails or input is invalid."""

    pass


class ScopeViolation(ReportError):
    """Missing, malformed or unresolvable tenant."""

    def __init__(self, message: str, tenant_id: Optional[object] = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class EmptyWindow(ReportError):
    """Invalid date window: from > to, or a required date is missing."""

    pass


class UnsupportedReportKind(ReportError):
    """Report kind outside the closed set of supported kinds."""

    pass


class InvalidReportOptions(ReportError):
    """Report options that fail validation (e.g. a threshold fraction outside 0-1)."""

    pass


class UnknownAccount(ReportError):
    """A ledger entry references an account code missing from the chart."""

    def __init__(self, account_codes: Iterable[str]):
        self.account_codes = sorted(set(account_codes))
        super().__init__(f"Unknown account code(s): {', '.join(self.account_codes)}")


class ReportTimeout(ReportError):
    """The record store did not answer within the configured bound."""

    def __init__(self, record_kind: str, timeout_seconds: float):
        self.record_kind = record_kind
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Reading {record_kind} records timed out after {timeout_seconds}s")


class ReportCancelled(ReportError):
    """The caller abandoned the request before the report completed."""

    pass
