"""Data models for monitor checks."""

from dataclasses import dataclass
from enum import IntEnum


class MonitorStatus(IntEnum):
    """Binary health verdict of a single check."""

    DOWN = 0
    UP = 1


# Check types understood by HttpChecker.check()
CHECK_HTTP = "http"
CHECK_KEYWORD = "keyword"
CHECK_CERTIFICATE = "https-cert"
CHECK_TYPES = (CHECK_HTTP, CHECK_KEYWORD, CHECK_CERTIFICATE)

DEFAULT_STATUS_CODES = "200-299"
DEFAULT_MAX_REDIRECTS = 10


@dataclass(frozen=True)
class MonitorCheckConfig:
    """Input to a single check invocation.

    Empty ``url`` or ``keyword`` values are accepted here on purpose: they are
    reported as DOWN results by the checker rather than raised.

    Attributes:
        url: Endpoint to check.
        http_method: HTTP method (default GET).
        accepted_status_codes: Range spec such as "200-299" or "200-299, 301".
        max_redirects: Redirects to follow; 0 disables following.
        request_body: Body sent for POST/PUT/PATCH requests.
        request_headers: Raw JSON object string of header -> value.
        notify_cert_expiry: Run the certificate pre-check on HTTPS URLs.
        ignore_tls: Skip TLS verification on the HTTP request.
        monitor_id: Monitor identity used for notification dedup.
        monitor_name: Human-readable monitor name used in notifications.
        keyword: Literal text the body must contain (keyword checks).
        check_type: One of CHECK_TYPES.
    """

    url: str
    http_method: str = "GET"
    accepted_status_codes: str = DEFAULT_STATUS_CODES
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    request_body: str = ""
    request_headers: str = ""
    notify_cert_expiry: bool = False
    ignore_tls: bool = False
    monitor_id: str = ""
    monitor_name: str = ""
    keyword: str = ""
    check_type: str = CHECK_HTTP


@dataclass(frozen=True)
class MonitorCheckResult:
    """Outcome of a single check.

    Attributes:
        status: UP or DOWN.
        message: Human-readable explanation.
        ping: Elapsed time in milliseconds.
        certificate_days_remaining: Days until certificate expiry (negative if
            expired), or None when it could not be determined.
        reminder_queued: A daily certificate reminder was already queued for
            this result, so no further DOWN notification is needed.
    """

    status: MonitorStatus
    message: str
    ping: int
    certificate_days_remaining: int | None = None
    reminder_queued: bool = False

    @property
    def is_up(self) -> bool:
        return self.status == MonitorStatus.UP


@dataclass(frozen=True)
class CertificateInfo:
    """Certificate metadata returned by a certificate inspector."""

    valid: bool
    days_remaining: int
