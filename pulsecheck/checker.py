"""HTTP, keyword and certificate check orchestration."""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import requests

from .certificate import CertificateInspector, SocketCertificateInspector, evaluate_certificate
from .errors import network_error_message
from .models import (
    CHECK_CERTIFICATE,
    CHECK_HTTP,
    CHECK_KEYWORD,
    MonitorCheckConfig,
    MonitorCheckResult,
    MonitorStatus,
)
from .reminder import DailyReminder
from .status_codes import StatusRangeError, classify, parse_status_range
from .transport import (
    REQUEST_TIMEOUT_SECONDS,
    ProxySettings,
    RequestOptions,
    Settings,
    Transport,
    is_proxy_enabled,
)

logger = logging.getLogger(__name__)

KEYWORD_NOT_FOUND = "Keyword not found in response"

# Methods that carry a request body
BODY_METHODS = ("POST", "PUT", "PATCH")

# Concurrent transport calls per checker
MAX_WORKERS = 8


def _down(message: str, ping: int = 0) -> MonitorCheckResult:
    return MonitorCheckResult(status=MonitorStatus.DOWN, message=message, ping=ping)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def parse_request_headers(raw: str, monitor_name: str = "") -> dict[str, str]:
    """Parse a raw JSON object of headers.

    Malformed input is logged and yields no headers; it never fails the check.
    """
    if not raw:
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse request headers for %s: %s", monitor_name, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Request headers for %s must be a JSON object, ignoring", monitor_name)
        return {}

    return {str(key): str(value) for key, value in data.items()}


class HttpChecker:
    """Runs HTTP, keyword and certificate checks against a single endpoint.

    Transport calls run on a thread pool so each request is bounded by
    ``request_timeout`` even if the transport itself hangs.

    Example:
        checker = HttpChecker(RequestsTransport())
        result = checker.check(MonitorCheckConfig(url="https://example.com"))
    """

    def __init__(
        self,
        transport: Transport,
        proxy_transport: Transport | None = None,
        settings: Settings | None = None,
        inspector: CertificateInspector | None = None,
        reminder: DailyReminder | None = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        keyword_cert_precheck: bool = False,
        max_workers: int = MAX_WORKERS,
    ) -> None:
        """Initialize the checker.

        Args:
            transport: Transport used for direct requests.
            proxy_transport: Transport used when the proxy is enabled.
            settings: Source of the proxy-enabled flag.
            inspector: Certificate inspector for HTTPS certificate checks.
            reminder: Daily reminder fed with every certificate verdict.
            request_timeout: Upper bound in seconds for one request.
            keyword_cert_precheck: Run the certificate pre-check on keyword checks too.
            max_workers: Size of the transport thread pool.
        """
        self._transport = transport
        self._proxy_transport = proxy_transport
        self._settings = settings or ProxySettings()
        self._inspector = inspector or SocketCertificateInspector()
        self._reminder = reminder
        self._request_timeout = request_timeout
        self._keyword_cert_precheck = keyword_cert_precheck
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pulsecheck-fetch")

    def close(self) -> None:
        """Release the transport thread pool without waiting for hung requests."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def check(self, config: MonitorCheckConfig) -> MonitorCheckResult:
        """Run the check selected by ``config.check_type``. Never raises."""
        try:
            if config.check_type == CHECK_HTTP:
                return self.check_http(config)
            if config.check_type == CHECK_KEYWORD:
                return self.check_keyword(config)
            if config.check_type == CHECK_CERTIFICATE:
                return self.check_certificate(config)
            return _down(f"Unsupported check type: {config.check_type}")
        except Exception as e:
            logger.exception("Unexpected error while checking %s", config.monitor_name or config.url)
            return _down(f"Check failed: {e}")

    def check_certificate(self, config: MonitorCheckConfig) -> MonitorCheckResult:
        """Evaluate the certificate of an HTTPS endpoint and feed the daily reminder."""
        result = evaluate_certificate(config.url, config.monitor_id, config.monitor_name, self._inspector)
        if self._reminder is not None and config.monitor_id and config.monitor_name:
            queued = self._reminder.maybe_notify_daily(
                config.monitor_id,
                config.monitor_name,
                result.certificate_days_remaining,
                result.status,
            )
            if queued:
                result = replace(result, reminder_queued=True)
        return result

    def check_http(self, config: MonitorCheckConfig) -> MonitorCheckResult:
        """Check an endpoint's HTTP status, after an optional certificate pre-check."""
        if not config.url:
            return _down("URL must not be empty")

        start = time.monotonic()
        try:
            invalid = self._validate_status_codes(config)
            if invalid is not None:
                return invalid

            # A failing certificate is authoritative: the request is never sent.
            cert_result = self._certificate_precheck(config)
            if cert_result is not None:
                return cert_result

            try:
                response = self._fetch(config)
            except Exception as e:
                return _down(network_error_message(e), _elapsed_ms(start))

            ping = _elapsed_ms(start)
            if classify(response.status_code, config.accepted_status_codes):
                return MonitorCheckResult(
                    status=MonitorStatus.UP,
                    message=f"Status code: {response.status_code}",
                    ping=ping,
                )
            return _down(f"Unexpected status code: {response.status_code}", ping)
        except Exception as e:
            logger.exception("HTTP check failed for %s", config.monitor_name or config.url)
            return _down(network_error_message(e), _elapsed_ms(start))

    def check_keyword(self, config: MonitorCheckConfig) -> MonitorCheckResult:
        """Check that an endpoint answers with an accepted status and contains a keyword."""
        if not config.url:
            return _down("URL must not be empty")
        if not config.keyword:
            return _down("Keyword must not be empty")

        start = time.monotonic()
        try:
            invalid = self._validate_status_codes(config)
            if invalid is not None:
                return invalid

            if self._keyword_cert_precheck:
                cert_result = self._certificate_precheck(config)
                if cert_result is not None:
                    return cert_result

            try:
                response = self._fetch(config)
            except Exception as e:
                return _down(network_error_message(e), _elapsed_ms(start))

            ping = _elapsed_ms(start)
            if not classify(response.status_code, config.accepted_status_codes):
                return _down(f"Unexpected status code: {response.status_code}", ping)

            if config.keyword in response.text:
                return MonitorCheckResult(
                    status=MonitorStatus.UP,
                    message=f"Keyword found, status code: {response.status_code}",
                    ping=ping,
                )
            return _down(KEYWORD_NOT_FOUND, ping)
        except Exception as e:
            logger.exception("Keyword check failed for %s", config.monitor_name or config.url)
            return _down(network_error_message(e), _elapsed_ms(start))

    def build_request_options(self, config: MonitorCheckConfig) -> RequestOptions:
        """Translate a monitor configuration into transport request options."""
        method = (config.http_method or "GET").upper()
        body = config.request_body if config.request_body and method in BODY_METHODS else None

        return RequestOptions(
            method=method,
            headers=parse_request_headers(config.request_headers, config.monitor_name),
            body=body,
            follow_redirects=config.max_redirects > 0,
            max_redirects=max(config.max_redirects, 0),
            timeout=self._request_timeout,
        )

    def _validate_status_codes(self, config: MonitorCheckConfig) -> MonitorCheckResult | None:
        try:
            parse_status_range(config.accepted_status_codes)
        except StatusRangeError as e:
            return _down(f"Invalid accepted status codes: {e}")
        return None

    def _certificate_precheck(self, config: MonitorCheckConfig) -> MonitorCheckResult | None:
        """Return the certificate verdict when it is DOWN, None when the request may proceed."""
        if not (
            config.notify_cert_expiry
            and config.url.startswith("https://")
            and config.monitor_id
            and config.monitor_name
        ):
            return None

        cert_result = self.check_certificate(config)
        if cert_result.status == MonitorStatus.DOWN:
            return cert_result
        return None

    def _select_transport(self) -> Transport:
        if is_proxy_enabled(self._settings):
            if self._proxy_transport is not None:
                return self._proxy_transport
            logger.warning("Proxy enabled but no proxy transport configured, using direct connection")
        return self._transport

    def _fetch(self, config: MonitorCheckConfig) -> requests.Response:
        options = self.build_request_options(config)
        transport = self._select_transport()

        future = self._executor.submit(transport.fetch, config.url, options, config.ignore_tls)
        try:
            return future.result(timeout=self._request_timeout)
        except TimeoutError:
            if not future.done():
                future.cancel()
                raise TimeoutError(f"no response within {self._request_timeout:g}s")
            raise
