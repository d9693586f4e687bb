"""TLS certificate inspection and evaluation."""

import logging
import socket
import ssl
import time
from datetime import UTC, datetime
from typing import Protocol
from urllib.parse import urlparse

from OpenSSL import crypto

from .errors import network_error_message
from .models import CertificateInfo, MonitorCheckResult, MonitorStatus

logger = logging.getLogger(__name__)

# Certificates expiring within this many days mark the monitor DOWN.
EXPIRY_CRITICAL_DAYS = 7

DEFAULT_CERT_TIMEOUT = 10

# ASN.1 GeneralizedTime as returned by pyOpenSSL
_ASN1_TIME_FORMAT = "%Y%m%d%H%M%SZ"

_SECONDS_PER_DAY = 86400


class CertificateInspector(Protocol):
    def inspect(self, hostname: str, port: int) -> CertificateInfo: ...


def _parse_asn1_time(raw: bytes | None) -> datetime:
    if not raw:
        raise ValueError("Certificate missing validity date")
    return datetime.strptime(raw.decode("ascii"), _ASN1_TIME_FORMAT).replace(tzinfo=UTC)


class SocketCertificateInspector:
    """Reads the peer certificate of a TLS endpoint.

    A verified handshake is attempted first so chain and hostname problems are
    reflected in ``valid``. When verification fails the certificate is fetched
    again without verification, so expiry can still be reported.
    """

    def __init__(self, timeout: float = DEFAULT_CERT_TIMEOUT) -> None:
        self._timeout = timeout

    def inspect(self, hostname: str, port: int) -> CertificateInfo:
        verified = True
        try:
            der = self._fetch_der(hostname, port, verify=True)
        except ssl.SSLCertVerificationError as e:
            logger.debug("Certificate verification failed for %s:%d: %s", hostname, port, e)
            verified = False
            der = self._fetch_der(hostname, port, verify=False)

        cert = crypto.load_certificate(crypto.FILETYPE_ASN1, der)
        not_before = _parse_asn1_time(cert.get_notBefore())
        not_after = _parse_asn1_time(cert.get_notAfter())

        now = datetime.now(UTC)
        days_remaining = round((not_after - now).total_seconds() / _SECONDS_PER_DAY)
        valid = verified and not_before <= now <= not_after

        return CertificateInfo(valid=valid, days_remaining=days_remaining)

    def _fetch_der(self, hostname: str, port: int, verify: bool) -> bytes:
        if verify:
            context = ssl.create_default_context()
        else:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        with socket.create_connection((hostname, port), timeout=self._timeout) as sock:
            with context.wrap_socket(sock, server_hostname=hostname) as ssl_sock:
                der = ssl_sock.getpeercert(binary_form=True)

        if not der:
            raise ssl.SSLError("No certificate returned by server")
        return der


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def evaluate_certificate(
    url: str,
    monitor_id: str,
    monitor_name: str,
    inspector: CertificateInspector,
) -> MonitorCheckResult:
    """Map the certificate of an HTTPS endpoint to an UP/DOWN verdict.

    Imminent expiry (7 days or fewer) counts as DOWN, the same as an expired
    or invalid certificate.

    Args:
        url: Endpoint URL; must use the https scheme.
        monitor_id: Monitor identity, used for logging.
        monitor_name: Monitor name, used for logging.
        inspector: Collaborator that retrieves certificate metadata.

    Returns:
        MonitorCheckResult; certificate_days_remaining is None when the
        certificate could not be retrieved.
    """
    if not url:
        return MonitorCheckResult(status=MonitorStatus.DOWN, message="URL must not be empty", ping=0)

    start = time.monotonic()

    if not url.startswith("https://"):
        return MonitorCheckResult(
            status=MonitorStatus.DOWN,
            message="Only HTTPS URLs are supported (must start with https://)",
            ping=0,
        )

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        port = parsed.port or 443
        if not hostname:
            raise ValueError("no hostname")
    except ValueError as e:
        return MonitorCheckResult(
            status=MonitorStatus.DOWN,
            message=f"Invalid URL: {e}",
            ping=_elapsed_ms(start),
        )

    try:
        cert_info = inspector.inspect(hostname, port)
    except Exception as e:
        logger.warning("Failed to get certificate for %s (%s): %s", monitor_name, monitor_id, e)
        return MonitorCheckResult(
            status=MonitorStatus.DOWN,
            message=f"Certificate check failed: {network_error_message(e)}",
            ping=_elapsed_ms(start),
        )

    days = cert_info.days_remaining

    if cert_info.valid and 0 < days <= EXPIRY_CRITICAL_DAYS:
        return MonitorCheckResult(
            status=MonitorStatus.DOWN,
            message=f"Certificate expires in {days} days (service marked as failed)",
            ping=_elapsed_ms(start),
            certificate_days_remaining=days,
        )

    if not cert_info.valid or days <= 0:
        if days <= 0:
            message = f"Certificate expired {-days} days ago"
        else:
            message = "Certificate is invalid (verification failed)"
        return MonitorCheckResult(
            status=MonitorStatus.DOWN,
            message=message,
            ping=_elapsed_ms(start),
            certificate_days_remaining=days,
        )

    return MonitorCheckResult(
        status=MonitorStatus.UP,
        message=f"HTTPS certificate valid ({days} days remaining)",
        ping=_elapsed_ms(start),
        certificate_days_remaining=days,
    )
