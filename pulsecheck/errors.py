"""Error types and network error normalization."""

import socket
import ssl

import requests


class NotificationError(Exception):
    """Raised when a notification could not be delivered."""

    pass


# Fragments urllib3/requests embed in ConnectionError messages for DNS failures
_DNS_FAILURE_MARKERS = (
    "Failed to resolve",
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "Temporary failure in name resolution",
)


def network_error_message(error: BaseException) -> str:
    """Turn a transport or certificate retrieval exception into a short message.

    Args:
        error: Exception raised while talking to the remote endpoint.

    Returns:
        Human-readable description suitable for a check result.
    """
    # requests.Timeout covers ConnectTimeout, which is also a ConnectionError
    if isinstance(error, requests.exceptions.Timeout):
        return f"Request timeout: {error}"
    if isinstance(error, requests.exceptions.SSLError):
        return f"TLS error: {error}"
    if isinstance(error, requests.exceptions.TooManyRedirects):
        return f"Too many redirects: {error}"
    if isinstance(error, requests.exceptions.ConnectionError):
        text = str(error)
        if any(marker in text for marker in _DNS_FAILURE_MARKERS):
            return f"DNS resolution failed: {text}"
        return f"Connection failed: {text}"
    if isinstance(error, (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema)):
        return f"Invalid URL: {error}"
    if isinstance(error, TimeoutError):
        return f"Request timeout: {str(error) or 'no response within the time limit'}"
    if isinstance(error, ssl.SSLCertVerificationError):
        return f"SSL certificate verification failed: {error}"
    if isinstance(error, ssl.SSLError):
        return f"TLS error: {error}"
    if isinstance(error, socket.gaierror):
        return f"DNS resolution failed: {error}"
    if isinstance(error, ConnectionRefusedError):
        return f"Connection refused: {error}"
    if isinstance(error, ConnectionResetError):
        return f"Connection reset: {error}"
    if isinstance(error, OSError):
        return f"Connection failed: {error}"
    return str(error) or type(error).__name__
