"""HTTP transports used by the checker."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "pulsecheck/0.1"

# Upper bound for a whole request, regardless of redirects.
REQUEST_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class RequestOptions:
    """Request parameters shared by every transport."""

    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    follow_redirects: bool = True
    max_redirects: int = 10
    timeout: float = REQUEST_TIMEOUT_SECONDS


class Transport(Protocol):
    def fetch(self, url: str, options: RequestOptions, ignore_tls: bool) -> requests.Response: ...


class RequestsTransport:
    """Transport backed by ``requests``.

    With ``proxy_url`` set every request goes through that proxy; without it,
    proxy environment variables are ignored so the request is direct.
    """

    def __init__(self, proxy_url: str | None = None, user_agent: str = DEFAULT_USER_AGENT) -> None:
        self._proxy_url = proxy_url
        self._user_agent = user_agent

    @property
    def proxied(self) -> bool:
        return self._proxy_url is not None

    def fetch(self, url: str, options: RequestOptions, ignore_tls: bool) -> requests.Response:
        headers = {"User-Agent": self._user_agent}
        headers.update(options.headers)

        with requests.Session() as session:
            if self._proxy_url is not None:
                session.proxies = {"http": self._proxy_url, "https": self._proxy_url}
            else:
                session.trust_env = False
            if options.follow_redirects:
                session.max_redirects = options.max_redirects

            response = session.request(
                options.method,
                url,
                headers=headers,
                data=options.body.encode("utf-8") if options.body is not None else None,
                allow_redirects=options.follow_redirects,
                verify=not ignore_tls,
                timeout=options.timeout,
            )
            # Load the body before the session closes
            _ = response.content
            return response


class Settings(Protocol):
    def is_proxy_enabled(self) -> bool: ...


@dataclass(frozen=True)
class ProxySettings:
    """Proxy configuration (see the ``proxy`` config section)."""

    enabled: bool = False
    url: str | None = None

    def is_proxy_enabled(self) -> bool:
        return self.enabled and bool(self.url)


def is_proxy_enabled(settings: Settings) -> bool:
    """Read the proxy flag, treating any settings failure as disabled."""
    try:
        return bool(settings.is_proxy_enabled())
    except Exception as e:
        logger.warning("Failed to read proxy settings, using direct connection: %s", e)
        return False
