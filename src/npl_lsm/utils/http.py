"""HTTP client factory for the release index and binary downloads.

All outbound HTTP goes through a factory so callers (and tests) can swap the
underlying httpx transport without touching the managers.
"""

from __future__ import annotations

__all__ = [
    "HttpClientFactory",
    "USER_AGENT",
    "create_httpx_client_factory",
]

from typing import Any, Protocol

import httpx

from npl_lsm import __version__
from npl_lsm.constants import APP_NAME, DEFAULT_HTTP_TIMEOUT_SECONDS

# User-Agent header sent to GitHub (required by the GitHub API)
USER_AGENT = f"{APP_NAME}/{__version__}"


class HttpClientFactory(Protocol):
    """Callable returning a configured httpx.AsyncClient."""

    def __call__(
        self,
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | float | None = None,
        **kwargs: Any,
    ) -> httpx.AsyncClient: ...


def create_httpx_client_factory(
    transport: httpx.AsyncBaseTransport | None = None,
    default_timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    extra_headers: dict[str, str] | None = None,
) -> HttpClientFactory:
    """Create an httpx client factory with User-Agent header.

    Args:
        transport: Optional httpx transport (e.g., httpx.MockTransport in tests).
        default_timeout: Timeout used when the caller passes none.
        extra_headers: Headers included in every request.

    Returns:
        Factory callable that creates configured httpx.AsyncClient instances.
    """

    def factory(
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | float | None = None,
        **kwargs: Any,  # Accept additional args like follow_redirects
    ) -> httpx.AsyncClient:
        """Create httpx client with User-Agent."""
        merged_headers = {"User-Agent": USER_AGENT}
        if extra_headers:
            merged_headers.update(extra_headers)
        if headers:
            merged_headers.update(headers)
        if transport is not None:
            kwargs.setdefault("transport", transport)
        return httpx.AsyncClient(
            headers=merged_headers,
            timeout=timeout if timeout is not None else default_timeout,
            **kwargs,
        )

    return factory
