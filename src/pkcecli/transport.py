"""httpx transport decorators and client construction.

Some identity providers validate "single-page application" registrations
by requiring an ``Origin`` header on the PKCE token request (Microsoft
Entra ID does; any non-empty value is accepted). That requirement is kept
out of the token exchange logic: :class:`OriginHeaderTransport` wraps the
real transport and :func:`build_http_client` selects it from the client
configuration.
"""

from __future__ import annotations

from typing import Optional

import httpx

from pkcecli import __version__
from pkcecli.models import ClientConfig

USER_AGENT = f"pkcecli/{__version__}"


class OriginHeaderTransport(httpx.BaseTransport):
    """Set a static ``Origin`` header on every request, then delegate.

    The request method and body are passed through untouched.

    Args:
        origin: Value of the ``Origin`` header. Must be non-empty.
        transport: The transport to delegate to. Defaults to a plain
            :class:`httpx.HTTPTransport`.
    """

    def __init__(self, origin: str, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not origin:
            raise ValueError("origin must be a non-empty string")
        self._origin = origin
        self._transport = transport or httpx.HTTPTransport()

    @property
    def origin(self) -> str:
        return self._origin

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        request.headers["Origin"] = self._origin
        return self._transport.handle_request(request)

    def close(self) -> None:
        self._transport.close()


def build_http_client(
    config: ClientConfig,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an :class:`httpx.Client` configured for *config*.

    Args:
        config: Client configuration; ``origin_header`` selects the
            :class:`OriginHeaderTransport` decorator.
        transport: Base transport to use (tests pass an
            :class:`httpx.MockTransport`).
    """
    if config.origin_header:
        transport = OriginHeaderTransport(config.origin_header, transport)
    return httpx.Client(
        transport=transport,
        timeout=config.request_timeout,
        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        follow_redirects=False,
    )
