"""Authorization URL construction.

:func:`build_authorization_url` is a pure function of its inputs; the
redirect URI must come from a receiver that is already bound.
"""

from __future__ import annotations

import secrets
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pkcecli.models import ClientConfig
from pkcecli.pkce import S256


def generate_state() -> str:
    """Return a fresh anti-CSRF ``state`` value."""
    return secrets.token_urlsafe(32)


def build_authorization_url(
    config: ClientConfig,
    challenge: str,
    state: str,
    redirect_uri: str,
    challenge_method: str = S256,
) -> str:
    """Build the provider authorization URL for an Authorization Code + PKCE request.

    Query parameters already present on ``config.authorization_endpoint``
    are kept. ``scope`` is omitted when no scopes are configured so that the
    provider's default scope applies.

    Args:
        config: Client configuration.
        challenge: PKCE code challenge.
        state: Anti-CSRF value the redirect must echo back.
        redirect_uri: Redirect URI of the bound local receiver.
        challenge_method: PKCE transform identifier.

    Returns:
        The full authorization URL.
    """
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
    }
    if config.scopes:
        params["scope"] = " ".join(config.scopes)
    params["code_challenge"] = challenge
    params["code_challenge_method"] = challenge_method
    params["state"] = state

    parts = urlsplit(config.authorization_endpoint)
    existing = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in params
    ]
    query = urlencode(existing + list(params.items()))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
