"""Authorization code exchange against the token endpoint.

:class:`TokenExchanger` performs the single ``authorization_code`` grant
request of the flow, proving possession of the PKCE verifier instead of a
client secret. It never retries and keeps no state between calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from pkcecli.exceptions import NetworkError, TokenExchangeError
from pkcecli.models import ClientConfig, TokenResponse
from pkcecli.transport import build_http_client

logger = logging.getLogger(__name__)

# Longest slice of a non-JSON error body quoted in an error message.
_MAX_BODY_EXCERPT = 200


class TokenExchanger:
    """Exchange an authorization code for tokens.

    Args:
        client: Optional pre-configured :class:`httpx.Client`. When omitted,
            a client is built per exchange with
            :func:`~pkcecli.transport.build_http_client` and closed
            afterwards.
    """

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client

    def exchange(
        self,
        config: ClientConfig,
        code: str,
        verifier: str,
        redirect_uri: str,
        timeout: Optional[float] = None,
    ) -> TokenResponse:
        """POST the code and verifier to ``config.token_endpoint``.

        Args:
            config: Client configuration.
            code: Authorization code from the redirect.
            verifier: PKCE code verifier of this flow.
            redirect_uri: The redirect URI sent in the authorization request.
            timeout: Optional per-request timeout, e.g. the flow's remaining
                time. Defaults to ``config.request_timeout``.

        Returns:
            The parsed :class:`~pkcecli.models.TokenResponse`.

        Raises:
            TokenExchangeError: On a non-2xx response, or a 2xx response that
                is not a JSON object with an ``access_token`` or whose fields
                have the wrong types.
            NetworkError: On transport failures (DNS, TLS, timeouts).
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": config.client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": verifier,
        }
        if config.scopes:
            data["scope"] = " ".join(config.scopes)

        request_timeout = config.request_timeout if timeout is None else timeout
        logger.debug("Exchanging authorization code at %s", config.token_endpoint)

        client = self._client or build_http_client(config)
        try:
            response = client.post(
                config.token_endpoint,
                data=data,
                timeout=request_timeout,
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Token request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Token request failed: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        issued_at = datetime.now(timezone.utc)
        if not response.is_success:
            raise _error_from_response(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenExchangeError(
                response.status_code,
                message="Token endpoint returned a non-JSON response",
            ) from exc

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise TokenExchangeError(
                response.status_code,
                message="Token response missing 'access_token' field",
            )

        try:
            token = TokenResponse.from_payload(payload, issued_at=issued_at)
        except (ValueError, OverflowError) as exc:
            logger.debug("Rejected token response: %s", exc)
            raise TokenExchangeError(
                response.status_code,
                message="Token endpoint returned a malformed token response",
            ) from exc
        logger.debug(
            "Token issued (type=%s, expires_in=%s, refresh_token=%s)",
            token.token_type,
            token.expires_in,
            "yes" if token.refresh_token else "no",
        )
        return token


def _error_from_response(response: httpx.Response) -> TokenExchangeError:
    """Build a :class:`TokenExchangeError` from an RFC 6749 section 5.2 error body."""
    payload: Any = None
    try:
        payload = response.json()
    except ValueError:
        pass

    if isinstance(payload, dict) and payload.get("error"):
        return TokenExchangeError(
            response.status_code,
            provider_error_code=str(payload["error"]),
            provider_error_description=payload.get("error_description"),
        )

    excerpt = response.text.strip()[:_MAX_BODY_EXCERPT]
    message = f"Token exchange failed with status {response.status_code}"
    if excerpt:
        message += f": {excerpt}"
    return TokenExchangeError(response.status_code, message=message)
