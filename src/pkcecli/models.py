"""Canonical Pydantic models shared across pkcecli modules.

The models fall into three groups:

**Flow models** -- built and consumed during a single authorization run:
    :class:`ClientConfig`, :class:`AuthorizationRequest`,
    :class:`CodeResult`, :class:`ErrorResult`, and :class:`TokenResponse`.
    The PKCE pair lives in :mod:`pkcecli.pkce` next to its transform.

**Persisted configuration** -- serialised as JSON in the user's config
directory: :class:`Profile` and :class:`GlobalConfig`.

Flow models are frozen: a configuration is fixed for the duration of a run
and results are handed over exactly once.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENTRA_AUTHORITY = "https://login.microsoftonline.com"
"""Base URL of the Microsoft identity platform."""

ENTRA_ORIGIN = "http://localhost"
"""Origin sent to Entra ID; SPA registrations reject PKCE token requests without one."""

# Upper bound accepted for a token lifetime (ten years).
_MAX_EXPIRES_IN = 10 * 365 * 24 * 3600


def _split_scopes(value: Any) -> list[str]:
    """Accept a comma/space separated string or an iterable; keep first-seen order, drop duplicates."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    seen: list[str] = []
    for item in value:
        scope = str(item).strip()
        if scope and scope not in seen:
            seen.append(scope)
    return seen


# --- Client configuration ---


class ClientConfig(BaseModel):
    """OAuth2 public-client configuration for one flow run.

    Immutable once built. Validation happens on construction so that a bad
    client id or endpoint fails before any socket is opened; see
    :func:`pkcecli.config.resolve_client_config` for the layer that turns
    validation failures into :class:`~pkcecli.exceptions.ConfigurationError`.

    Example::

        ClientConfig.for_entra(
            tenant_id="contoso.onmicrosoft.com",
            client_id="0f1e...",
            scopes=["api://term/access"],
        )
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(description="OAuth2 client (application) id")
    tenant_id: Optional[str] = Field(
        default=None, description="Tenant or issuer identifier, informational"
    )
    authorization_endpoint: str
    token_endpoint: str
    scopes: tuple[str, ...] = Field(
        default=(), description="Requested scopes, ordered and de-duplicated"
    )
    redirect_host: str = Field(
        default="127.0.0.1",
        description="Host written into the redirect URI (127.0.0.1 or localhost)",
    )
    callback_path: str = Field(default="/callback")
    origin_header: Optional[str] = Field(
        default=None,
        description="Static Origin header added to every outbound request",
    )
    timeout: float = Field(
        default=300.0, gt=0, description="Deadline for the whole flow in seconds"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for the token request in seconds"
    )

    @field_validator("client_id")
    @classmethod
    def _check_client_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("client_id must not be empty")
        return value

    @field_validator("authorization_endpoint", "token_endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        if parsed.fragment:
            raise ValueError(f"endpoint must not carry a fragment: {value!r}")
        return value

    @field_validator("scopes", mode="before")
    @classmethod
    def _normalise_scopes(cls, value: Any) -> tuple[str, ...]:
        return tuple(_split_scopes(value))

    @field_validator("redirect_host")
    @classmethod
    def _check_redirect_host(cls, value: str) -> str:
        if value not in ("127.0.0.1", "localhost"):
            raise ValueError("redirect_host must be 127.0.0.1 or localhost")
        return value

    @field_validator("callback_path")
    @classmethod
    def _check_callback_path(cls, value: str) -> str:
        if not value.startswith("/"):
            value = "/" + value
        if "?" in value or "#" in value:
            raise ValueError("callback_path must be a plain path")
        return value

    @field_validator("origin_header")
    @classmethod
    def _empty_origin_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @classmethod
    def for_entra(cls, tenant_id: str, client_id: str, **kwargs: Any) -> ClientConfig:
        """Build a configuration for Microsoft Entra ID (v2.0 endpoints).

        Endpoints and the Origin header preset are applied unless passed
        explicitly.
        """
        base = f"{ENTRA_AUTHORITY}/{tenant_id}/oauth2/v2.0"
        kwargs.setdefault("authorization_endpoint", f"{base}/authorize")
        kwargs.setdefault("token_endpoint", f"{base}/token")
        kwargs.setdefault("origin_header", ENTRA_ORIGIN)
        return cls(client_id=client_id, tenant_id=tenant_id, **kwargs)


# --- Authorization request ---


class AuthorizationRequest(BaseModel):
    """Everything that goes into the authorization URL.

    Built once per flow, after the receiver is bound so that
    ``redirect_uri`` names a port that is already listening.
    """

    model_config = ConfigDict(frozen=True)

    config: ClientConfig
    challenge: str
    challenge_method: str = "S256"
    state: str
    redirect_uri: str

    @property
    def url(self) -> str:
        """Render the provider authorization URL."""
        from pkcecli.authorize import build_authorization_url

        return build_authorization_url(
            self.config,
            self.challenge,
            self.state,
            self.redirect_uri,
            challenge_method=self.challenge_method,
        )


# --- Redirect results ---


class CodeResult(BaseModel):
    """The redirect carried an authorization code and the expected state."""

    model_config = ConfigDict(frozen=True)

    code: str


class ErrorResult(BaseModel):
    """The redirect carried an OAuth2 error instead of a code."""

    model_config = ConfigDict(frozen=True)

    error: str
    description: str = ""


RedirectResult = Union[CodeResult, ErrorResult]


# --- Token response ---


class TokenResponse(BaseModel):
    """A successful token endpoint response.

    ``expires_at`` is derived from ``expires_in`` and the time the response
    was received. ``raw`` keeps the full payload, including provider
    specific fields such as ``ext_expires_in``.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[datetime] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any], issued_at: Optional[datetime] = None
    ) -> TokenResponse:
        """Build a response from the token endpoint JSON body.

        Args:
            payload: Decoded JSON object. Must contain ``access_token``.
            issued_at: Time the response was received; defaults to now (UTC).

        Raises:
            ValueError: If a field has the wrong type or ``expires_in`` is not
                a plausible number of seconds. Pydantic's ``ValidationError``
                is a ``ValueError`` subclass.
        """
        issued_at = issued_at or datetime.now(timezone.utc)
        expires_in = _as_seconds(payload.get("expires_in"))
        expires_at = None
        if expires_in is not None:
            expires_at = issued_at + timedelta(seconds=expires_in)
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            expires_in=expires_in,
            expires_at=expires_at,
            refresh_token=payload.get("refresh_token") or None,
            id_token=payload.get("id_token") or None,
            scope=payload.get("scope") or None,
            raw=dict(payload),
        )

    @property
    def authorization_header(self) -> str:
        """Value for an ``Authorization`` request header."""
        return f"{self.token_type} {self.access_token}"

    def to_display(self) -> dict[str, Any]:
        """Return the JSON-friendly view printed by ``print-bearer``."""
        return self.model_dump(mode="json", exclude={"raw"})


def _as_seconds(value: Any) -> Optional[int]:
    # Some providers send expires_in as a string.
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"expires_in is not a number: {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"expires_in is not a number: {value!r}") from exc
    if not math.isfinite(seconds) or not 0 <= seconds <= _MAX_EXPIRES_IN:
        raise ValueError(f"expires_in out of range: {value!r}")
    return int(seconds)


# --- Persisted configuration ---


class Profile(BaseModel):
    """A named, partial client configuration stored as JSON.

    Every field is optional; missing values are filled from environment
    variables or CLI flags by :func:`~pkcecli.config.resolve_client_config`.
    ``client_id`` may be a credential source such as ``env:MY_CLIENT_ID``.
    """

    name: str
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    origin_header: Optional[str] = None
    redirect_host: Optional[str] = None
    callback_path: Optional[str] = None
    timeout: Optional[float] = None


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/pkcecli/config.json``."""

    default_profile: Optional[str] = Field(
        default=None, description="Profile used when none is selected"
    )
    auto_select_single_profile: bool = Field(
        default=True,
        description="Use the only saved profile when no profile is selected",
    )
