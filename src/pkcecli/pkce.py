"""PKCE (:rfc:`7636`) verifier and challenge generation.

A fresh :class:`PKCEPair` is created for every flow run with
:meth:`PKCEPair.generate`. Pairs are frozen and validated: a pair whose
challenge does not match its verifier cannot be constructed, and there is
no way to swap the verifier of an existing pair.
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets

from pydantic import BaseModel, ConfigDict, model_validator

S256 = "S256"

# RFC 7636 section 4.1: unreserved characters, 43-128 long
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")

# 64 random bytes -> 86 base64url characters, 512 bits of entropy
_VERIFIER_BYTES = 64


def s256_challenge(verifier: str) -> str:
    """Return ``BASE64URL(SHA256(verifier))`` without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class PKCEPair(BaseModel):
    """A code verifier and its S256 challenge.

    The verifier is only ever sent to the token endpoint; the challenge goes
    into the authorization URL.
    """

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str
    method: str = S256

    @model_validator(mode="after")
    def _check_pair(self) -> PKCEPair:
        if not _VERIFIER_RE.match(self.verifier):
            raise ValueError("code verifier must be 43-128 unreserved characters")
        if self.method != S256:
            raise ValueError(f"unsupported code challenge method: {self.method}")
        if self.challenge != s256_challenge(self.verifier):
            raise ValueError("code challenge does not match the verifier")
        return self

    @classmethod
    def generate(cls) -> PKCEPair:
        """Create a new pair from the system's secure random source."""
        verifier = secrets.token_urlsafe(_VERIFIER_BYTES)
        return cls(verifier=verifier, challenge=s256_challenge(verifier))

    def __repr__(self) -> str:
        # keep the verifier out of logs and tracebacks
        return f"PKCEPair(challenge={self.challenge!r}, method={self.method!r})"

    __str__ = __repr__
