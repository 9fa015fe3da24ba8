"""Tests for PKCE pair generation."""

from __future__ import annotations

import base64
import hashlib
import re

import pytest
from pydantic import ValidationError

from pkcecli.pkce import S256, PKCEPair, s256_challenge


class TestPKCEPair:
    def test_challenge_is_s256_of_verifier(self) -> None:
        pair = PKCEPair.generate()
        digest = hashlib.sha256(pair.verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        assert pair.challenge == expected
        assert pair.method == S256

    def test_verifier_length_and_charset(self) -> None:
        for _ in range(20):
            pair = PKCEPair.generate()
            assert 43 <= len(pair.verifier) <= 128
            assert re.fullmatch(r"[A-Za-z0-9\-._~]+", pair.verifier)

    def test_challenge_has_no_padding(self) -> None:
        assert "=" not in PKCEPair.generate().challenge

    def test_verifiers_are_unique(self) -> None:
        verifiers = {PKCEPair.generate().verifier for _ in range(200)}
        assert len(verifiers) == 200

    def test_rfc7636_appendix_b_vector(self) -> None:
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pair_is_frozen(self) -> None:
        pair = PKCEPair.generate()
        with pytest.raises(ValidationError):
            pair.verifier = "x" * 43  # type: ignore[misc]

    def test_mismatched_pair_rejected(self) -> None:
        with pytest.raises(ValidationError, match="does not match"):
            PKCEPair(verifier="a" * 43, challenge="not-the-challenge")

    def test_short_verifier_rejected(self) -> None:
        with pytest.raises(ValidationError, match="43-128"):
            PKCEPair(verifier="short", challenge=s256_challenge("short"))

    def test_plain_method_rejected(self) -> None:
        verifier = "b" * 43
        with pytest.raises(ValidationError, match="unsupported"):
            PKCEPair(verifier=verifier, challenge=s256_challenge(verifier), method="plain")

    def test_repr_hides_verifier(self) -> None:
        pair = PKCEPair.generate()
        assert pair.verifier not in repr(pair)
        assert pair.verifier not in str(pair)
