"""Token service, password hashing and the auth gate dependency."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from auth import PasswordHasher, TokenService, require_identity
from errors import InvalidTokenError, UnauthorizedError


@pytest.fixture
def tokens():
    return TokenService("a" * 64)


def _fake_request():
    return SimpleNamespace(state=SimpleNamespace())


def _tamper_signature(token: str) -> str:
    head, signature = token.rsplit(".", 1)
    first = "B" if signature[0] != "B" else "C"
    return f"{head}.{first}{signature[1:]}"


# ─── TokenService ───────────────────────────────────────────────

def test_issued_token_verifies_and_carries_subject(tokens):
    claims = tokens.verify(tokens.issue("abc123"))
    assert claims["sub"] == "abc123"


def test_default_expiry_is_three_days(tokens):
    claims = tokens.verify(tokens.issue("abc123"))
    assert claims["exp"] - claims["iat"] == int(timedelta(days=3).total_seconds())


def test_expired_token_is_invalid(tokens):
    token = tokens.issue("abc123", ttl=timedelta(seconds=-10))
    with pytest.raises(InvalidTokenError):
        tokens.verify(token)


def test_altered_signature_is_invalid(tokens):
    token = tokens.issue("abc123")
    with pytest.raises(InvalidTokenError):
        tokens.verify(_tamper_signature(token))


def test_token_from_another_key_is_invalid(tokens):
    other = TokenService("b" * 64)
    with pytest.raises(InvalidTokenError):
        tokens.verify(other.issue("abc123"))


def test_malformed_token_is_invalid(tokens):
    with pytest.raises(InvalidTokenError):
        tokens.verify("not-a-jwt")


def test_missing_token_is_unauthorized(tokens):
    with pytest.raises(UnauthorizedError):
        tokens.verify(None)
    with pytest.raises(UnauthorizedError):
        tokens.verify("")


# ─── PasswordHasher ─────────────────────────────────────────────

def test_hash_is_not_plaintext_and_verifies():
    hasher = PasswordHasher(rounds=4)
    digest = hasher.hash("secret")
    assert digest != "secret"
    assert hasher.verify("secret", digest)
    assert not hasher.verify("wrong", digest)


def test_verify_against_missing_hash_is_false():
    assert not PasswordHasher(rounds=4).verify("secret", None)


# ─── require_identity ───────────────────────────────────────────

def test_gate_without_header_is_unauthorized(tokens):
    with pytest.raises(UnauthorizedError):
        require_identity(_fake_request(), None, tokens)


def test_gate_with_scheme_only_is_invalid_token(tokens):
    with pytest.raises(InvalidTokenError):
        require_identity(_fake_request(), "Bearer", tokens)


def test_gate_with_bad_token_is_invalid_token(tokens):
    with pytest.raises(InvalidTokenError):
        require_identity(_fake_request(), "Bearer garbage", tokens)


def test_gate_injects_identity_into_request_state(tokens):
    request = _fake_request()
    identity = require_identity(request, f"Bearer {tokens.issue('cust-1')}", tokens)
    assert identity.customer_id == "cust-1"
    assert request.state.customer_id == "cust-1"


def test_gate_splits_on_any_whitespace(tokens):
    identity = require_identity(_fake_request(), f"Bearer   {tokens.issue('cust-1')}", tokens)
    assert identity.customer_id == "cust-1"
