"""
Tests for stateless admission challenges and the integrity tagger.
"""

import json

import pytest

from conftest import OTHER_WALLET, WALLET
from mint_gateway.errors import InvalidIdentity, TokenExpired, TokenForged
from mint_gateway.utils.challenge import (
    ChallengeIssuer,
    _b64decode,
    _b64encode,
    token_fingerprint,
    validate_identity,
)
from mint_gateway.utils.integrity import HmacTagger


def _reencode(token: str, **changes) -> str:
    """Rewrite payload fields while keeping the original tag."""
    tag, payload_b64 = token.split(".")
    payload = json.loads(_b64decode(payload_b64))
    payload.update(changes)
    body = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return f"{tag}.{_b64encode(body)}"


def test_issue_then_validate(issuer, clock):
    token = issuer.issue(WALLET)

    assert token.identity == WALLET
    assert token.ttl == 300
    assert token.issued_at == int(clock.now)
    assert token.encoded.count(".") == 1

    decoded = issuer.validate(token.encoded, WALLET)
    assert decoded.salt == token.salt
    assert decoded.expires_at == token.expires_at


def test_tokens_are_unique(issuer):
    first = issuer.issue(WALLET).encoded
    second = issuer.issue(WALLET).encoded
    assert first != second
    assert token_fingerprint(first) != token_fingerprint(second)


@pytest.mark.parametrize(
    "field,value",
    [
        ("issuedAt", 1),
        ("expiresAt", 9_999_999_999),
        ("identity", OTHER_WALLET),
        ("salt", "00" * 16),
    ],
)
def test_tampered_payload_is_forged(issuer, field, value):
    token = issuer.issue(WALLET).encoded
    tampered = _reencode(token, **{field: value})

    identity = OTHER_WALLET if field == "identity" else WALLET
    with pytest.raises(TokenForged):
        issuer.validate(tampered, identity)


def test_tampered_tag_is_forged(issuer):
    token = issuer.issue(WALLET).encoded
    tag, payload = token.split(".")
    flipped = ("0" if tag[0] != "0" else "1") + tag[1:]

    with pytest.raises(TokenForged):
        issuer.validate(f"{flipped}.{payload}", WALLET)


@pytest.mark.parametrize("token", ["", "no-dot", "a.b.c", ".", "abc.", None, "é.payload"])
def test_malformed_tokens_are_forged(issuer, token):
    with pytest.raises(TokenForged):
        issuer.validate(token, WALLET)


def test_identity_binding(issuer):
    token = issuer.issue(WALLET).encoded
    with pytest.raises(TokenForged):
        issuer.validate(token, OTHER_WALLET)


def test_token_from_other_secret_is_forged(issuer, clock):
    other = ChallengeIssuer(HmacTagger("other-secret"), min_identity_length=1, clock=clock)
    token = other.issue(WALLET).encoded
    with pytest.raises(TokenForged):
        issuer.validate(token, WALLET)


def test_wrong_lifetime_is_forged(config, clock):
    short = ChallengeIssuer(
        HmacTagger(config.CHALLENGE_SECRET), ttl_seconds=60, min_identity_length=1, clock=clock
    )
    default = ChallengeIssuer(HmacTagger(config.CHALLENGE_SECRET), min_identity_length=1, clock=clock)

    with pytest.raises(TokenForged):
        default.validate(short.issue(WALLET).encoded, WALLET)


def test_expiry_boundary(issuer, clock):
    token = issuer.issue(WALLET).encoded

    clock.advance(300)
    issuer.validate(token, WALLET)  # Still valid exactly at expiresAt

    clock.advance(1)
    with pytest.raises(TokenExpired) as exc_info:
        issuer.validate(token, WALLET)
    assert exc_info.value.code == "token_expired"
    assert exc_info.value.context["expired_for"] == 1


def test_issue_rejects_bad_identity(config, clock):
    strict = ChallengeIssuer(HmacTagger(config.CHALLENGE_SECRET), clock=clock)

    with pytest.raises(InvalidIdentity):
        strict.issue("abc123")
    with pytest.raises(InvalidIdentity):
        strict.issue("x" * 45)

    assert strict.issue(WALLET).identity == WALLET


@pytest.mark.parametrize("identity", [None, "", 42])
def test_validate_identity_requires_string(identity):
    with pytest.raises(InvalidIdentity):
        validate_identity(identity, min_length=1)


def test_hmac_tagger():
    tagger = HmacTagger("secret")
    tag = tagger.tag(b"payload")

    assert len(tag) == 64
    assert tagger.verify(b"payload", tag)
    assert not tagger.verify(b"payload2", tag)
    assert not tagger.verify(b"payload", "é" * 64)

    with pytest.raises(ValueError):
        HmacTagger("")
