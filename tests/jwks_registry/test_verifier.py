import jwt
import pytest

import jwks_registry.verifier as v
from jwks_registry import (
    ExpiredToken,
    InvalidAlgorithm,
    MalformedToken,
    NoCorrespondingKidInStore,
    NoKidPresent,
    UnableToVerifyToken,
    UnrecognizedTokenType,
    VerifyOptions,
)


def missing(kid: str):
    raise NoCorrespondingKidInStore(f"No key with kid {kid!r} in store")


def never_called(kid: str):
    raise AssertionError(f"key lookup should not happen (kid={kid!r})")


@pytest.mark.parametrize("token", ["", "garbage", "a.b", "!!!.!!!.!!!"])
def test_read_header_rejects_non_jws(token: str):
    with pytest.raises(MalformedToken):
        v.read_header(token)


def test_read_header_extracts_fields(make_unsigned_token):
    header = v.read_header(make_unsigned_token({"alg": "RS256", "typ": "JWT", "kid": "k1"}))

    assert header == v.TokenHeader(algorithm="RS256", token_type="JWT", key_id="k1")


def test_read_header_ignores_non_string_fields(make_unsigned_token):
    header = v.read_header(make_unsigned_token({"alg": 256, "typ": None, "kid": ""}))

    assert header == v.TokenHeader(algorithm=None, token_type=None, key_id=None)


def test_algorithm_is_checked_before_kid(make_unsigned_token):
    token = make_unsigned_token({"alg": "HS256", "typ": "JWT"})

    with pytest.raises(InvalidAlgorithm):
        v.verify_token(token, never_called)


@pytest.mark.parametrize("alg", ["none", "RS512", "PS256", "ES256", None])
def test_only_rs256_is_accepted(make_unsigned_token, alg):
    header = {"typ": "JWT", "kid": "k1"}
    if alg is not None:
        header["alg"] = alg

    with pytest.raises(InvalidAlgorithm):
        v.verify_token(make_unsigned_token(header), never_called)


@pytest.mark.parametrize("typ", [None, "JWE", "at+jwt"])
def test_type_must_be_jwt(make_unsigned_token, typ):
    header = {"alg": "RS256", "kid": "k1"}
    if typ is not None:
        header["typ"] = typ

    with pytest.raises(UnrecognizedTokenType):
        v.verify_token(make_unsigned_token(header), never_called)


def test_type_is_case_insensitive(make_unsigned_token):
    token = make_unsigned_token({"alg": "RS256", "typ": "jwt", "kid": "k1"})

    with pytest.raises(NoCorrespondingKidInStore):
        v.verify_token(token, missing)


def test_type_is_checked_before_kid(make_unsigned_token):
    with pytest.raises(UnrecognizedTokenType):
        v.verify_token(make_unsigned_token({"alg": "RS256", "typ": "JWE"}), never_called)


def test_missing_kid(make_unsigned_token):
    with pytest.raises(NoKidPresent):
        v.verify_token(make_unsigned_token({"alg": "RS256", "typ": "JWT"}), never_called)


def test_unknown_kid_never_reaches_decode(monkeypatch, make_unsigned_token):
    def fail_decode(*args, **kwargs):
        raise AssertionError("jwt.decode should not be called")

    monkeypatch.setattr(v.jwt, "decode", fail_decode)

    with pytest.raises(NoCorrespondingKidInStore):
        v.verify_token(make_unsigned_token({"alg": "RS256", "typ": "JWT", "kid": "x"}), missing)


def test_decode_receives_pinned_algorithm_and_options(monkeypatch, make_unsigned_token):
    seen = {}

    def fake_decode(token, key, **kwargs):
        seen["key"] = key
        seen.update(kwargs)
        return {"sub": "user-1"}

    monkeypatch.setattr(v.jwt, "decode", fake_decode)
    token = make_unsigned_token({"alg": "RS256", "typ": "JWT", "kid": "k1"})

    claims = v.verify_token(
        token, lambda kid: f"key-for-{kid}", options=VerifyOptions(issuer="iss", leeway=5)
    )

    assert claims == {"sub": "user-1"}
    assert seen["key"] == "key-for-k1"
    assert seen["algorithms"] == ["RS256"]
    assert seen["issuer"] == "iss"
    assert seen["audience"] is None
    assert seen["leeway"] == 5
    assert seen["options"] == {"require": ["exp"], "verify_exp": True, "verify_aud": False}


@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (jwt.ExpiredSignatureError("Signature has expired"), ExpiredToken),
        (jwt.InvalidSignatureError("Signature verification failed"), UnableToVerifyToken),
        (jwt.InvalidIssuerError("Invalid issuer"), UnableToVerifyToken),
        (jwt.MissingRequiredClaimError("exp"), UnableToVerifyToken),
    ],
)
def test_decode_errors_are_mapped(monkeypatch, make_unsigned_token, raised, expected):
    def fake_decode(*args, **kwargs):
        raise raised

    monkeypatch.setattr(v.jwt, "decode", fake_decode)
    token = make_unsigned_token({"alg": "RS256", "typ": "JWT", "kid": "k1"})

    with pytest.raises(expected) as exc_info:
        v.verify_token(token, lambda kid: "key")

    assert exc_info.value.__cause__ is raised


def test_verify_options_without_exp_check():
    kwargs = VerifyOptions(audience="client", verify_exp=False).decode_kwargs()

    assert kwargs["options"] == {"require": [], "verify_exp": False, "verify_aud": True}
