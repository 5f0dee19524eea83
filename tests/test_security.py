from datetime import timedelta

import pytest
from jose import jwt

from loanlink.core import security
from loanlink.core.exceptions import Unauthenticated
from loanlink.core.permissions import Role
from loanlink.core.security import authenticate_token, create_access_token, decode_token
from loanlink.core.settings import settings


@pytest.fixture(autouse=True)
def _clear_key_cache():
    security._load_signing_key.cache_clear()
    security._load_verification_key.cache_clear()
    yield
    security._load_signing_key.cache_clear()
    security._load_verification_key.cache_clear()


def test_access_token_round_trip():
    token = create_access_token("user-1", "Borrower@Example.com", Role.BORROWER)

    decoded = decode_token(token)
    assert decoded["sub"] == "user-1"
    assert decoded["type"] == "access"
    assert "iat" in decoded and "exp" in decoded

    identity = authenticate_token(token)
    assert identity.subject_id == "user-1"
    assert identity.email == "Borrower@Example.com"
    assert identity.role is Role.BORROWER


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_missing_or_garbage_token_is_unauthenticated(token):
    with pytest.raises(Unauthenticated):
        authenticate_token(token)


def test_expired_token_is_unauthenticated():
    token = create_access_token("user-1", "a@example.com", "manager", expires_delta=timedelta(seconds=-5))
    with pytest.raises(Unauthenticated):
        authenticate_token(token)


def test_token_signed_with_other_key_is_unauthenticated():
    forged = jwt.encode(
        {"sub": "user-1", "email": "a@example.com", "role": "admin", "type": "access"},
        "some-other-secret",
        algorithm="HS256",
    )
    with pytest.raises(Unauthenticated):
        authenticate_token(forged)


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "user-1", "email": "a@example.com"},
        {"sub": "user-1", "email": "a@example.com", "role": "superuser"},
        {"sub": "user-1", "role": "admin"},
        {"email": "a@example.com", "role": "admin"},
    ],
)
def test_missing_or_unknown_claims_are_unauthenticated(claims):
    token = jwt.encode({**claims, "type": "access"}, settings.secret_key, algorithm="HS256")
    with pytest.raises(Unauthenticated):
        authenticate_token(token)


def test_non_access_token_type_is_rejected():
    token = jwt.encode(
        {"sub": "user-1", "email": "a@example.com", "role": "admin", "type": "refresh"},
        settings.secret_key,
        algorithm="HS256",
    )
    with pytest.raises(Unauthenticated):
        authenticate_token(token)


def test_rs256_tokens(monkeypatch, tmp_path):
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    priv_file = tmp_path / "priv.pem"
    pub_file = tmp_path / "pub.pem"
    priv_file.write_bytes(private_pem)
    pub_file.write_bytes(public_pem)

    monkeypatch.setattr(settings, "jwt_algorithm", "RS256")
    monkeypatch.setattr(settings, "jwt_private_key_path", str(priv_file))
    monkeypatch.setattr(settings, "jwt_public_key_path", str(pub_file))

    token = create_access_token("user-rs", "rs@example.com", Role.ADMIN)
    assert jwt.get_unverified_header(token)["alg"] == "RS256"
    assert authenticate_token(token).role is Role.ADMIN

    # An HS256 token signed with the shared secret must not pass RS256 verification.
    hs_token = jwt.encode(
        {"sub": "user-rs", "email": "rs@example.com", "role": "admin", "type": "access"},
        settings.secret_key,
        algorithm="HS256",
    )
    with pytest.raises(Unauthenticated):
        authenticate_token(hs_token)


def test_rs256_without_keys_raises_key_error(monkeypatch):
    monkeypatch.setattr(settings, "jwt_algorithm", "RS256")
    monkeypatch.setattr(settings, "jwt_private_key", None)
    monkeypatch.setattr(settings, "jwt_private_key_path", None)
    with pytest.raises(security.JWTKeyError):
        create_access_token("user-1", "a@example.com", Role.BORROWER)
