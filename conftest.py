"""
Shared test fixtures for JWT testing.

This module provides reusable fixtures for:
- Configuring HS256 (shared secret) or RS256 (JWKS) verification
- Generating RSA key pairs for test JWT signing
- Creating mock JWKS endpoints
- Creating valid/expired/invalid test JWTs
- Creating TestClient instances with an overridden caller
"""

import json
import time

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

import libs.auth.jwt_verify as jwt_verify
from libs.config import config

TEST_SECRET = "test-secret-key-for-hs256-signatures"
TEST_AUDIENCE = "https://civic-api.example.com/"
TEST_ISSUER = "https://identity.example.com/"
TEST_JWKS_URL = "https://identity.example.com/.well-known/jwks.json"


@pytest.fixture(autouse=True)
def _reset_jwks_cache():
    jwt_verify._jwks_cache["keys"] = None
    jwt_verify._jwks_cache["fetched_at"] = 0.0
    yield


@pytest.fixture
def hs256_config(monkeypatch):
    """Verify tokens with the shared secret, no audience/issuer checks."""
    monkeypatch.setattr(config, "JWT_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "JWT_ALGORITHM", "HS256")
    monkeypatch.setattr(config, "AUTH_JWKS_URL", None)
    monkeypatch.setattr(config, "JWT_AUDIENCE", None)
    monkeypatch.setattr(config, "JWT_ISSUER", None)


@pytest.fixture
def jwks_config(monkeypatch):
    """Verify tokens against a JWKS document with audience and issuer checks."""
    monkeypatch.setattr(config, "JWT_SECRET", None)
    monkeypatch.setattr(config, "AUTH_JWKS_URL", TEST_JWKS_URL)
    monkeypatch.setattr(config, "JWT_AUDIENCE", TEST_AUDIENCE)
    monkeypatch.setattr(config, "JWT_ISSUER", TEST_ISSUER)


@pytest.fixture
def create_hs256_jwt():
    """
    Factory fixture to create HS256 test JWTs.

    Returns:
        Function that creates JWTs with custom claims
    """

    def _create_jwt(
        user_id: str = "test-user-123",
        *,
        secret: str = TEST_SECRET,
        expires_in: int = 3600,
        **extra_claims,
    ) -> str:
        now = int(time.time())
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + expires_in,
            **extra_claims,
        }
        return jwt.encode(payload, secret, algorithm="HS256")

    return _create_jwt


@pytest.fixture(scope="session")
def rsa_key_pair():
    """
    Generate RSA key pair for signing test JWTs.

    Returns:
        Dict with 'private_key' in PEM format and the 'public_key' object
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return {
        "private_key": private_pem.decode("utf-8"),
        "public_key": private_key.public_key(),
    }


@pytest.fixture(scope="session")
def test_kid():
    """Return a test key ID for JWKS."""
    return "test-key-id-123"


@pytest.fixture(scope="session")
def mock_jwks(rsa_key_pair, test_kid):
    """
    Create a mock JWKS response.

    Returns:
        Dict representing JWKS response
    """
    jwk_dict = json.loads(RSAAlgorithm.to_jwk(rsa_key_pair["public_key"]))
    jwk_dict["kid"] = test_kid
    jwk_dict["alg"] = "RS256"
    jwk_dict["use"] = "sig"
    return {"keys": [jwk_dict]}


@pytest.fixture
def create_rs256_jwt(rsa_key_pair, test_kid):
    """
    Factory fixture to create RS256 test JWTs signed with the JWKS key.

    Returns:
        Function that creates JWTs; audience/issuer/kid can be overridden
    """

    def _create_jwt(
        user_id: str = "test-user-123",
        *,
        audience: str = TEST_AUDIENCE,
        issuer: str = TEST_ISSUER,
        kid=test_kid,
        expires_in: int = 3600,
        private_key: str = None,
        **extra_claims,
    ) -> str:
        now = int(time.time())
        payload = {
            "sub": user_id,
            "aud": audience,
            "iss": issuer,
            "iat": now,
            "exp": now + expires_in,
            **extra_claims,
        }
        headers = {"kid": kid} if kid else None
        return jwt.encode(
            payload,
            private_key or rsa_key_pair["private_key"],
            algorithm="RS256",
            headers=headers,
        )

    return _create_jwt


@pytest.fixture
def other_private_key():
    """A PEM private key that does not match the JWKS."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def mock_jwks_request(mocker, mock_jwks):
    """
    Mock requests.get to return the mock JWKS without a network call.

    Returns:
        Mocked requests.get function
    """
    mock_response = mocker.Mock()
    mock_response.json.return_value = mock_jwks
    mock_response.raise_for_status = mocker.Mock()

    # Patch where requests.get is used, not where it's defined
    return mocker.patch("libs.auth.jwt_verify.requests.get", return_value=mock_response)


@pytest.fixture
def authenticated_client():
    """
    Factory fixture to create a TestClient whose caller is fixed.

    Returns:
        Function taking (app, actor) and returning a TestClient with
        get_current_actor overridden
    """
    from fastapi.testclient import TestClient

    from libs.auth.jwt_verify import get_current_actor

    apps = []

    def _create_client(app, actor) -> TestClient:
        app.dependency_overrides[get_current_actor] = lambda: actor
        apps.append(app)
        return TestClient(app)

    yield _create_client

    for app in apps:
        app.dependency_overrides.clear()
