# libs/auth/jwt_verify.py
"""
Bearer token verification for FastAPI.

- verify_token:      FastAPI dependency returning the decoded JWT payload
- get_current_actor: FastAPI dependency returning the caller as an Actor
- ensure_role:       the single role gate used by every protected operation

Tokens are issued elsewhere. Two verification modes are supported:
- HS256 with the shared JWT_SECRET
- RS256 against the JWKS document at AUTH_JWKS_URL (fetched via requests/certifi)
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import certifi
import jwt
import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.algorithms import RSAAlgorithm

from common.complaint_types import Category, Role
from common.constants import (
    DEPARTMENT_CLAIM,
    HMAC_ALGORITHMS,
    JWKS_ALGORITHMS,
    JWKS_CACHE_TTL,
    ROLE_CLAIM,
    SUBJECT_CLAIMS,
)
from common.errors import AuthenticationError, AuthorizationError
from libs.config import config

logger = logging.getLogger(__name__)

# ---------- Security scheme ----------
security = HTTPBearer(auto_error=False)

_jwks_cache: Dict[str, Any] = {"keys": None, "fetched_at": 0.0}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    user_id: str
    role: Role
    department: Optional[Category] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN


def _fetch_jwks(force: bool = False) -> dict:
    now = time.time()
    if not force and _jwks_cache["keys"] and now - _jwks_cache["fetched_at"] < JWKS_CACHE_TTL:
        return _jwks_cache["keys"]
    resp = requests.get(config.AUTH_JWKS_URL, timeout=5, verify=certifi.where())
    resp.raise_for_status()
    _jwks_cache["keys"] = resp.json()
    _jwks_cache["fetched_at"] = now
    return _jwks_cache["keys"]


def _decode_with_jwks(token: str) -> dict:
    header = jwt.get_unverified_header(token)
    kid = header.get("kid")
    if not kid:
        raise ValueError("Missing 'kid' in token header")

    jwks = _fetch_jwks()
    key_dict = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
    if key_dict is None:
        # Keys may have been rotated since the last fetch
        jwks = _fetch_jwks(force=True)
        key_dict = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
    if key_dict is None:
        raise ValueError("No matching JWK for token 'kid'")

    public_key = RSAAlgorithm.from_jwk(json.dumps(key_dict))
    return jwt.decode(
        token,
        public_key,
        algorithms=JWKS_ALGORITHMS,
        audience=config.JWT_AUDIENCE,
        issuer=config.JWT_ISSUER,
        options={"verify_aud": config.JWT_AUDIENCE is not None},
    )


def _decode_with_secret(token: str) -> dict:
    if not config.JWT_SECRET:
        raise RuntimeError("Neither JWT_SECRET nor AUTH_JWKS_URL is configured")
    return jwt.decode(
        token,
        config.JWT_SECRET,
        algorithms=[config.JWT_ALGORITHM] if config.JWT_ALGORITHM in HMAC_ALGORITHMS else HMAC_ALGORITHMS,
        audience=config.JWT_AUDIENCE,
        issuer=config.JWT_ISSUER,
        options={"verify_aud": config.JWT_AUDIENCE is not None},
    )


def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Verify the bearer JWT and return its payload.
    Use as a FastAPI dependency on protected routes.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authorized, no token")

    token = credentials.credentials
    try:
        if config.AUTH_JWKS_URL:
            return _decode_with_jwks(token)
        return _decode_with_secret(token)
    except requests.RequestException as e:
        raise AuthenticationError(f"HTTP error fetching JWKS: {e}") from e
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidAudienceError as e:
        raise AuthenticationError("Invalid audience") from e
    except jwt.InvalidIssuerError as e:
        raise AuthenticationError("Invalid issuer") from e
    except RuntimeError:
        logger.error("Token verification is not configured")
        raise
    except Exception as e:
        raise AuthenticationError(f"Token verification failed: {e}") from e


def actor_from_claims(payload: dict) -> Actor:
    """Build an Actor from verified claims."""
    user_id = next((str(payload[c]) for c in SUBJECT_CLAIMS if payload.get(c)), None)
    if not user_id:
        raise AuthenticationError("Token has no subject")

    try:
        role = Role(payload.get(ROLE_CLAIM) or Role.CITIZEN.value)
    except ValueError as e:
        raise AuthenticationError("Token carries an unknown role") from e

    department = None
    raw_department = payload.get(DEPARTMENT_CLAIM)
    if raw_department:
        try:
            department = Category(raw_department)
        except ValueError as e:
            raise AuthenticationError("Token carries an unknown department") from e

    return Actor(user_id=user_id, role=role, department=department)


def get_current_actor(payload: dict = Depends(verify_token)) -> Actor:
    return actor_from_claims(payload)


def ensure_role(actor: Actor, roles: Iterable[Role]) -> None:
    """Raise AuthorizationError unless the actor holds one of the roles."""
    allowed = frozenset(roles)
    if actor.role not in allowed:
        names = ", ".join(sorted(r.value for r in allowed))
        raise AuthorizationError(f"Not authorized, requires role: {names}")
