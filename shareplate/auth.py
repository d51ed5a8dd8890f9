"""
Bearer-token identity verification and ownership checks.

The identity provider is Firebase Authentication; callers send the Firebase
ID token as ``Authorization: Bearer <token>``. Verification yields a
``Principal`` which is passed explicitly to every operation that needs it.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions

from shareplate import errors

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
FIREBASE_APP_NAME = "shareplate"


@dataclass(frozen=True)
class Principal:
    """A verified caller."""

    email: str
    uid: Optional[str] = None
    claims: dict = field(default_factory=dict, compare=False)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Principal:
        ...


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise errors.Unauthenticated()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise errors.Unauthenticated()
    return token


def _principal_from_claims(claims: dict) -> Principal:
    email = claims.get("email")
    if not email:
        logger.debug("Token for uid %s carries no email claim", claims.get("uid"))
        raise errors.InvalidCredential()
    return Principal(email=email, uid=claims.get("uid"), claims=dict(claims))


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    @classmethod
    def from_service_key(
        cls, encoded_key: str, name: str = FIREBASE_APP_NAME
    ) -> "FirebaseIdentityVerifier":
        """Build from a base64-encoded service-account JSON document."""
        try:
            service_account = json.loads(base64.b64decode(encoded_key))
        except (binascii.Error, ValueError) as exc:
            raise ValueError("FIREBASE_SERVICE_KEY is not base64 encoded JSON") from exc
        try:
            app = firebase_admin.get_app(name)
        except ValueError:
            app = firebase_admin.initialize_app(
                credentials.Certificate(service_account), name=name
            )
        return cls(app)

    @classmethod
    def from_default_credentials(
        cls, name: str = FIREBASE_APP_NAME
    ) -> "FirebaseIdentityVerifier":
        """Build from Application Default Credentials."""
        try:
            app = firebase_admin.get_app(name)
        except ValueError:
            app = firebase_admin.initialize_app(name=name)
        return cls(app)

    def verify(self, token: str) -> Principal:
        try:
            claims = firebase_auth.verify_id_token(token, app=self.app)
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            logger.debug("Rejected ID token: %s", exc)
            raise errors.InvalidCredential() from exc
        return _principal_from_claims(claims)


class InMemoryIdentityVerifier:
    """Test double mapping opaque tokens to principals."""

    def __init__(self, tokens: Optional[dict[str, Principal]] = None):
        self.tokens: dict[str, Principal] = dict(tokens or {})

    def register(self, token: str, email: str, uid: Optional[str] = None) -> Principal:
        principal = Principal(email=email, uid=uid, claims={"email": email, "uid": uid})
        self.tokens[token] = principal
        return principal

    def verify(self, token: str) -> Principal:
        principal = self.tokens.get(token)
        if principal is None:
            raise errors.InvalidCredential()
        return principal

    def reset(self) -> None:
        self.tokens.clear()


def require_self(principal: Principal, email: str) -> None:
    """Allow only when the path email is the caller's own."""
    if principal.email != email:
        logger.info("Denied %s access to data of %s", principal.email, email)
        raise errors.Forbidden()


def require_owner(
    principal: Principal, owner_email: Optional[str], message: Optional[str] = None
) -> None:
    """Allow only when the resource owner is the caller."""
    if principal.email != owner_email:
        logger.info("Denied %s: resource owned by %s", principal.email, owner_email)
        raise errors.Forbidden(message)
