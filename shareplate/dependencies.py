"""
Dependency wiring for the FastAPI app.

All backends live on a single ``Backends`` object stored on ``app.state``.
It is built once at startup (or handed in by tests) and closed on shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from shareplate.auth import (
    FirebaseIdentityVerifier,
    IdentityVerifier,
    InMemoryIdentityVerifier,
    Principal,
    extract_bearer_token,
)
from shareplate.config import Settings, get_settings
from shareplate.db import (
    FoodRepository,
    InMemoryFoodRepository,
    InMemoryRequestRepository,
    MongoStore,
    RequestRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    foods: FoodRepository
    requests: RequestRepository
    verifier: IdentityVerifier
    store: Optional[MongoStore] = None

    def ping(self) -> bool:
        if self.store is None:
            return True
        return self.store.ping()

    def close(self) -> None:
        if self.store is not None:
            logger.info("Closing MongoDB client")
            self.store.close()
            self.store = None


def in_memory_backends(verifier: Optional[IdentityVerifier] = None) -> Backends:
    return Backends(
        foods=InMemoryFoodRepository(),
        requests=InMemoryRequestRepository(),
        verifier=verifier or InMemoryIdentityVerifier(),
    )


def build_backends(settings: Settings) -> Backends:
    """Select and connect the backends described by ``settings``."""
    if settings.firebase_service_key:
        verifier: IdentityVerifier = FirebaseIdentityVerifier.from_service_key(
            settings.firebase_service_key
        )
    elif settings.use_in_memory_backends:
        verifier = InMemoryIdentityVerifier()
    else:
        verifier = FirebaseIdentityVerifier.from_default_credentials()

    uri = settings.resolved_mongodb_uri()
    if settings.use_in_memory_backends or not uri:
        logger.warning("Using in-memory repositories; data will not persist")
        return in_memory_backends(verifier)

    store = MongoStore(uri, settings.mongodb_db_name)
    store.requests.ensure_indexes()
    logger.info("Connected to MongoDB database %s", settings.mongodb_db_name)
    return Backends(
        foods=store.foods, requests=store.requests, verifier=verifier, store=store
    )


def get_backends(request: Request) -> Backends:
    backends = getattr(request.app.state, "backends", None)
    if backends is None:
        raise RuntimeError("Backends are not initialised; is the app started?")
    return backends


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_food_repository(backends: Backends = Depends(get_backends)) -> FoodRepository:
    return backends.foods


def get_request_repository(
    backends: Backends = Depends(get_backends),
) -> RequestRepository:
    return backends.requests


def get_identity_verifier(
    backends: Backends = Depends(get_backends),
) -> IdentityVerifier:
    return backends.verifier


def get_principal(
    authorization: Optional[str] = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Principal:
    """Resolve the caller from the ``Authorization: Bearer`` header."""
    token = extract_bearer_token(authorization)
    return verifier.verify(token)
