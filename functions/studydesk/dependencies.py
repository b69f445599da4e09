"""
Dependency wiring for the FastAPI app.

The store, token verifier and settings are built once by `create_app()` and
owned by `app.state`; handlers reach them only through these accessors.
"""

from __future__ import annotations

import logging

from fastapi import Request

from studydesk.config import Settings
from studydesk.db import DocumentStore, InMemoryDocumentStore, SqlDocumentStore
from studydesk.identity import (
    FirebaseTokenVerifier,
    StaticTokenVerifier,
    TokenVerifier,
)
from studydesk.stats import StatsEngine

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()
    logger.info("Using SQL document store")
    return SqlDocumentStore(settings.database_url)


def build_token_verifier(settings: Settings) -> TokenVerifier:
    if settings.use_in_memory_backends or not settings.firebase_service_key:
        logger.warning(
            "FIREBASE_SERVICE_KEY not set; only the %d configured dev tokens will verify",
            len(settings.dev_tokens),
        )
        return StaticTokenVerifier(tokens=dict(settings.dev_tokens))
    return FirebaseTokenVerifier(settings.firebase_service_key)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_stats_engine(request: Request) -> StatsEngine:
    return StatsEngine(
        request.app.state.store,
        max_workers=request.app.state.settings.stats_workers,
    )
