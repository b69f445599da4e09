"""
FastAPI application entry point for the StudyDesk backend.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studydesk.config import Settings, get_settings
from studydesk.db import DocumentStore
from studydesk.dependencies import build_store, build_token_verifier
from studydesk.errors import install_error_handlers
from studydesk.identity import TokenVerifier
from studydesk.routes import health_router, router


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    """
    Builds the app and the single store/verifier it owns. Tests pass their
    own `store` and `token_verifier`.
    """
    settings = settings or get_settings()
    app = FastAPI(title="StudyDesk Backend", version="0.1.0")
    app.state.settings = settings
    app.state.store = store if store is not None else build_store(settings)
    app.state.token_verifier = (
        token_verifier
        if token_verifier is not None
        else build_token_verifier(settings)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    app.include_router(health_router)
    app.include_router(router)
    return app
