"""
Bearer-token gate in front of every protected route.

The gate authenticates the caller and attaches the decoded claims to
`request.state.user`. Data access is still scoped by the caller-supplied
`email`; the verified identity is only compared against it when
`enforce_owner_match` is enabled.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from studydesk.config import Settings
from studydesk.dependencies import get_app_settings, get_token_verifier
from studydesk.identity import TokenVerificationError, TokenVerifier

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized access"
FORBIDDEN_MESSAGE = "Forbidden access"

bearer_scheme = HTTPBearer(auto_error=False)


def require_verified_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> dict:
    token = credentials.credentials.strip() if credentials else ""
    if not token:
        logger.info(
            "Rejected %s %s: missing bearer token", request.method, request.url.path
        )
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)
    try:
        claims = verifier.verify(token)
    except TokenVerificationError as exc:
        logger.warning(
            "Rejected %s %s: token verification failed (%s)",
            request.method,
            request.url.path,
            exc,
        )
        raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE) from exc
    request.state.user = claims
    return claims


def _caller_email(request: Request) -> Optional[str]:
    claims = getattr(request.state, "user", None) or {}
    return claims.get("email")


def check_owner(request: Request, email: Optional[str], settings: Settings) -> None:
    """Reject an `email` that is not the caller's own, when enforcement is on."""
    if not settings.enforce_owner_match or email is None:
        return
    if _caller_email(request) != email:
        raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)


def owner_filter(
    request: Request,
    email: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
) -> Optional[str]:
    """Optional `email` list filter; under enforcement it defaults to the caller."""
    if settings.enforce_owner_match and email is None:
        caller = _caller_email(request)
        if not caller:
            raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)
        return caller
    check_owner(request, email, settings)
    return email


def require_owner_email(
    request: Request,
    email: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
) -> str:
    if not email:
        raise HTTPException(status_code=400, detail="email is required")
    check_owner(request, email, settings)
    return email
