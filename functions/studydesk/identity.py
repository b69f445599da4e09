"""
Identity-token verifiers used by the auth gate.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Protocol

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions


class TokenVerificationError(Exception):
    """Raised when a token cannot be verified, for whatever reason."""


class TokenVerifier(Protocol):
    """Accepts an opaque token and returns its decoded claims."""

    def verify(self, token: str) -> dict:
        ...


@dataclass
class StaticTokenVerifier:
    """Fixed token -> claims map for tests and local development."""

    tokens: dict[str, dict] = field(default_factory=dict)

    def verify(self, token: str) -> dict:
        claims = self.tokens.get(token)
        if claims is None:
            raise TokenVerificationError("Unknown token")
        return dict(claims)


def load_service_account(encoded_key: str) -> dict:
    """Decode the base64-encoded service account JSON."""
    try:
        return json.loads(base64.b64decode(encoded_key).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("FIREBASE_SERVICE_KEY is not base64-encoded JSON") from exc


class FirebaseTokenVerifier:
    """
    Verifies Firebase ID tokens with the Admin SDK. The Firebase app is
    initialised once per process from the service account credential.
    """

    def __init__(self, encoded_key: str, app_name: str = "studydesk"):
        try:
            self.app = firebase_admin.get_app(app_name)
        except ValueError:
            cred = credentials.Certificate(load_service_account(encoded_key))
            self.app = firebase_admin.initialize_app(cred, name=app_name)

    def verify(self, token: str) -> dict:
        # Malformed tokens raise ValueError; expired, revoked and
        # certificate-fetch failures are all FirebaseError subclasses.
        try:
            return firebase_auth.verify_id_token(token, app=self.app)
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            raise TokenVerificationError(str(exc)) from exc
