import base64
import json
import unittest
from unittest.mock import patch

from firebase_admin import exceptions as firebase_exceptions

from studydesk.config import Settings
from studydesk.db import InMemoryDocumentStore, SqlDocumentStore
from studydesk.dependencies import build_store, build_token_verifier
from studydesk.identity import (
    FirebaseTokenVerifier,
    StaticTokenVerifier,
    TokenVerificationError,
    load_service_account,
)

SERVICE_ACCOUNT = {"type": "service_account", "project_id": "studydesk-test"}
ENCODED_KEY = base64.b64encode(json.dumps(SERVICE_ACCOUNT).encode("utf-8")).decode()


class StaticTokenVerifierTests(unittest.TestCase):
    def test_known_and_unknown_tokens(self):
        verifier = StaticTokenVerifier(tokens={"t1": {"email": "a@x.com"}})
        self.assertEqual(verifier.verify("t1"), {"email": "a@x.com"})
        with self.assertRaises(TokenVerificationError):
            verifier.verify("t2")


class FirebaseTokenVerifierTests(unittest.TestCase):
    def test_load_service_account(self):
        self.assertEqual(load_service_account(ENCODED_KEY), SERVICE_ACCOUNT)
        with self.assertRaises(ValueError):
            load_service_account("not base64 json")

    @patch("studydesk.identity.credentials")
    @patch("studydesk.identity.firebase_admin")
    def test_initialises_app_once_from_decoded_key(self, mock_admin, mock_credentials):
        mock_admin.get_app.side_effect = ValueError("no app")
        verifier = FirebaseTokenVerifier(ENCODED_KEY)

        mock_credentials.Certificate.assert_called_once_with(SERVICE_ACCOUNT)
        mock_admin.initialize_app.assert_called_once_with(
            mock_credentials.Certificate.return_value, name="studydesk"
        )
        self.assertIs(verifier.app, mock_admin.initialize_app.return_value)

    @patch("studydesk.identity.firebase_admin")
    def test_reuses_existing_app(self, mock_admin):
        verifier = FirebaseTokenVerifier(ENCODED_KEY)
        mock_admin.initialize_app.assert_not_called()
        self.assertIs(verifier.app, mock_admin.get_app.return_value)

    @patch("studydesk.identity.firebase_auth")
    @patch("studydesk.identity.firebase_admin")
    def test_verify_returns_claims(self, mock_admin, mock_auth):
        mock_auth.verify_id_token.return_value = {"uid": "u1", "email": "a@x.com"}
        verifier = FirebaseTokenVerifier(ENCODED_KEY)

        self.assertEqual(verifier.verify("tok"), {"uid": "u1", "email": "a@x.com"})
        mock_auth.verify_id_token.assert_called_once_with("tok", app=verifier.app)

    @patch("studydesk.identity.firebase_auth")
    @patch("studydesk.identity.firebase_admin")
    def test_verify_failures_are_wrapped(self, mock_admin, mock_auth):
        verifier = FirebaseTokenVerifier(ENCODED_KEY)
        for error in (
            ValueError("malformed"),
            firebase_exceptions.UnavailableError("certificate fetch failed"),
        ):
            mock_auth.verify_id_token.side_effect = error
            with self.assertRaises(TokenVerificationError):
                verifier.verify("tok")


class BackendSelectionTests(unittest.TestCase):
    def test_in_memory_defaults(self):
        settings = Settings(database_url=None, firebase_service_key=None)
        self.assertIsInstance(build_store(settings), InMemoryDocumentStore)
        self.assertIsInstance(build_token_verifier(settings), StaticTokenVerifier)

    def test_sql_store_from_database_url(self):
        settings = Settings(database_url="sqlite+pysqlite:///:memory:")
        self.assertIsInstance(build_store(settings), SqlDocumentStore)

    def test_dev_tokens_feed_static_verifier(self):
        settings = Settings(
            use_in_memory_backends=True,
            firebase_service_key=ENCODED_KEY,
            dev_tokens={"dev": {"email": "a@x.com"}},
        )
        verifier = build_token_verifier(settings)
        self.assertEqual(verifier.verify("dev"), {"email": "a@x.com"})

    @patch("studydesk.dependencies.FirebaseTokenVerifier")
    def test_firebase_verifier_from_service_key(self, mock_verifier):
        settings = Settings(firebase_service_key=ENCODED_KEY)
        self.assertIs(build_token_verifier(settings), mock_verifier.return_value)
        mock_verifier.assert_called_once_with(ENCODED_KEY)


if __name__ == "__main__":
    unittest.main()
