import unittest
from typing import Any
from unittest.mock import MagicMock

import requests

from capturoo_cli import identity
from capturoo_cli.credentials import TokenPair
from capturoo_cli.errors import AuthError, HTTPStatusError, TransportError


def response(status: int, payload: Any = None, reason: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class SignInWithPasswordTests(unittest.TestCase):
    def test_success(self) -> None:
        session = MagicMock()
        session.post.return_value = response(
            200,
            {
                "idToken": "id-1",
                "refreshToken": "refresh-1",
                "email": "ada@example.com",
                "localId": "uid-1",
                "expiresIn": "3600",
                "registered": True,
            },
        )
        client = identity.IdentityClient(session=session)

        result = client.sign_in_with_password("api-key", "ada@example.com", "s3cret")

        self.assertEqual(result.token_pair(), TokenPair("id-1", "refresh-1"))
        self.assertEqual(result.local_id, "uid-1")
        self.assertTrue(result.registered)
        session.post.assert_called_once_with(
            identity.SIGN_IN_WITH_PASSWORD_URL,
            params={"key": "api-key"},
            json={"email": "ada@example.com", "password": "s3cret", "returnSecureToken": True},
            data=None,
            headers={"Accept": "application/json"},
            timeout=6.0,
        )

    def test_structured_bad_request(self) -> None:
        session = MagicMock()
        session.post.return_value = response(
            400,
            {"error": {"code": 400, "message": "INVALID_PASSWORD", "errors": [{"reason": "invalid"}]}},
        )
        client = identity.IdentityClient(session=session)

        with self.assertRaises(AuthError) as ctx:
            client.sign_in_with_password("api-key", "ada@example.com", "wrong")
        self.assertEqual(ctx.exception.code, 400)
        self.assertEqual(ctx.exception.message, "INVALID_PASSWORD")

    def test_unparsable_bad_request(self) -> None:
        session = MagicMock()
        session.post.return_value = response(400, ValueError("no json"), reason="Bad Request")
        client = identity.IdentityClient(session=session)

        with self.assertRaises(HTTPStatusError) as ctx:
            client.sign_in_with_password("api-key", "a@b.c", "pw")
        self.assertEqual(ctx.exception.status, 400)

    def test_other_status(self) -> None:
        session = MagicMock()
        session.post.return_value = response(503, None, reason="Service Unavailable")
        client = identity.IdentityClient(session=session)

        with self.assertRaises(HTTPStatusError) as ctx:
            client.sign_in_with_password("api-key", "a@b.c", "pw")
        self.assertEqual(ctx.exception.status, 503)

    def test_success_without_refresh_token(self) -> None:
        session = MagicMock()
        session.post.return_value = response(200, {"idToken": "id-1", "email": "ada@example.com"})
        client = identity.IdentityClient(session=session)

        with self.assertRaises(HTTPStatusError):
            client.sign_in_with_password("api-key", "ada@example.com", "s3cret")

    def test_transport_failure(self) -> None:
        session = MagicMock()
        session.post.side_effect = requests.Timeout("timed out")
        client = identity.IdentityClient(session=session)

        with self.assertRaises(TransportError):
            client.sign_in_with_password("api-key", "a@b.c", "pw")
        self.assertEqual(session.post.call_count, 1)


class ExchangeCustomTokenTests(unittest.TestCase):
    def test_success(self) -> None:
        session = MagicMock()
        session.post.return_value = response(
            200, {"kind": "verifyCustomToken", "idToken": "id-2", "refreshToken": "refresh-2", "expiresIn": "3600"}
        )
        client = identity.IdentityClient(session=session)

        pair = client.exchange_custom_token("api-key", "custom-token")

        self.assertEqual(pair, TokenPair("id-2", "refresh-2"))
        _, kwargs = session.post.call_args
        self.assertEqual(kwargs["json"], {"token": "custom-token", "returnSecureToken": True})
        self.assertEqual(session.post.call_args.args[0], identity.VERIFY_CUSTOM_TOKEN_URL)

    def test_success_without_tokens(self) -> None:
        for payload in [{"kind": "verifyCustomToken"}, {"idToken": "id-2"}, ["idToken"], {"idToken": "", "refreshToken": "r"}]:
            with self.subTest(payload=payload):
                session = MagicMock()
                session.post.return_value = response(200, payload)
                client = identity.IdentityClient(session=session)

                with self.assertRaises(HTTPStatusError) as ctx:
                    client.exchange_custom_token("api-key", "custom-token")
                self.assertEqual(ctx.exception.status, 200)

    def test_bad_request(self) -> None:
        session = MagicMock()
        session.post.return_value = response(400, {"error": {"code": 400, "message": "INVALID_CUSTOM_TOKEN"}})
        client = identity.IdentityClient(session=session)

        with self.assertRaises(AuthError):
            client.exchange_custom_token("api-key", "bad")


class RefreshTokenTests(unittest.TestCase):
    def test_form_encoded_request(self) -> None:
        session = MagicMock()
        session.post.return_value = response(
            200,
            {
                "expires_in": "3600",
                "token_type": "Bearer",
                "refresh_token": "refresh-3",
                "id_token": "id-3",
                "user_id": "uid-1",
                "project_id": "capturoo",
            },
        )
        client = identity.IdentityClient(session=session)

        pair = client.refresh_token("api-key", "refresh-old")

        self.assertEqual(pair, TokenPair("id-3", "refresh-3"))
        session.post.assert_called_once_with(
            identity.REFRESH_TOKEN_URL,
            params={"key": "api-key"},
            json=None,
            data={"grant_type": "refresh_token", "refresh_token": "refresh-old"},
            headers={"Accept": "application/json", "Content-Type": "application/x-www-form-urlencoded"},
            timeout=6.0,
        )

    def test_response_missing_id_token(self) -> None:
        session = MagicMock()
        session.post.return_value = response(200, {"refresh_token": "refresh-3", "token_type": "Bearer"})
        client = identity.IdentityClient(session=session)

        with self.assertRaises(HTTPStatusError) as ctx:
            client.refresh_token("api-key", "refresh-old")
        self.assertIn("id_token", str(ctx.exception))

    def test_bad_request(self) -> None:
        session = MagicMock()
        session.post.return_value = response(
            400, {"error": {"code": 400, "message": "TOKEN_EXPIRED", "status": "INVALID_ARGUMENT"}}
        )
        client = identity.IdentityClient(session=session)

        with self.assertRaises(AuthError) as ctx:
            client.refresh_token("api-key", "refresh-old")
        self.assertEqual(ctx.exception.message, "TOKEN_EXPIRED")


if __name__ == "__main__":
    unittest.main()
