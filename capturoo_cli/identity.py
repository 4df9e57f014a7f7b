"""Client for the identity provider's token endpoints.

Three calls are supported: email/password sign-in, custom token exchange (used
after a developer key sign-in) and refresh token exchange. Each call is a single
POST with the provider's public API key as the ``key`` query parameter.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from .config import REQUEST_TIMEOUT
from .credentials import TokenPair
from .errors import AuthError, HTTPStatusError, TransportError

SIGN_IN_WITH_PASSWORD_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
VERIFY_CUSTOM_TOKEN_URL = "https://www.googleapis.com/identitytoolkit/v3/relyingparty/verifyCustomToken"
REFRESH_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"


@dataclass
class SignInResult:
    id_token: str
    refresh_token: str
    email: str = ""
    local_id: str = ""
    expires_in: str = ""
    registered: bool = False

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "SignInResult":
        return cls(
            id_token=payload["idToken"],
            refresh_token=payload["refreshToken"],
            email=payload.get("email", ""),
            local_id=payload.get("localId", ""),
            expires_in=payload.get("expiresIn", ""),
            registered=bool(payload.get("registered", False)),
        )

    def token_pair(self) -> TokenPair:
        return TokenPair(id_token=self.id_token, refresh_token=self.refresh_token)


class IdentityClient:
    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        debug: bool = False,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.debug = debug

    def sign_in_with_password(self, api_key: str, email: str, password: str) -> SignInResult:
        payload = {"email": email, "password": password, "returnSecureToken": True}
        data = self._post(SIGN_IN_WITH_PASSWORD_URL, api_key, json_body=payload, required=("idToken", "refreshToken"))
        return SignInResult.from_response(data)

    def exchange_custom_token(self, api_key: str, custom_token: str) -> TokenPair:
        payload = {"token": custom_token, "returnSecureToken": True}
        data = self._post(VERIFY_CUSTOM_TOKEN_URL, api_key, json_body=payload, required=("idToken", "refreshToken"))
        return TokenPair(id_token=data["idToken"], refresh_token=data["refreshToken"])

    def refresh_token(self, api_key: str, refresh_token: str) -> TokenPair:
        # securetoken only accepts a form encoded body
        form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        data = self._post(REFRESH_TOKEN_URL, api_key, form=form, required=("id_token", "refresh_token"))
        return TokenPair(id_token=data["id_token"], refresh_token=data["refresh_token"])

    def _post(
        self,
        url: str,
        api_key: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
        required: Tuple[str, ...] = (),
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if form is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        if self.debug:
            print(f"HTTP POST {url} timeout={self.timeout}", file=sys.stderr)
        try:
            resp = self.session.post(
                url,
                params={"key": api_key},
                json=json_body,
                data=form,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"POST {url} failed: {exc}") from exc

        if self.debug:
            print(f"HTTP POST {url} status={resp.status_code}", file=sys.stderr)

        if resp.status_code == 400:
            raise _auth_error(resp)
        if resp.status_code >= 300:
            raise HTTPStatusError(resp.status_code, resp.reason or "")

        try:
            data = resp.json()
        except ValueError as exc:
            raise HTTPStatusError(resp.status_code, f"invalid JSON response: {exc}") from exc
        if not isinstance(data, dict):
            raise HTTPStatusError(resp.status_code, "response body is not a JSON object")
        for key in required:
            if not isinstance(data.get(key), str) or not data[key]:
                raise HTTPStatusError(resp.status_code, f"response missing {key}")
        return data


def _auth_error(resp: requests.Response) -> Exception:
    try:
        error = resp.json()["error"]
        return AuthError(int(error.get("code", resp.status_code)), error.get("message", ""))
    except (ValueError, KeyError, TypeError, AttributeError):
        return HTTPStatusError(resp.status_code, resp.reason or "")
