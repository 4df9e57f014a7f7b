"""Local storage of the ID token / refresh token pair.

The pair lives in ``~/.capturoo/<host>[_port]`` as ``{"idToken", "refreshToken"}``.
Claims are read from the ID token without verifying its signature; the CLI
only uses them for display and to pick the account to operate on.
"""

from __future__ import annotations

import base64
import binascii
import json
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import MalformedToken, TokenDecodeError, TokenFileNotFound


@dataclass
class TokenPair:
    id_token: str
    refresh_token: str

    def to_dict(self) -> Dict[str, str]:
        return {"idToken": self.id_token, "refreshToken": self.refresh_token}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenPair":
        return cls(id_token=data["idToken"], refresh_token=data["refreshToken"])


@dataclass
class SessionClaims:
    name: str = ""
    email: str = ""
    account_id: str = ""
    role: str = ""
    user_id: str = ""
    audience: str = ""
    issuer: str = ""
    subject: str = ""
    issued_at: int = 0
    expires_at: int = 0

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SessionClaims":
        return cls(
            name=payload.get("name", ""),
            email=payload.get("email", ""),
            account_id=payload.get("cap_aid", ""),
            role=payload.get("cap_role", ""),
            user_id=payload.get("user_id", ""),
            audience=payload.get("aud", ""),
            issuer=payload.get("iss", ""),
            subject=payload.get("sub", ""),
            issued_at=int(payload.get("iat", 0) or 0),
            expires_at=int(payload.get("exp", 0) or 0),
        )


def decode_claims(id_token: str) -> SessionClaims:
    parts = id_token.split(".")
    if len(parts) < 2:
        raise MalformedToken("token must contain at least two '.' separated segments")
    segment = parts[1]
    if len(segment) % 4:
        segment += "=" * (4 - len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(segment.encode("ascii"))
        payload = json.loads(raw)
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise MalformedToken(f"failed to decode token payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedToken("token payload is not a JSON object")
    try:
        return SessionClaims.from_payload(payload)
    except (TypeError, ValueError) as exc:
        raise MalformedToken(f"invalid token claims: {exc}") from exc


def is_expired(tokens: TokenPair, now: Optional[float] = None) -> bool:
    claims = decode_claims(tokens.id_token)
    utc_now = int(time.time() if now is None else now)
    return claims.expires_at - utc_now <= 0


class TokenStore:
    def __init__(self, config_dir: Path):
        self.config_dir = config_dir

    def path_for(self, filename: str) -> Path:
        return self.config_dir / filename

    def load(self, filename: str) -> TokenPair:
        path = self.path_for(filename)
        if not path.exists():
            raise TokenFileNotFound(filename)
        try:
            data = json.loads(path.read_text())
            return TokenPair.from_dict(data)
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenDecodeError(str(path), str(exc)) from exc

    def save(self, filename: str, tokens: TokenPair) -> Path:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.chmod(stat.S_IRWXU)

        # Write to temp file, set permissions, then rename over the target
        path = self.path_for(filename)
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(tokens.to_dict()) + "\n")
            temp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
            temp_path.replace(path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        return path

    def delete(self, filename: str) -> bool:
        path = self.path_for(filename)
        if not path.exists():
            return False
        path.unlink()
        return True
