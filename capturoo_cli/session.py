"""Per-invocation session bootstrap.

Every command except ``account login``, ``account logout`` and ``version`` runs
with a Session: the stored token pair, its decoded claims and an API client
carrying the ID token. An expired ID token is exchanged once for a fresh pair
before the command runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .api import ApiClient
from .config import AppConfig
from .credentials import SessionClaims, TokenPair, TokenStore, decode_claims, is_expired
from .identity import IdentityClient


@dataclass
class Session:
    config: AppConfig
    client: ApiClient
    tokens: TokenPair
    claims: SessionClaims
    refreshed: bool = False


def refresh_tokens(
    config: AppConfig, store: TokenStore, client: ApiClient, identity: IdentityClient, tokens: TokenPair
) -> TokenPair:
    firebase = client.auto_conf()
    config.trace(f"ID token expired; exchanging refresh token (project={firebase.project_id})")
    new_tokens = identity.refresh_token(firebase.api_key, tokens.refresh_token)
    path = store.save(config.token_filename, new_tokens)
    config.trace(f"Refreshed tokens written to {path}")
    return new_tokens


def bootstrap(
    config: AppConfig,
    store: Optional[TokenStore] = None,
    client: Optional[ApiClient] = None,
    identity: Optional[IdentityClient] = None,
) -> Session:
    store = store or TokenStore(config.config_dir)
    client = client or ApiClient(config.endpoint, timeout=config.request_timeout, debug=config.debug)

    tokens = store.load(config.token_filename)
    refreshed = False
    if is_expired(tokens):
        identity = identity or IdentityClient(timeout=config.request_timeout, debug=config.debug)
        tokens = refresh_tokens(config, store, client, identity, tokens)
        refreshed = True

    client.id_token = tokens.id_token
    return Session(
        config=config,
        client=client,
        tokens=tokens,
        claims=decode_claims(tokens.id_token),
        refreshed=refreshed,
    )
