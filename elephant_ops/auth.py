"""
Operator credentials -> scoped bearer token (OIDC password grant).

Tokens live for one run only: nothing is cached or written anywhere.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

SCHEMA_ADMIN_SCOPE = "schema_admin"
DOCUMENT_SCOPE = "doc_read doc_write"


class TokenExchangeError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


@dataclass(frozen=True)
class TokenRequest:
    client_id: str
    client_secret: str
    username: str
    password: str
    scope: str
    grant_type: str = "password"

    def form(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": self.grant_type,
            "username": self.username,
            "password": self.password,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_in: Optional[int] = None
    scope: Optional[str] = None


def fetch_access_token(
    token_url: str,
    request: TokenRequest,
    client: Optional[httpx.Client] = None,
) -> AccessToken:
    """Exchange credentials for a token, raising TokenExchangeError on any failure."""
    owns_client = client is None
    http = client or httpx.Client()
    try:
        logger.info("Requesting access token (scope=%s)", request.scope)
        try:
            r = http.post(token_url, data=request.form())
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"token request failed: {exc}") from exc

        body = r.text
        if not r.is_success:
            raise TokenExchangeError(
                f"token endpoint returned {r.status_code}: {body.strip()}",
                status_code=r.status_code,
                body=body,
            )
        try:
            data = r.json()
        except ValueError as exc:
            raise TokenExchangeError(
                f"token endpoint returned non-JSON body: {body.strip()}",
                status_code=r.status_code,
                body=body,
            ) from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TokenExchangeError(
                "token endpoint response has no access_token",
                status_code=r.status_code,
                body=body,
            )
        expires_in = data.get("expires_in")
        return AccessToken(
            token=str(token),
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
            scope=data.get("scope"),
        )
    finally:
        if owns_client:
            http.close()
