from __future__ import annotations

import httpx
import pytest

from elephant_ops.auth import (
    DOCUMENT_SCOPE,
    SCHEMA_ADMIN_SCOPE,
    TokenExchangeError,
    TokenRequest,
    fetch_access_token,
)

from conftest import TOKEN, TOKEN_URL


def _request(scope: str = SCHEMA_ADMIN_SCOPE) -> TokenRequest:
    return TokenRequest(
        client_id="elephant",
        client_secret="elephant-secret",
        username="dev",
        password="dev",
        scope=scope,
    )


def test_form_carries_password_grant() -> None:
    form = _request(DOCUMENT_SCOPE).form()
    assert form == {
        "client_id": "elephant",
        "client_secret": "elephant-secret",
        "grant_type": "password",
        "username": "dev",
        "password": "dev",
        "scope": "doc_read doc_write",
    }


def test_fetch_access_token_posts_form(fake_elephant, http) -> None:
    token = fetch_access_token(TOKEN_URL, _request(), client=http)
    assert token.token == TOKEN
    assert token.expires_in == 300
    assert fake_elephant.token_calls == [_request().form()]
    assert fake_elephant.rpc_calls == []


def test_non_success_status_is_fatal_with_raw_body(fake_elephant, http) -> None:
    fake_elephant.token_status = 401
    with pytest.raises(TokenExchangeError) as exc:
        fetch_access_token(TOKEN_URL, _request(), client=http)
    assert exc.value.status_code == 401
    assert "invalid_grant" in exc.value.body
    assert "401" in str(exc.value)


def test_missing_access_token_is_an_error(fake_elephant, http) -> None:
    fake_elephant.token_body = {"token_type": "Bearer"}
    with pytest.raises(TokenExchangeError, match="no access_token"):
        fetch_access_token(TOKEN_URL, _request(), client=http)


def test_transport_failure_becomes_token_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as raw:
        with pytest.raises(TokenExchangeError, match="connection refused"):
            fetch_access_token(TOKEN_URL, _request(), client=raw)
