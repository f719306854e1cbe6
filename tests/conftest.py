"""
Shared fixtures: an in-memory stand-in for the identity provider and the
repository's Twirp surface, served through httpx.MockTransport.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

TOKEN = "tok-abc123"
REPO_URL = "http://repo.test"
TOKEN_URL = "http://idp.test/realms/elephant/protocol/openid-connect/token"


class FakeElephant:
    def __init__(self) -> None:
        self.active: dict[str, str] = {}
        self.token_status = 200
        self.token_body: Any = {"access_token": TOKEN, "expires_in": 300, "scope": "schema_admin"}
        self.register_errors: dict[str, tuple[int, dict[str, Any]]] = {}
        self.update_hook: Optional[Callable[[dict[str, Any]], httpx.Response]] = None
        self.list_status = 200
        self.token_calls: list[dict[str, str]] = []
        self.rpc_calls: list[tuple[str, Optional[str], dict[str, Any]]] = []

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [body for path, _auth, body in self.rpc_calls if path.endswith("/" + method)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            self.token_calls.append(dict(parse_qsl(request.content.decode())))
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"error":"invalid_grant"}', request=request)
            return httpx.Response(200, json=self.token_body, request=request)

        body = json.loads(request.content or b"{}")
        path = request.url.path
        self.rpc_calls.append((path, request.headers.get("Authorization"), body))

        if path == "/twirp/elephant.repository.Schemas/ListActive":
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"code": "internal", "msg": "db down"}, request=request)
            schemas = [{"name": n, "version": v} for n, v in self.active.items()]
            return httpx.Response(200, json={"schemas": schemas}, request=request)

        if path == "/twirp/elephant.repository.Schemas/Register":
            name = body["schema"]["name"]
            if name in self.register_errors:
                status, err = self.register_errors[name]
                return httpx.Response(status, json=err, request=request)
            self.active[name] = body["schema"]["version"]
            return httpx.Response(200, json={}, request=request)

        if path == "/twirp/elephant.repository.Documents/Update":
            if self.update_hook is not None:
                return self.update_hook(body)
            return httpx.Response(200, json={"uuid": body["uuid"], "version": "1"}, request=request)

        return httpx.Response(404, json={"code": "bad_route", "msg": f"no handler for {path}"}, request=request)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_elephant() -> FakeElephant:
    return FakeElephant()


@pytest.fixture
def http(fake_elephant: FakeElephant):
    with fake_elephant.client() as client:
        yield client


@pytest.fixture
def schema_dir(tmp_path: Path) -> Path:
    d = tmp_path / "revisorschemas"
    d.mkdir()
    return d


def write_schema(directory: Path, filename: str, doc: Any) -> Path:
    path = directory / filename
    text = doc if isinstance(doc, str) else json.dumps(doc, indent=2)
    path.write_bytes(text.encode("utf-8"))
    return path


@pytest.fixture
def schema_file(schema_dir: Path) -> Callable[[str, Any], Path]:
    def _write(filename: str, doc: Any) -> Path:
        return write_schema(schema_dir, filename, doc)

    return _write
