from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

SCHEMAS_SERVICE = "elephant.repository.Schemas"
DOCUMENTS_SERVICE = "elephant.repository.Documents"


class RemoteProcedureError(RuntimeError):
    """A Twirp call answered with a non-success status or an unusable body."""

    def __init__(
        self,
        path: str,
        status_code: int,
        *,
        code: Optional[str] = None,
        msg: Optional[str] = None,
        raw: str = "",
    ):
        self.path = path
        self.status_code = status_code
        self.code = code
        self.msg = msg
        self.raw = raw
        super().__init__(f"POST {path} -> {status_code}: {self.detail}")

    @property
    def detail(self) -> str:
        if self.msg:
            return f"{self.msg} ({self.code})" if self.code else self.msg
        if self.code:
            return self.code
        return self.raw or "no response body"


def _error_from_response(path: str, response: httpx.Response) -> RemoteProcedureError:
    text = response.text.strip()
    try:
        body = response.json()
    except ValueError:
        return RemoteProcedureError(path, response.status_code, raw=text or response.reason_phrase)
    if isinstance(body, dict):
        code = body.get("code")
        msg = body.get("msg")
        return RemoteProcedureError(
            path,
            response.status_code,
            code=str(code) if code is not None else None,
            msg=str(msg) if msg is not None else None,
            raw=text,
        )
    return RemoteProcedureError(path, response.status_code, raw=text)


def build_http_client(timeout_s: Optional[float] = None) -> httpx.Client:
    """Shared transport for the token exchange and the Twirp calls."""
    if timeout_s is None:
        return httpx.Client()
    return httpx.Client(timeout=timeout_s)


class TwirpClient:
    """
    Minimal JSON client for the repository's Twirp RPC surface.

    Every procedure is a POST of a JSON object to
    `/twirp/<package.Service>/<Method>`; errors come back as `{code, msg}`.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.Client] = None,
        timeout_s: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or build_http_client(timeout_s)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TwirpClient":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def call(
        self,
        service: str,
        method: str,
        body: dict[str, Any],
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        path = f"/twirp/{service}/{method}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("POST %s", path)
        r = self._client.post(self.base_url + path, headers=headers, json=body)
        if not r.is_success:
            raise _error_from_response(path, r)
        try:
            data = r.json()
        except ValueError as exc:
            raise RemoteProcedureError(
                path, r.status_code, code="malformed", raw=r.text.strip()
            ) from exc
        if not isinstance(data, dict):
            raise RemoteProcedureError(path, r.status_code, code="malformed", raw=r.text.strip())
        return data

    # --- Schemas ---
    def list_active_schemas(self, token: Optional[str] = None) -> list[dict[str, Any]]:
        data = self.call(SCHEMAS_SERVICE, "ListActive", {}, token)
        schemas = data.get("schemas") or []
        return [s for s in schemas if isinstance(s, dict)]

    def register_schema(self, payload: dict[str, Any], token: str) -> dict[str, Any]:
        return self.call(SCHEMAS_SERVICE, "Register", payload, token)

    # --- Documents ---
    def update_document(self, payload: dict[str, Any], token: str) -> dict[str, Any]:
        return self.call(DOCUMENTS_SERVICE, "Update", payload, token)
