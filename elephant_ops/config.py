"""
elephant-ops configuration: all environment-driven settings in one place.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import yaml

# --- Endpoints ---
DEFAULT_REPOSITORY_URL = "http://localhost:1080"
DEFAULT_TOKEN_URL = "http://localhost:8180/realms/elephant/protocol/openid-connect/token"

# --- Operator credentials (local dev realm) ---
DEFAULT_CLIENT_ID = "elephant"
DEFAULT_CLIENT_SECRET = "elephant-secret"
DEFAULT_USERNAME = "dev"
DEFAULT_PASSWORD = "dev"

# --- Catalogs ---
DEFAULT_SCHEMA_DIR = Path("revisorschemas")
DEFAULT_ACL_UNIT = "core://unit/redaktionen"
DEFAULT_LANGUAGE = "sv-se"


def _float_env(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    repository_url: str = DEFAULT_REPOSITORY_URL
    token_url: str = DEFAULT_TOKEN_URL
    client_id: str = DEFAULT_CLIENT_ID
    client_secret: str = DEFAULT_CLIENT_SECRET
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD
    schema_dir: Path = DEFAULT_SCHEMA_DIR
    acl_unit: str = DEFAULT_ACL_UNIT
    language: str = DEFAULT_LANGUAGE
    # None keeps the httpx transport default.
    http_timeout_s: Optional[float] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            repository_url=env.get("ELEPHANT_REPOSITORY_URL", DEFAULT_REPOSITORY_URL),
            token_url=env.get("ELEPHANT_TOKEN_URL", DEFAULT_TOKEN_URL),
            client_id=env.get("ELEPHANT_CLIENT_ID", DEFAULT_CLIENT_ID),
            client_secret=env.get("ELEPHANT_CLIENT_SECRET", DEFAULT_CLIENT_SECRET),
            username=env.get("ELEPHANT_USERNAME", DEFAULT_USERNAME),
            password=env.get("ELEPHANT_PASSWORD", DEFAULT_PASSWORD),
            schema_dir=Path(env.get("ELEPHANT_SCHEMA_DIR", str(DEFAULT_SCHEMA_DIR))),
            acl_unit=env.get("ELEPHANT_ACL_UNIT", DEFAULT_ACL_UNIT),
            language=env.get("ELEPHANT_LANGUAGE", DEFAULT_LANGUAGE),
            http_timeout_s=_float_env("ELEPHANT_HTTP_TIMEOUT"),
            log_level=env.get("ELEPHANT_LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Copy with every non-None override applied (CLI flags win over env)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "schema_dir" in changes:
            changes["schema_dir"] = Path(changes["schema_dir"])
        return replace(self, **changes)


@dataclass(frozen=True)
class SectionRecord:
    title: str
    code: str


DEFAULT_SECTIONS: tuple[SectionRecord, ...] = (
    SectionRecord(title="Nyheter", code="nyheter"),
    SectionRecord(title="Sport", code="sport"),
    SectionRecord(title="Kultur", code="kultur"),
    SectionRecord(title="Ekonomi", code="ekonomi"),
    SectionRecord(title="Nöje", code="noje"),
    SectionRecord(title="Debatt", code="debatt"),
)


def load_sections(path: Path) -> list[SectionRecord]:
    """Read a section catalog from YAML (`sections:` list of {title, code})."""
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"could not parse YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("section catalog must be a mapping")

    entries = raw.get("sections")
    if not isinstance(entries, list) or not entries:
        raise ValueError("section catalog must contain a non-empty `sections` list")

    sections: list[SectionRecord] = []
    seen: set[str] = set()
    for idx, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValueError(f"section #{idx} must be a mapping")
        title = str(entry.get("title", "")).strip()
        code = str(entry.get("code", "")).strip()
        if not title or not code:
            raise ValueError(f"section #{idx} missing `title` or `code`")
        if code in seen:
            raise ValueError(f"duplicate section code: {code!r}")
        seen.add(code)
        sections.append(SectionRecord(title=title, code=code))
    return sections
