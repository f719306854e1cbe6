"""
Schema reconciliation: make the repository's active schema set a superset of
the local schema catalog without re-registering anything already active.

The batch is a fold over the catalog: every file yields exactly one tagged
outcome (loaded / skipped / failed, or planned on a dry run) and the
counters are derived afterwards.
The active set is a snapshot taken once at the start of the run.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .twirp import RemoteProcedureError, TwirpClient

logger = logging.getLogger(__name__)

EXCLUDED_MARKER = "testdata"
_TAG_RE = re.compile(r"^v?(\d+(?:\.\d+)*)$")


class Outcome(str, Enum):
    LOADED = "loaded"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


@dataclass(frozen=True)
class SchemaDefinition:
    path: Path
    name: str
    version: int
    raw: str

    @property
    def version_tag(self) -> str:
        return version_tag(self.version)


@dataclass(frozen=True)
class CatalogEntry:
    """One schema file as read from disk; `problem` is set when it is unusable."""

    path: Path
    definition: Optional[SchemaDefinition] = None
    problem: Optional[str] = None


@dataclass(frozen=True)
class PlannedSchema:
    path: Path
    name: Optional[str]
    definition: Optional[SchemaDefinition]
    register: bool
    reason: str = ""


@dataclass(frozen=True)
class SchemaResult:
    path: Path
    name: Optional[str]
    outcome: Outcome
    version: Optional[str] = None
    reason: str = ""


@dataclass
class SchemaLoadReport:
    results: list[SchemaResult] = field(default_factory=list)
    active_count: int = 0
    dry_run: bool = False

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def loaded(self) -> int:
        return self.count(Outcome.LOADED)

    @property
    def skipped(self) -> int:
        return self.count(Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAILED)

    @property
    def planned(self) -> int:
        return self.count(Outcome.PLANNED)

    @property
    def restart_required(self) -> bool:
        return self.loaded > 0

    def summary(self) -> dict[str, Any]:
        return {
            "active": self.active_count,
            "files": len(self.results),
            "loaded": self.loaded,
            "skipped": self.skipped,
            "failed": self.failed,
            "planned": self.planned,
            "restart_required": self.restart_required,
            "dry_run": self.dry_run,
        }


class SchemaSpec(BaseModel):
    name: str
    version: str
    spec: str


class RegisterSchemaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_: SchemaSpec = Field(alias="schema")
    activate: bool = True

    def payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def version_tag(version: int) -> str:
    return f"v{version}.0"


def parse_version(value: Any) -> Optional[int]:
    """Positive integer version, or None. Integral floats (2.0) count as integers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and value > 0:
        return value
    return None


def _parse_tag(tag: str) -> Optional[tuple[int, ...]]:
    m = _TAG_RE.match(tag.strip())
    if not m:
        return None
    return tuple(int(part) for part in m.group(1).split("."))


def is_newer(local_tag: str, active_tag: str) -> bool:
    """True when `local_tag` sorts after `active_tag`; unparseable tags never do."""
    local = _parse_tag(local_tag)
    active = _parse_tag(active_tag)
    if local is None or active is None:
        return False
    width = max(len(local), len(active))
    return local + (0,) * (width - len(local)) > active + (0,) * (width - len(active))


def discover_schema_files(schema_dir: Path) -> list[Path]:
    return sorted(
        p
        for p in schema_dir.iterdir()
        if p.is_file() and p.name.endswith(".json") and EXCLUDED_MARKER not in p.name
    )


def read_schema_file(path: Path) -> CatalogEntry:
    # Decode bytes directly: the registered spec must be the file's exact text.
    try:
        raw = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return CatalogEntry(path=path, problem=f"unreadable: {exc}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        return CatalogEntry(path=path, problem=f"invalid JSON: {exc.msg}")
    if not isinstance(parsed, dict):
        return CatalogEntry(path=path, problem="not a JSON object")

    name = parsed.get("name")
    version = parsed.get("version")
    if not name or not version:
        return CatalogEntry(path=path, problem="missing name or version")
    number = parse_version(version)
    if number is None:
        return CatalogEntry(path=path, problem="invalid version")
    return CatalogEntry(
        path=path,
        definition=SchemaDefinition(path=path, name=str(name), version=number, raw=raw),
    )


def load_schema_catalog(schema_dir: Path) -> list[CatalogEntry]:
    return [read_schema_file(p) for p in discover_schema_files(schema_dir)]


def active_snapshot(schemas: Iterable[dict[str, Any]]) -> dict[str, str]:
    """name -> active version tag ("" when the service does not report one)."""
    out: dict[str, str] = {}
    for s in schemas:
        name = s.get("name")
        if name:
            out[str(name)] = str(s.get("version") or "")
    return out


def plan_schema_load(
    entries: Iterable[CatalogEntry],
    active: dict[str, str],
    *,
    upgrade: bool = False,
) -> list[PlannedSchema]:
    """Decide, per catalog entry, whether it needs a Register call.

    Presence of the name in `active` is enough to skip unless `upgrade` is set,
    in which case a strictly newer local version is registered again.
    """
    plan: list[PlannedSchema] = []
    for entry in entries:
        d = entry.definition
        if d is None:
            plan.append(PlannedSchema(entry.path, None, None, False, entry.problem or "malformed"))
            continue
        if d.name in active:
            active_tag = active[d.name]
            if upgrade and is_newer(d.version_tag, active_tag):
                plan.append(
                    PlannedSchema(entry.path, d.name, d, True, f"upgrade {active_tag} -> {d.version_tag}")
                )
            else:
                plan.append(PlannedSchema(entry.path, d.name, d, False, "already active"))
            continue
        plan.append(PlannedSchema(entry.path, d.name, d, True, "not active"))
    return plan


def build_register_request(definition: SchemaDefinition) -> RegisterSchemaRequest:
    return RegisterSchemaRequest(
        schema_=SchemaSpec(name=definition.name, version=definition.version_tag, spec=definition.raw),
        activate=True,
    )


def apply_plan(
    client: TwirpClient,
    token: str,
    plan: Iterable[PlannedSchema],
    *,
    dry_run: bool = False,
) -> list[SchemaResult]:
    results: list[SchemaResult] = []
    for item in plan:
        if not item.register or item.definition is None:
            logger.info("Skipping %s (%s)", item.name or item.path.name, item.reason)
            results.append(SchemaResult(item.path, item.name, Outcome.SKIPPED, reason=item.reason))
            continue

        d = item.definition
        if dry_run:
            logger.info("Would register %s %s (%s)", d.name, d.version_tag, item.reason)
            results.append(SchemaResult(item.path, d.name, Outcome.PLANNED, d.version_tag, item.reason))
            continue

        logger.info("Registering %s %s", d.name, d.version_tag)
        try:
            client.register_schema(build_register_request(d).payload(), token)
        except RemoteProcedureError as exc:
            logger.warning("Failed to register %s: %s", d.name, exc.detail)
            results.append(SchemaResult(item.path, d.name, Outcome.FAILED, d.version_tag, exc.detail))
            continue
        except httpx.HTTPError as exc:
            logger.warning("Failed to register %s: %s", d.name, exc)
            results.append(SchemaResult(item.path, d.name, Outcome.FAILED, d.version_tag, str(exc)))
            continue
        results.append(SchemaResult(item.path, d.name, Outcome.LOADED, d.version_tag))
    return results


def load_schemas(
    client: TwirpClient,
    token: str,
    schema_dir: Path,
    *,
    upgrade: bool = False,
    dry_run: bool = False,
) -> SchemaLoadReport:
    """Register and activate every local schema the repository does not have yet.

    A failing ListActive call propagates: without the snapshot there is no diff.
    """
    active = active_snapshot(client.list_active_schemas(token))
    logger.info("Found %d active schemas", len(active))

    entries = load_schema_catalog(schema_dir)
    logger.info("Found %d schema files in %s", len(entries), schema_dir)

    plan = plan_schema_load(entries, active, upgrade=upgrade)
    results = apply_plan(client, token, plan, dry_run=dry_run)
    return SchemaLoadReport(results=results, active_count=len(active), dry_run=dry_run)
