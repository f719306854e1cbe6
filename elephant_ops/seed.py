"""
Seed a fresh repository with baseline documents (editorial sections).

Each catalog entry gets one identifier and one Documents/Update call with the
create precondition (`ifMatch: "0"`). Random identifiers are the default, so
re-running seeds additional documents; stable identifiers make a re-run hit
the precondition instead.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_ACL_UNIT, DEFAULT_LANGUAGE, SectionRecord
from .twirp import RemoteProcedureError, TwirpClient

logger = logging.getLogger(__name__)

SECTION_TYPE = "core/section"
CREATE_PRECONDITION = "0"
USABLE_STATUS = "usable"
# Conflict codes the repository uses when the create precondition does not hold.
CONFLICT_CODES = frozenset({"failed_precondition", "already_exists"})

SEED_NAMESPACE = uuid.UUID("6f1b7d0e-4d0c-5a4e-9a5e-3c1d2b8e7f10")


class SeedOutcome(str, Enum):
    CREATED = "created"
    EXISTING = "existing"
    FAILED = "failed"


class Block(BaseModel):
    type: str
    data: dict[str, str] = Field(default_factory=dict)


class SeedDocument(BaseModel):
    uuid: str
    type: str
    uri: str
    url: str = ""
    title: str
    language: str
    meta: list[Block] = Field(default_factory=list)
    content: list[Block] = Field(default_factory=list)
    links: list[dict[str, Any]] = Field(default_factory=list)


class StatusUpdate(BaseModel):
    name: str


class ACLEntry(BaseModel):
    uri: str
    permissions: list[str]


class DocumentUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: SeedDocument
    uuid: str
    status: list[StatusUpdate]
    if_match: str = Field(default=CREATE_PRECONDITION, alias="ifMatch")
    acl: list[ACLEntry]

    def payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class SeedResult:
    code: str
    title: str
    uuid: str
    outcome: SeedOutcome
    version: Optional[str] = None
    reason: str = ""


@dataclass
class SeedReport:
    results: list[SeedResult] = field(default_factory=list)

    def count(self, outcome: SeedOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def created(self) -> list[SeedResult]:
        """Successfully created entries, in catalog order (parents before children)."""
        return [r for r in self.results if r.outcome is SeedOutcome.CREATED]

    def ids_by_code(self) -> dict[str, str]:
        return {r.code: r.uuid for r in self.results if r.outcome is not SeedOutcome.FAILED}

    def summary(self) -> dict[str, Any]:
        return {
            "total": len(self.results),
            "created": self.count(SeedOutcome.CREATED),
            "existing": self.count(SeedOutcome.EXISTING),
            "failed": self.count(SeedOutcome.FAILED),
        }


def random_id(_section: SectionRecord) -> str:
    return str(uuid.uuid4())


def stable_id(section: SectionRecord) -> str:
    """Deterministic id from the natural key, so re-runs target the same document."""
    return str(uuid.uuid5(SEED_NAMESPACE, f"{SECTION_TYPE}:{section.code}"))


def build_section_document(section: SectionRecord, doc_uuid: str, *, language: str = DEFAULT_LANGUAGE) -> SeedDocument:
    return SeedDocument(
        uuid=doc_uuid,
        type=SECTION_TYPE,
        uri=f"core://section/{doc_uuid}",
        url="",
        title=section.title,
        language=language,
        meta=[Block(type=SECTION_TYPE, data={"code": section.code})],
        content=[],
        links=[],
    )


def build_update_request(document: SeedDocument, *, acl_unit: str = DEFAULT_ACL_UNIT) -> DocumentUpdateRequest:
    return DocumentUpdateRequest(
        document=document,
        uuid=document.uuid,
        status=[StatusUpdate(name=USABLE_STATUS)],
        if_match=CREATE_PRECONDITION,
        acl=[ACLEntry(uri=acl_unit, permissions=["r", "w"])],
    )


class DocumentSeeder:
    def __init__(
        self,
        client: TwirpClient,
        token: str,
        *,
        acl_unit: str = DEFAULT_ACL_UNIT,
        language: str = DEFAULT_LANGUAGE,
        id_factory: Callable[[SectionRecord], str] = random_id,
    ):
        self.client = client
        self.token = token
        self.acl_unit = acl_unit
        self.language = language
        self.id_factory = id_factory

    @property
    def stable_ids(self) -> bool:
        return self.id_factory is stable_id

    def create(self, request: DocumentUpdateRequest, description: str) -> tuple[SeedOutcome, Optional[str], str]:
        """Submit one write; returns (outcome, version, reason)."""
        try:
            result = self.client.update_document(request.payload(), self.token)
        except RemoteProcedureError as exc:
            if self.stable_ids and exc.code in CONFLICT_CODES:
                logger.info("%s already exists (%s)", description, request.uuid)
                return SeedOutcome.EXISTING, None, exc.detail
            logger.warning("Failed to create %s: %s", description, exc.detail)
            return SeedOutcome.FAILED, None, exc.detail
        except httpx.HTTPError as exc:
            logger.warning("Failed to create %s: %s", description, exc)
            return SeedOutcome.FAILED, None, str(exc)

        version = result.get("version")
        if not version:
            reason = str(result.get("msg") or result.get("code") or "response has no version")
            logger.warning("Failed to create %s: %s", description, reason)
            return SeedOutcome.FAILED, None, reason

        logger.info("Created %s (%s) v%s", description, request.uuid, version)
        return SeedOutcome.CREATED, str(version), ""

    def seed_sections(self, sections: Iterable[SectionRecord]) -> SeedReport:
        report = SeedReport()
        for section in sections:
            doc_uuid = self.id_factory(section)
            document = build_section_document(section, doc_uuid, language=self.language)
            request = build_update_request(document, acl_unit=self.acl_unit)
            outcome, version, reason = self.create(request, f'section "{section.title}"')
            report.results.append(
                SeedResult(
                    code=section.code,
                    title=section.title,
                    uuid=doc_uuid,
                    outcome=outcome,
                    version=version,
                    reason=reason,
                )
            )
        return report
