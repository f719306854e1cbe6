#!/usr/bin/env python3
"""
elephant-ops CLI: bootstrap a local Elephant repository.

Usage:
    python -m elephant_ops load-schemas [--schema-dir DIR] [--upgrade] [--dry-run]
    python -m elephant_ops seed [--sections FILE.yaml] [--stable-ids]

Token failures are fatal (exit 1) and happen before any repository call.
Per-item failures are reported in the summary and do not change the exit code.
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from .auth import DOCUMENT_SCOPE, SCHEMA_ADMIN_SCOPE, TokenExchangeError, TokenRequest, fetch_access_token
from .config import DEFAULT_SECTIONS, Settings, load_sections
from .schemas import Outcome, SchemaLoadReport, load_schemas
from .seed import DocumentSeeder, SeedReport, random_id, stable_id
from .twirp import RemoteProcedureError, TwirpClient, build_http_client

RESTART_HINT = "docker compose restart elephant-repository"


def _emit(payload: Any, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(payload, sort_keys=True, ensure_ascii=False))
        return
    print(payload)


def _fail(message: str, output_format: str, *, code: int = 1) -> None:
    payload = {"status": "error", "error": message, "exit_code": code}
    _emit(payload if output_format == "json" else message, output_format)
    raise SystemExit(code)


def _token(http: httpx.Client, settings: Settings, scope: str) -> str:
    request = TokenRequest(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        username=settings.username,
        password=settings.password,
        scope=scope,
    )
    return fetch_access_token(settings.token_url, request, client=http).token


def _print_schema_report(report: SchemaLoadReport, output_format: str) -> None:
    if output_format == "json":
        _emit(
            {
                "status": "ok",
                "summary": report.summary(),
                "results": [
                    {
                        "file": r.path.name,
                        "name": r.name,
                        "outcome": r.outcome.value,
                        "version": r.version,
                        "reason": r.reason,
                    }
                    for r in report.results
                ],
            },
            output_format,
        )
        return

    print("=" * 50)
    print("SCHEMA LOAD SUMMARY" + (" (dry run)" if report.dry_run else ""))
    print("=" * 50)
    print(f"  Loaded:  {report.loaded}")
    print(f"  Skipped: {report.skipped}")
    print(f"  Failed:  {report.failed}")
    if report.dry_run:
        print(f"  Planned: {report.planned}")
    for r in report.results:
        if r.outcome is Outcome.PLANNED:
            print(f"    would register {r.name} {r.version} ({r.reason})")
        elif r.reason and r.outcome is Outcome.FAILED:
            print(f"    {r.name or r.path.name}: {r.reason}")
    print("=" * 50)
    if report.restart_required:
        print("\nRestart the repository service to pick up the new schemas:")
        print(f"  {RESTART_HINT}")


def _print_seed_report(report: SeedReport, output_format: str) -> None:
    if output_format == "json":
        _emit(
            {
                "status": "ok",
                "summary": report.summary(),
                "results": [
                    {
                        "code": r.code,
                        "title": r.title,
                        "uuid": r.uuid,
                        "outcome": r.outcome.value,
                        "version": r.version,
                        "reason": r.reason,
                    }
                    for r in report.results
                ],
            },
            output_format,
        )
        return

    summary = report.summary()
    print("=" * 50)
    print("SEED SUMMARY")
    print("=" * 50)
    print(f"  {summary['created']} sections created with status \"usable\"")
    for r in report.created:
        print(f"    {r.title:12s} {r.uuid} v{r.version}")
    if summary["existing"]:
        print(f"  {summary['existing']} sections already present")
    if summary["failed"]:
        print(f"  {summary['failed']} sections failed")
    print("=" * 50)
    if report.created:
        print("\nWait 10-20 seconds for the index to pick up the documents, then refresh the browser.")


def cmd_load_schemas(args: argparse.Namespace, settings: Settings) -> None:
    schema_dir = settings.schema_dir
    if not schema_dir.is_dir():
        _fail(f"schema directory not found: {schema_dir}", args.format, code=2)

    http = build_http_client(settings.http_timeout_s)
    try:
        try:
            token = _token(http, settings, SCHEMA_ADMIN_SCOPE)
        except TokenExchangeError as exc:
            _fail(f"failed to get access token: {exc}", args.format, code=1)
        client = TwirpClient(settings.repository_url, client=http)
        try:
            report = load_schemas(client, token, schema_dir, upgrade=args.upgrade, dry_run=args.dry_run)
        except (RemoteProcedureError, httpx.HTTPError) as exc:
            _fail(f"failed to list active schemas: {exc}", args.format, code=1)
        _print_schema_report(report, args.format)
    finally:
        http.close()


def cmd_seed(args: argparse.Namespace, settings: Settings) -> None:
    sections = list(DEFAULT_SECTIONS)
    if args.sections:
        try:
            sections = load_sections(Path(args.sections))
        except (OSError, ValueError) as exc:
            _fail(f"bad section catalog {args.sections}: {exc}", args.format, code=2)

    http = build_http_client(settings.http_timeout_s)
    try:
        try:
            token = _token(http, settings, DOCUMENT_SCOPE)
        except TokenExchangeError as exc:
            _fail(f"failed to get access token: {exc}", args.format, code=1)
        seeder = DocumentSeeder(
            TwirpClient(settings.repository_url, client=http),
            token,
            acl_unit=settings.acl_unit,
            language=settings.language,
            id_factory=stable_id if args.stable_ids else random_id,
        )
        report = seeder.seed_sections(sections)
        _print_seed_report(report, args.format)
    finally:
        http.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bootstrap an Elephant repository (schemas + seed documents)")
    parser.add_argument("--repository-url", help="Repository base URL (ELEPHANT_REPOSITORY_URL)")
    parser.add_argument("--token-url", help="OIDC token endpoint (ELEPHANT_TOKEN_URL)")
    parser.add_argument("--client-id")
    parser.add_argument("--client-secret")
    parser.add_argument("--username")
    parser.add_argument("--password")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--format", choices=["json", "text"], default="text")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_schemas = sub.add_parser("load-schemas", help="Register and activate missing schemas")
    p_schemas.add_argument("--schema-dir", help="Directory of schema JSON files (ELEPHANT_SCHEMA_DIR)")
    p_schemas.add_argument(
        "--upgrade",
        action="store_true",
        help="Also re-register active schemas whose local version is newer",
    )
    p_schemas.add_argument("--dry-run", action="store_true", help="Show the plan without registering")

    p_seed = sub.add_parser("seed", help="Create the seed section documents")
    p_seed.add_argument("--sections", help="YAML section catalog (defaults to the built-in sections)")
    p_seed.add_argument("--language", help="Document language (ELEPHANT_LANGUAGE)")
    p_seed.add_argument("--acl-unit", help="Unit granted read/write (ELEPHANT_ACL_UNIT)")
    p_seed.add_argument(
        "--stable-ids",
        action="store_true",
        help="Derive ids from the section code so re-runs do not create duplicates",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        env_settings = Settings.from_env()
    except ValueError as exc:
        _fail(f"bad environment setting: {exc}", args.format, code=2)
    settings = env_settings.with_overrides(
        repository_url=args.repository_url,
        token_url=args.token_url,
        client_id=args.client_id,
        client_secret=args.client_secret,
        username=args.username,
        password=args.password,
        log_level=args.log_level,
        schema_dir=getattr(args, "schema_dir", None),
        language=getattr(args, "language", None),
        acl_unit=getattr(args, "acl_unit", None),
    )
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "load-schemas":
        cmd_load_schemas(args, settings)
    elif args.cmd == "seed":
        cmd_seed(args, settings)
    else:
        _fail(f"unknown cmd: {args.cmd}", args.format, code=2)


if __name__ == "__main__":
    main()
