#!/usr/bin/env python3
"""Command-line access to the template backend.

Usage:
  invoice-templates list
  invoice-templates show <id>
  invoice-templates create --name NAME [--description TEXT] [--map field=CELL ...]
  invoice-templates delete <id>
  invoice-templates upload <id> <path.xlsx>
  invoice-templates analyze <id>
  invoice-templates analyze-file <path.xlsx> [--name NAME] [--map field=CELL ...]
  invoice-templates download <id> --out <path>
  invoice-templates preview <path.xlsx>
  invoice-templates health

Results are printed as JSON. Exit code is 1 when the backend reports an error.
"""
from __future__ import annotations
import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

from invoice_templates.config import ClientConfig, settings
from invoice_templates.errors import TemplateClientError, ValidationError
from invoice_templates.models import AnalysisResult, Template
from invoice_templates.services.analysis_orchestrator import AnalysisOrchestrator
from invoice_templates.services.draft_state import TemplateDraft
from invoice_templates.services.file_adapter import FileAdapter
from invoice_templates.services.file_preview import preview
from invoice_templates.services.template_client import RemoteTemplateClient
from invoice_templates.services.template_list import TemplateListCoordinator
from invoice_templates.utils.display import (
    cell_preview,
    field_display_name,
    format_cell_ref,
    format_date,
)
from invoice_templates.utils.logging import configure_logging


def _raw_pick(path: Path) -> dict:
    """Shape a local file the way a native document picker reports it."""
    resolved = path.expanduser().resolve()
    return {"uri": resolved.as_uri(), "name": resolved.name}


def _parse_mappings(pairs: Optional[List[str]]) -> Dict[str, str]:
    mappings = {}
    for pair in pairs or []:
        field_name, sep, cell = pair.partition("=")
        if not sep or not field_name.strip():
            raise ValidationError(f"Expected field=CELL, got {pair!r}", field="map")
        mappings[field_name.strip()] = format_cell_ref(cell)
    return mappings


def _template_view(template: Template, analysis: Optional[AnalysisResult] = None) -> dict:
    view = template.model_dump()
    view["created"] = format_date(template.created_at)
    view["updated"] = format_date(template.updated_at)
    view["fields"] = [
        {
            "field": field_name,
            "label": field_display_name(field_name),
            "cell": cell,
            "preview": cell_preview(analysis, cell),
        }
        for field_name, cell in template.field_mappings.items()
    ]
    if analysis is not None:
        view["analysis"] = analysis.model_dump()
    return view


def _emit(data):
    print(json.dumps(data, indent=2, default=str))


async def run(args: argparse.Namespace, client: RemoteTemplateClient) -> int:
    coordinator = TemplateListCoordinator(client)

    if args.command == "list":
        templates = await coordinator.refresh()
        _emit([t.model_dump() for t in templates])

    elif args.command == "show":
        detail = await coordinator.load(args.template_id)
        _emit(_template_view(detail.template, detail.analysis))

    elif args.command == "create":
        mappings = dict(settings.default_field_mappings)
        mappings.update(_parse_mappings(args.map))
        draft = TemplateDraft(name=args.name, description=args.description or "", field_mappings=mappings)
        template = await coordinator.create_and_navigate(draft)
        _emit(template.model_dump())

    elif args.command == "delete":
        await coordinator.remove(args.template_id)
        _emit({"deleted": args.template_id})

    elif args.command == "upload":
        draft = TemplateDraft()
        orchestrator = AnalysisOrchestrator(client, draft)
        template = await orchestrator.upload_to_existing(args.template_id, _raw_pick(args.path))
        _emit(_template_view(template, draft.suggestions))

    elif args.command == "analyze":
        analysis = await client.analyze(args.template_id)
        _emit(analysis.model_dump())

    elif args.command == "analyze-file":
        draft = TemplateDraft.from_settings(settings)
        draft.set_name(args.name or "")
        for field_name, cell in _parse_mappings(args.map).items():
            draft.set_field(field_name, cell)
        orchestrator = AnalysisOrchestrator(client, draft)
        orchestrator.pick_file(_raw_pick(args.path))
        outcome = await orchestrator.begin_analysis()
        _emit({
            "state": outcome.state.value,
            "notice": outcome.notice,
            "field_mappings": draft.field_mappings,
            "warnings": draft.cell_warnings(),
            "suggestions": outcome.analysis.suggestions if outcome.analysis else None,
        })

    elif args.command == "download":
        content = await client.download(args.template_id)
        args.out.write_bytes(content)
        _emit({"saved": str(args.out), "bytes": len(content), "url": client.download_url_for(args.template_id)})

    elif args.command == "preview":
        picked = FileAdapter().normalize(_raw_pick(args.path))
        _emit(asdict(preview(picked)))

    elif args.command == "health":
        healthy = await client.health()
        _emit({"base_url": client.base_url, "healthy": healthy})
        return 0 if healthy else 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="invoice-templates", description="Manage invoice templates")
    parser.add_argument("--api-url", help="Backend base URL (overrides API_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List templates")

    p = sub.add_parser("show", help="Show one template (analyzes its file if present)")
    p.add_argument("template_id")

    p = sub.add_parser("create", help="Create a template")
    p.add_argument("--name", required=True)
    p.add_argument("--description")
    p.add_argument("--map", action="append", metavar="FIELD=CELL")

    p = sub.add_parser("delete", help="Delete a template")
    p.add_argument("template_id")

    p = sub.add_parser("upload", help="Upload a master Excel file to a template")
    p.add_argument("template_id")
    p.add_argument("path", type=Path)

    p = sub.add_parser("analyze", help="Analyze a template's uploaded file")
    p.add_argument("template_id")

    p = sub.add_parser("analyze-file", help="Suggest field mappings for a local file without saving a template")
    p.add_argument("path", type=Path)
    p.add_argument("--name")
    p.add_argument("--map", action="append", metavar="FIELD=CELL")

    p = sub.add_parser("download", help="Download a template's Excel file")
    p.add_argument("template_id")
    p.add_argument("--out", type=Path, required=True)

    p = sub.add_parser("preview", help="Show sheets and first cells of a local workbook")
    p.add_argument("path", type=Path)

    sub.add_parser("health", help="Check the backend is reachable")
    return parser


def main(argv: Optional[List[str]] = None, client: Optional[RemoteTemplateClient] = None) -> int:
    args = build_parser().parse_args(argv)

    if client is None:
        config = ClientConfig.from_settings(settings)
        if args.api_url:
            config = ClientConfig(
                base_url=args.api_url.rstrip("/"),
                api_prefix=config.api_prefix,
                timeout_seconds=config.timeout_seconds,
                upload_timeout_seconds=config.upload_timeout_seconds,
            )
        client = RemoteTemplateClient(config)

    try:
        return asyncio.run(run(args, client))
    except TemplateClientError as e:
        _emit(e.to_dict())
        return 1


def cli():
    configure_logging()
    sys.exit(main())


if __name__ == "__main__":
    cli()
