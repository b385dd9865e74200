"""Command line entry point (``paperless-enricher``)."""

from __future__ import annotations

import argparse
import json
import sys

from rich.panel import Panel
from rich.table import Table

from .analyzer import DocumentAnalyzer
from .client import PaperlessClient
from .config import (
    LOG_FILE,
    AnalyzerSettings,
    PaperlessSettings,
    __version__,
    _validate_config,
    configure_logging,
    console,
    log,
)
from .exceptions import ConfigError, EnricherError
from .models import AnalysisOptions
from .processing import batch_process, build_context, process_document
from .taxonomy import Taxonomy, import_taxonomy


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paperless-enricher",
        description="Paperless-NGX Metadaten per KI anreichern (Tags, Korrespondent, Typ, Titel, Datum)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    sub = parser.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Ein Dokument analysieren")
    p_analyze.add_argument("doc_id", type=int)
    p_analyze.add_argument("--apply", action="store_true", help="Aenderungen wirklich schreiben")
    p_analyze.add_argument("--prompt", default=None, help="Eigener Prompt statt SYSTEM_PROMPT")
    p_analyze.add_argument("--external-data", default=None, help="Zusatzkontext als JSON oder Text")
    p_analyze.add_argument("--restrict-tags", action="store_true", default=None,
                           help="Nur existierende Tags erlauben")
    p_analyze.add_argument("--restrict-correspondents", action="store_true", default=None,
                           help="Nur existierende Korrespondenten erlauben")
    p_analyze.add_argument("--restrict-document-types", action="store_true", default=None,
                           help="Nur existierende Dokumenttypen erlauben")

    p_batch = sub.add_parser("batch", help="Mehrere Dokumente verarbeiten")
    p_batch.add_argument("--mode", choices=["untagged", "all"], default="untagged")
    p_batch.add_argument("--limit", type=int, default=0, help="Max Dokumente (0 = alle)")
    p_batch.add_argument("--apply", action="store_true", help="Aenderungen wirklich schreiben")

    p_play = sub.add_parser("playground", help="Freien Prompt an einem Dokument testen")
    p_play.add_argument("doc_id", type=int)
    p_play.add_argument("--prompt", required=True)

    sub.add_parser("status", help="LLM-Backend pruefen")

    p_tax = sub.add_parser("import-taxonomy", help="Standard-Dokumenttypen und Tags anlegen")
    p_tax.add_argument("--file", default=None, help="JSON mit document_types/tags")
    p_tax.add_argument("--delay", type=float, default=0.1, help="Pause zwischen Anfragen (Sekunden)")
    return parser


def _parse_external_data(raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _require_paperless(paperless_settings: PaperlessSettings) -> PaperlessClient:
    if not paperless_settings.url or not paperless_settings.token:
        raise ConfigError("PAPERLESS_API_URL und PAPERLESS_API_TOKEN muessen gesetzt sein (.env)")
    return PaperlessClient(paperless_settings.url, paperless_settings.token)


def _show_header(settings: AnalyzerSettings, paperless_settings: PaperlessSettings, dry_run: bool):
    mode = "[green]TEST (Dry-Run)[/green]" if dry_run else "[red]LIVE[/red]"
    console.print(Panel(
        f"[bold]Paperless-NGX Enricher v{__version__}[/bold]\n"
        f"Server: {paperless_settings.url or '-'}\n"
        f"LLM: {settings.provider.value} / {settings.model_name or '-'}\n"
        f"Modus: {mode}\n"
        f"Log-Datei: {LOG_FILE}",
        border_style="blue",
    ))


def _cmd_analyze(args, settings, paperless_settings) -> int:
    paperless = _require_paperless(paperless_settings)
    analyzer = DocumentAnalyzer(settings, paperless=paperless)
    ctx = build_context(paperless, analyzer, settings)
    options = AnalysisOptions(
        restrict_to_existing_tags=args.restrict_tags,
        restrict_to_existing_correspondents=args.restrict_correspondents,
        restrict_to_existing_document_types=args.restrict_document_types,
        external_api_data=_parse_external_data(args.external_data),
    )
    process_document(args.doc_id, ctx, dry_run=not args.apply, custom_prompt=args.prompt, options=options)
    return 0


def _cmd_batch(args, settings, paperless_settings) -> int:
    paperless = _require_paperless(paperless_settings)
    analyzer = DocumentAnalyzer(settings, paperless=paperless)
    ctx = build_context(paperless, analyzer, settings)
    stats = batch_process(ctx, dry_run=not args.apply, mode=args.mode, limit=args.limit,
                          workers=paperless_settings.agent_workers)
    return 1 if stats["errors"] else 0


def _cmd_playground(args, settings, paperless_settings) -> int:
    paperless = _require_paperless(paperless_settings)
    analyzer = DocumentAnalyzer(settings, paperless=paperless)
    document = paperless.get_document(args.doc_id)
    outcome = analyzer.analyze_playground(document.get("content") or "", args.prompt)
    console.print(Panel(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False),
                        title=f"Playground #{args.doc_id}", border_style="cyan"))
    return 0 if outcome.ok else 1


def _cmd_status(args, settings, paperless_settings) -> int:
    analyzer = DocumentAnalyzer(settings)
    status = analyzer.check_status()
    table = Table(title="LLM-Status", show_header=False)
    table.add_column("Feld", style="cyan")
    table.add_column("Wert")
    table.add_row("Provider", settings.provider.value)
    for key, value in status.items():
        table.add_row(key, str(value))
    console.print(table)
    return 0 if status.get("status") == "ok" else 1


def _cmd_import_taxonomy(args, settings, paperless_settings) -> int:
    paperless = _require_paperless(paperless_settings)
    taxonomy = Taxonomy.load(args.file)
    summary = import_taxonomy(paperless, taxonomy, delay=args.delay)
    failed = summary["document_types"]["failed"] + summary["tags"]["failed"]
    return 1 if failed else 0


_COMMANDS = {
    "analyze": _cmd_analyze,
    "batch": _cmd_batch,
    "playground": _cmd_playground,
    "status": _cmd_status,
    "import-taxonomy": _cmd_import_taxonomy,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    try:
        settings = AnalyzerSettings.from_env()
        paperless_settings = PaperlessSettings.from_env()
    except ConfigError as exc:
        log.error(f"[red]Konfigurationsfehler:[/red] {exc}")
        return 2
    _validate_config(settings, paperless_settings if args.command != "status" else None)
    dry_run = not getattr(args, "apply", False)
    if args.command in ("analyze", "batch"):
        _show_header(settings, paperless_settings, dry_run)
    try:
        return _COMMANDS[args.command](args, settings, paperless_settings)
    except KeyboardInterrupt:
        console.print("\n[bold]Abgebrochen.[/bold]")
        return 130
    except EnricherError as exc:
        log.error(f"[red]Fehler:[/red] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
