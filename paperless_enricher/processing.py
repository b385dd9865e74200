"""Document processing: analyze, resolve names to ids, write back to Paperless."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from rich.table import Table

from .config import WRITE_LOCK, console, log
from .exceptions import AnalysisFailed, PaperlessAPIError
from .models import (
    DEFAULT_CUSTOM_FIELD_HINT,
    AnalysisOptions,
    AnalysisResult,
    ProcessingContext,
    RestrictionFlags,
)
from .restrictions import resolve_flags
from .utils import _build_id_name_map, _build_name_id_map, _name_list, _normalize_text


def build_context(paperless, analyzer, settings) -> ProcessingContext:
    """Stammdaten einmal laden (Tags, Korrespondenten, Typen, Custom Fields)."""
    log.info("Lade Stammdaten...")
    ctx = ProcessingContext(
        paperless=paperless,
        analyzer=analyzer,
        settings=settings,
        tags=list(paperless.get_tags()),
        correspondents=list(paperless.get_correspondents()),
        doc_types=list(paperless.get_document_types()),
        custom_fields=list(paperless.get_custom_fields()),
    )
    log.info(
        f"  {len(ctx.tags)} Tags, {len(ctx.correspondents)} Korrespondenten, "
        f"{len(ctx.doc_types)} Dokumenttypen, {len(ctx.custom_fields)} Custom Fields"
    )
    return ctx


# ---------------------------------------------------------------------------
# Name -> ID resolution
# ---------------------------------------------------------------------------

def _resolve_or_create(
    name: str,
    items: list,
    create,
    refresh,
    allow_create: bool,
    label: str,
    quiet: bool,
) -> int | None:
    """Lookup case-insensitive; optionally create the entry under the write lock."""
    key = _normalize_text(name).lower()
    if not key:
        return None
    existing = _build_name_id_map(items).get(key)
    if existing is not None:
        return existing
    if not allow_create:
        log.info(f"  [yellow]{label} nicht erstellt (Restriktion):[/yellow] {name}")
        return None
    with WRITE_LOCK:
        # Ein anderer Worker kann den Eintrag inzwischen angelegt haben
        fresh = list(refresh())
        items[:] = fresh
        existing = _build_name_id_map(items).get(key)
        if existing is not None:
            return existing
        try:
            if not quiet:
                console.print(f"  [yellow]+ Neu ({label}):[/yellow] {name}")
            new = create(_normalize_text(name))
        except PaperlessAPIError as exc:
            log.warning(f"  {label} '{name}' konnte nicht erstellt werden: {exc}")
            return None
        items.append(new)
        return int(new["id"])


def resolve_ids(
    ctx: ProcessingContext,
    result: AnalysisResult,
    flags: RestrictionFlags,
    quiet: bool = False,
) -> dict:
    """Wandelt Namen in IDs um, erstellt fehlende Eintraege nur ohne Restriktion."""
    paperless = ctx.paperless

    tag_ids = []
    for tag_name in result.tags:
        tag_id = _resolve_or_create(
            tag_name, ctx.tags, paperless.create_tag, paperless.get_tags,
            allow_create=not flags.tags, label="Tag", quiet=quiet,
        )
        if tag_id is not None:
            tag_ids.append(tag_id)

    corr_id = None
    if result.correspondent:
        corr_id = _resolve_or_create(
            result.correspondent, ctx.correspondents, paperless.create_correspondent,
            paperless.get_correspondents,
            allow_create=not flags.correspondents, label="Korrespondent", quiet=quiet,
        )

    type_id = None
    if result.document_type:
        type_id = _resolve_or_create(
            result.document_type, ctx.doc_types, paperless.create_document_type,
            paperless.get_document_types,
            allow_create=not flags.document_types, label="Dokumenttyp", quiet=quiet,
        )

    return {
        "tag_ids": list(dict.fromkeys(tag_ids)),
        "correspondent_id": corr_id,
        "document_type_id": type_id,
    }


def _iter_custom_field_values(custom_fields: dict | None):
    """Yield (field_name, value) from either template shape or a flat mapping."""
    for key, entry in (custom_fields or {}).items():
        if isinstance(entry, dict):
            name = entry.get("field_name") or entry.get("name")
            value = entry.get("value")
        else:
            name, value = key, entry
        if name:
            yield str(name), value


def map_custom_fields(ctx: ProcessingContext, custom_fields: dict | None) -> list[dict]:
    """Map model-filled custom fields by name to Paperless custom field ids."""
    field_map = _build_name_id_map(ctx.custom_fields)
    mapped = []
    for name, value in _iter_custom_field_values(custom_fields):
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value or value == DEFAULT_CUSTOM_FIELD_HINT:
                continue
        field_id = field_map.get(_normalize_text(name).lower())
        if field_id is None:
            log.debug(f"  Custom Field '{name}' existiert nicht in Paperless, uebersprungen")
            continue
        mapped.append({"field": field_id, "value": value})
    return mapped


def build_update(document: dict, result: AnalysisResult, resolved: dict, custom_values: list[dict]) -> dict:
    """PATCH-Payload; bestehende Tags und Custom Fields bleiben erhalten."""
    update: dict = {}
    if result.title:
        update["title"] = result.title[:128]
    current_tags = list(document.get("tags") or [])
    merged_tags = list(dict.fromkeys(current_tags + resolved["tag_ids"]))
    if merged_tags != current_tags:
        update["tags"] = merged_tags
    if resolved["correspondent_id"] is not None:
        update["correspondent"] = resolved["correspondent_id"]
    if resolved["document_type_id"] is not None:
        update["document_type"] = resolved["document_type_id"]
    if result.document_date:
        update["created"] = result.document_date
    if custom_values:
        by_field = {
            entry.get("field"): entry.get("value")
            for entry in (document.get("custom_fields") or [])
            if isinstance(entry, dict)
        }
        for entry in custom_values:
            by_field[entry["field"]] = entry["value"]
        update["custom_fields"] = [{"field": fid, "value": val} for fid, val in by_field.items()]
    return update


def show_suggestion(document: dict, result: AnalysisResult, ctx: ProcessingContext, quiet: bool = False):
    """Zeigt Vorschlag als Rich-Table an."""
    tag_names = _build_id_name_map(ctx.tags)
    corr_names = _build_id_name_map(ctx.correspondents)
    type_names = _build_id_name_map(ctx.doc_types)

    current_tags = [tag_names.get(t, str(t)) for t in (document.get("tags") or [])]
    current_corr = corr_names.get(document.get("correspondent"), "Keiner")
    current_type = type_names.get(document.get("document_type"), "Keiner")

    def _diff_style(old: str, new: str) -> tuple[str, str]:
        """Return styled strings: dim if unchanged, colored if changed."""
        if old.lower().strip() == new.lower().strip():
            return f"[dim]{old}[/dim]", f"[dim]{new}[/dim] [green]=[/green]"
        return f"[red]{old}[/red]", f"[bold green]{new}[/bold green]"

    table = Table(title=f"Dokument #{document.get('id')}", show_header=True, width=80)
    table.add_column("Feld", style="cyan", width=16)
    table.add_column("Aktuell", width=28)
    table.add_column("Vorschlag", width=32)

    rows = [
        ("Titel", str(document.get("title") or ""), result.title or ""),
        ("Tags", ", ".join(current_tags) or "Keine", ", ".join(result.tags) or "Keine"),
        ("Korrespondent", current_corr, result.correspondent or "Keiner"),
        ("Dokumenttyp", current_type, result.document_type or "Keiner"),
        ("Datum", str(document.get("created") or "")[:10], result.document_date or ""),
    ]
    for label, old, new in rows:
        table.add_row(label, *_diff_style(old, new))
    table.add_row("Sprache", "", result.language or "-")
    for name, value in _iter_custom_field_values(result.custom_fields):
        table.add_row(f"CF: {name}", "", str(value))

    if not quiet:
        console.print(table)


# ---------------------------------------------------------------------------
# Document processing
# ---------------------------------------------------------------------------

def process_document(
    doc_id: int,
    ctx: ProcessingContext,
    dry_run: bool = True,
    custom_prompt: str | None = None,
    options: AnalysisOptions | None = None,
    quiet: bool = False,
) -> bool:
    """Analysiert ein Dokument und schreibt das Ergebnis zurueck. True = aktualisiert.

    Raises AnalysisFailed when the analyzer reports an error.
    """
    t0 = time.perf_counter()
    document = ctx.paperless.get_document(doc_id)
    options = options or AnalysisOptions()
    outcome = ctx.analyzer.analyze(
        document.get("content") or "",
        _name_list(ctx.tags),
        _name_list(ctx.correspondents),
        _name_list(ctx.doc_types),
        document_id=doc_id,
        custom_prompt=custom_prompt,
        options=options,
    )
    if outcome.error:
        raise AnalysisFailed(f"Analyse Dok #{doc_id} fehlgeschlagen: {outcome.error}", doc_id=doc_id)

    result = outcome.document
    show_suggestion(document, result, ctx, quiet=quiet)
    if dry_run:
        log.info(f"  [dim]Dry-Run: Dok #{doc_id} nicht geschrieben[/dim]")
        return False

    flags = resolve_flags(options, ctx.settings)
    resolved = resolve_ids(ctx, result, flags, quiet=quiet)
    custom_values = map_custom_fields(ctx, result.custom_fields)
    update = build_update(document, result, resolved, custom_values)
    if not update:
        log.info(f"  Dok #{doc_id}: keine Aenderungen")
        return False
    ctx.paperless.update_document(doc_id, update)
    elapsed_ms = int((time.perf_counter() - t0) * 1000)
    log.info(
        f"[green]Dok #{doc_id} aktualisiert[/green] ({', '.join(sorted(update))})",
        extra={"doc_id": doc_id, "action": "update", "status": "ok", "duration_ms": elapsed_ms},
    )
    return True


def batch_process(ctx: ProcessingContext, dry_run: bool, mode: str = "untagged", limit: int = 0,
                  workers: int = 1) -> dict:
    """Mehrere Dokumente mit Filter verarbeiten."""
    mode_labels = {"untagged": "Ohne Tags", "all": "Alle"}
    log.info(f"[bold]BATCH START[/bold] - Filter: {mode_labels.get(mode, mode)}, Limit: {limit or 'alle'}")

    log.info("Lade Dokumente...")
    documents = ctx.paperless.get_documents()
    log.info(f"  {len(documents)} Dokumente geladen")

    if mode == "untagged":
        documents = [d for d in documents if not d.get("tags")]
        log.info(f"  {len(documents)} ohne Tags")

    if limit > 0 and len(documents) > limit:
        documents = documents[:limit]

    if not documents:
        log.info("[yellow]Keine Dokumente gefunden.[/yellow]")
        return {"total": 0, "applied": 0, "errors": 0}

    log.info(f"  Verarbeite {len(documents)} Dokumente")
    batch_start = time.perf_counter()
    applied = 0
    errors = 0

    if workers <= 1:
        for i, doc in enumerate(documents, 1):
            log.info(f"[bold]--- {i}/{len(documents)} --- Dokument #{doc['id']}[/bold]")
            try:
                if process_document(doc["id"], ctx, dry_run):
                    applied += 1
            except Exception as e:
                errors += 1
                log.error(
                    f"Fehler bei #{doc['id']}: {e}",
                    extra={"doc_id": doc["id"], "action": "process", "status": "error"},
                )
    else:
        log.info(f"[bold]PARALLEL[/bold] Starte {workers} Agent-Worker")
        aborted = False
        pool = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {
                pool.submit(process_document, doc["id"], ctx.copy_master_data(), dry_run, None, None, True): doc["id"]
                for doc in documents
            }
            for future in as_completed(futures):
                doc_id = futures[future]
                try:
                    if future.result():
                        applied += 1
                except Exception as e:
                    errors += 1
                    log.error(
                        f"Fehler bei #{doc_id}: {e}",
                        extra={"doc_id": doc_id, "action": "process", "status": "error"},
                    )
        except KeyboardInterrupt:
            aborted = True
            log.warning("Batch-Verarbeitung durch Benutzer abgebrochen")
            pool.shutdown(wait=False, cancel_futures=True)
            raise
        finally:
            if not aborted:
                pool.shutdown(wait=True, cancel_futures=False)

    batch_elapsed = time.perf_counter() - batch_start
    log.info(f"[bold]BATCH FERTIG[/bold] - {applied}/{len(documents)} aktualisiert, "
             f"{errors} Fehler, {batch_elapsed:.1f}s gesamt")
    return {"total": len(documents), "applied": applied, "errors": errors}
