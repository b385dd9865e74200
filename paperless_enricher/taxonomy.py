"""Default taxonomy (document types + tags) and its import into Paperless."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field

from .config import log
from .constants import DEFAULT_DOCUMENT_TYPES, DEFAULT_TAGS
from .exceptions import ConfigError, PaperlessAPIError
from .utils import _normalize_text


@dataclass
class Taxonomy:
    document_types: list[str] = field(default_factory=lambda: list(DEFAULT_DOCUMENT_TYPES))
    tags: list[str] = field(default_factory=lambda: list(DEFAULT_TAGS))

    @classmethod
    def load(cls, path: str | None = None) -> Taxonomy:
        """Default catalogue, or ``{"document_types": [...], "tags": [...]}`` from a JSON file."""
        if not path:
            return cls()
        if not os.path.exists(path):
            raise ConfigError(f"Taxonomie-Datei nicht gefunden: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Taxonomie-Datei ist kein gueltiges JSON: {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Taxonomie-Datei muss ein JSON-Objekt sein: {path}")

        def _names(key: str, default: list[str]) -> list[str]:
            if key not in data:
                return list(default)
            names = [_normalize_text(str(n)) for n in data.get(key) or []]
            return list(dict.fromkeys(n for n in names if n))

        return cls(
            document_types=_names("document_types", DEFAULT_DOCUMENT_TYPES),
            tags=_names("tags", DEFAULT_TAGS),
        )


@dataclass
class ImportStats:
    created: int = 0
    existing: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"created": self.created, "existing": self.existing, "failed": self.failed}


def _import_names(names: list[str], create, label: str, delay: float) -> ImportStats:
    stats = ImportStats()
    for i, name in enumerate(names):
        try:
            created = create(name)
            stats.created += 1
            log.info(f"  [green]+[/green] {label} erstellt: {name} (ID: {created.get('id')})")
        except PaperlessAPIError as exc:
            # Paperless antwortet mit 400 bei doppeltem Namen
            if exc.status_code == 400:
                stats.existing += 1
                log.info(f"  [dim]- {label} existiert bereits: {name}[/dim]")
            else:
                stats.failed += 1
                log.error(f"  [red]x[/red] {label} '{name}' fehlgeschlagen: {exc} {exc.detail}")
        if delay > 0 and i < len(names) - 1:
            time.sleep(delay)
    return stats


def import_taxonomy(paperless, taxonomy: Taxonomy, delay: float = 0.1) -> dict:
    """Create document types and tags with matching algorithm "auto"; existing names are skipped."""
    log.info(f"[bold]=== {len(taxonomy.document_types)} Dokumenttypen ===[/bold]")
    type_stats = _import_names(taxonomy.document_types, paperless.create_document_type, "Dokumenttyp", delay)
    log.info(f"[bold]=== {len(taxonomy.tags)} Tags ===[/bold]")
    tag_stats = _import_names(taxonomy.tags, paperless.create_tag, "Tag", delay)
    log.info(
        f"[bold]Import fertig[/bold] - Typen: {type_stats.created} neu, {type_stats.existing} vorhanden, "
        f"{type_stats.failed} Fehler | Tags: {tag_stats.created} neu, {tag_stats.existing} vorhanden, "
        f"{tag_stats.failed} Fehler"
    )
    return {"document_types": type_stats.to_dict(), "tags": tag_stats.to_dict()}
