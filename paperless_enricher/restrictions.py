"""Restriction flags and post-hoc allow-list enforcement."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from .config import log
from .models import AnalysisOptions, AnalysisRequest, AnalysisResult, RestrictionFlags

if TYPE_CHECKING:
    from .config import AnalyzerSettings


def resolve_flags(options: AnalysisOptions | None, settings: AnalyzerSettings | None = None) -> RestrictionFlags:
    """Per-call flags win; unset flags fall back to the configured defaults."""
    options = options or AnalysisOptions()

    def _pick(value: bool | None, default: bool) -> bool:
        return bool(default) if value is None else bool(value)

    return RestrictionFlags(
        tags=_pick(options.restrict_to_existing_tags,
                   settings.restrict_to_existing_tags if settings else False),
        correspondents=_pick(options.restrict_to_existing_correspondents,
                             settings.restrict_to_existing_correspondents if settings else False),
        document_types=_pick(options.restrict_to_existing_document_types,
                             settings.restrict_to_existing_document_types if settings else False),
    )


def enforce_restrictions(
    result: AnalysisResult,
    request: AnalysisRequest,
    settings: AnalyzerSettings | None = None,
) -> AnalysisResult:
    """Drop tags / document type outside the allow-lists. Pure and idempotent.

    Correspondents are only restricted via the prompt; a free-text correspondent
    passes through unchanged.
    """
    flags = resolve_flags(request.options, settings)
    enforced = replace(result, tags=list(result.tags))

    if flags.tags and request.existing_tags:
        allowed = set(request.existing_tags)
        kept = [tag for tag in enforced.tags if tag in allowed]
        dropped = [tag for tag in enforced.tags if tag not in allowed]
        if dropped:
            log.warning(
                f"[yellow]Restriktion:[/yellow] {len(dropped)} Tag(s) nicht in Liste verworfen: "
                f"{', '.join(dropped)} (behalten: {', '.join(kept) or '-'})"
            )
        enforced.tags = kept

    if flags.document_types and request.existing_document_types:
        if enforced.document_type and enforced.document_type not in set(request.existing_document_types):
            log.warning(
                f"[yellow]Restriktion:[/yellow] Dokumenttyp '{enforced.document_type}' nicht in Liste, "
                "wird nicht gesetzt"
            )
            enforced.document_type = None

    return enforced
