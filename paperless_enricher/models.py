"""Data models and dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .analyzer import DocumentAnalyzer
    from .client import PaperlessClient
    from .config import AnalyzerSettings

DEFAULT_CUSTOM_FIELD_HINT = "Fill in the value based on your analysis"

RESULT_STRING_FIELDS = ("title", "correspondent", "document_type", "document_date", "language")


def _flag(data: dict, camel: str, snake: str) -> bool | None:
    value = data.get(camel, data.get(snake))
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class AnalysisOptions:
    """Per-call switches. ``None`` means: use the configured default."""
    restrict_to_existing_tags: bool | None = None
    restrict_to_existing_correspondents: bool | None = None
    restrict_to_existing_document_types: bool | None = None
    external_api_data: Any = None

    @classmethod
    def from_dict(cls, data: dict | None) -> AnalysisOptions:
        """Accepts the camelCase keys of the calling pipeline (snake_case works too)."""
        data = data or {}
        return cls(
            restrict_to_existing_tags=_flag(data, "restrictToExistingTags", "restrict_to_existing_tags"),
            restrict_to_existing_correspondents=_flag(
                data, "restrictToExistingCorrespondents", "restrict_to_existing_correspondents",
            ),
            restrict_to_existing_document_types=_flag(
                data, "restrictToExistingDocumentTypes", "restrict_to_existing_document_types",
            ),
            external_api_data=data.get("externalApiData", data.get("external_api_data")),
        )


@dataclass(frozen=True)
class RestrictionFlags:
    """Effective restriction switches after falling back to settings."""
    tags: bool = False
    correspondents: bool = False
    document_types: bool = False

    @property
    def any(self) -> bool:
        return self.tags or self.correspondents or self.document_types


@dataclass(frozen=True)
class CustomFieldSpec:
    name: str
    value_hint: str = DEFAULT_CUSTOM_FIELD_HINT


@dataclass(frozen=True)
class AnalysisRequest:
    """Immutable input of one analysis call."""
    content: str
    existing_tags: tuple[str, ...] = ()
    existing_correspondents: tuple[str, ...] = ()
    existing_document_types: tuple[str, ...] = ()
    document_id: str | None = None
    custom_prompt: str | None = None
    options: AnalysisOptions = field(default_factory=AnalysisOptions)


@dataclass
class PromptBundle:
    system_prompt: str
    user_prompt: str
    prompt_tokens: int = 0
    available_tokens: int = 0
    max_tokens: int = 0
    truncated: bool = False


@dataclass
class AnalysisResult:
    """Normalized model output. ``tags`` is always a list."""
    title: str | None = None
    correspondent: str | None = None
    tags: list[str] = field(default_factory=list)
    document_type: str | None = None
    document_date: str | None = None
    language: str | None = None
    custom_fields: dict | None = None

    @classmethod
    def degraded(cls) -> AnalysisResult:
        return cls()

    @property
    def is_empty(self) -> bool:
        """True when the model delivered neither tags nor a correspondent."""
        return not self.tags and not self.correspondent

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "correspondent": self.correspondent,
            "tags": list(self.tags),
            "document_type": self.document_type,
            "document_date": self.document_date,
            "language": self.language,
            "custom_fields": self.custom_fields,
        }


@dataclass
class UsageMetrics:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_usage(cls, usage: dict | None) -> UsageMetrics:
        """Map an OpenAI-style ``usage`` object; missing numbers count as zero."""
        usage = usage or {}

        def _num(key: str) -> int:
            try:
                return int(usage.get(key) or 0)
            except (TypeError, ValueError):
                return 0

        return cls(
            prompt_tokens=_num("prompt_tokens"),
            completion_tokens=_num("completion_tokens"),
            total_tokens=_num("total_tokens"),
        )

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ChatResponse:
    """What a provider hands back: raw model text plus usage."""
    raw_text: Any
    usage: UsageMetrics = field(default_factory=UsageMetrics)


@dataclass
class AnalysisOutcome:
    document: AnalysisResult
    metrics: UsageMetrics | None = None
    truncated: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        out = {
            "document": self.document.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics is not None else None,
            "truncated": self.truncated,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class ProcessingContext:
    """Shared context for document processing (one batch run)."""
    paperless: PaperlessClient
    analyzer: DocumentAnalyzer
    settings: AnalyzerSettings
    tags: list
    correspondents: list
    doc_types: list
    custom_fields: list = field(default_factory=list)

    def copy_master_data(self) -> ProcessingContext:
        """Return a copy with independent master-data lists (thread-safe)."""
        return ProcessingContext(
            paperless=self.paperless,
            analyzer=self.analyzer,
            settings=self.settings,
            tags=list(self.tags),
            correspondents=list(self.correspondents),
            doc_types=list(self.doc_types),
            custom_fields=list(self.custom_fields),
        )
