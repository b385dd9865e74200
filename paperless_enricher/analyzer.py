"""Document analysis entry point: prompt -> backend -> normalize -> enforce."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import requests

from .config import AnalyzerSettings, log
from .exceptions import BackendUnavailable, EnricherError, MalformedModelOutput
from .models import AnalysisOptions, AnalysisOutcome, AnalysisRequest, AnalysisResult
from .normalizer import coerce_result, parse_model_output
from .prompt_log import PromptLog
from .prompts import PromptAssembler
from .providers import BaseProvider, create_provider
from .restrictions import enforce_restrictions
from .thumbnails import ThumbnailCache
from .utils import _name_list

if TYPE_CHECKING:
    from .client import PaperlessClient

NO_METADATA_WARNING = (
    "Keine Tags und kein Korrespondent in der Antwort fuer Dokument {doc_id}. "
    "Prompt pruefen oder ein staerkeres Modell verwenden."
)


def _degraded(error: str, truncated: bool = False) -> AnalysisOutcome:
    return AnalysisOutcome(document=AnalysisResult.degraded(), metrics=None, truncated=truncated, error=error)


class DocumentAnalyzer:
    """Analysiert Dokumente mit dem konfigurierten LLM-Backend.

    ``analyze`` never raises: every failure comes back as ``AnalysisOutcome.error``
    next to the degraded ``{tags: [], correspondent: None}`` document.
    """

    def __init__(
        self,
        settings: AnalyzerSettings,
        provider: BaseProvider | None = None,
        paperless: PaperlessClient | None = None,
        thumbnails: ThumbnailCache | None = None,
        prompt_log: PromptLog | None = None,
    ):
        self.settings = settings
        self._provider = provider
        if thumbnails is None and paperless is not None:
            thumbnails = ThumbnailCache(settings.thumbnail_cache_dir, paperless)
        self.thumbnails = thumbnails
        self.prompt_log = prompt_log if prompt_log is not None else PromptLog(settings.prompt_log_file)

    @property
    def provider(self) -> BaseProvider:
        """Backend client, built on first use so misconfiguration surfaces per call."""
        if self._provider is None:
            self._provider = create_provider(self.settings)
        return self._provider

    def _assembler(self) -> PromptAssembler:
        return PromptAssembler(self.settings, self.provider.tokenizer_model)

    def analyze(
        self,
        content: str,
        existing_tags: list | tuple = (),
        existing_correspondents: list | tuple = (),
        existing_document_types: list | tuple = (),
        document_id: int | str | None = None,
        custom_prompt: str | None = None,
        options: AnalysisOptions | dict | None = None,
    ) -> AnalysisOutcome:
        if not isinstance(options, AnalysisOptions):
            options = AnalysisOptions.from_dict(options)
        doc_label = document_id if document_id is not None else "-"
        truncated = False
        t0 = time.perf_counter()
        try:
            request = AnalysisRequest(
                content=content or "",
                existing_tags=tuple(_name_list(existing_tags or [])),
                existing_correspondents=tuple(_name_list(existing_correspondents or [])),
                existing_document_types=tuple(_name_list(existing_document_types or [])),
                document_id=str(document_id) if document_id is not None else None,
                custom_prompt=custom_prompt,
                options=options,
            )
            provider = self.provider
            if self.thumbnails is not None:
                self.thumbnails.ensure(document_id)

            bundle = self._assembler().build(request)
            truncated = bundle.truncated
            response = provider.send_chat(bundle.system_prompt, bundle.user_prompt)

            try:
                result = coerce_result(parse_model_output(response.raw_text))
            except MalformedModelOutput as exc:
                log.error(f"[red]Dok {doc_label}:[/red] Modellantwort nicht auswertbar: {exc}")
                return _degraded(str(exc), truncated)

            result = enforce_restrictions(result, request, self.settings)
            if result.is_empty:
                log.warning(NO_METADATA_WARNING.format(doc_id=doc_label))
            self.prompt_log.append(bundle.system_prompt + "\n\n" + bundle.user_prompt, result.to_dict())

            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            log.info(
                f"[green]Dok {doc_label} analysiert[/green] ({provider.name}, {elapsed_ms} ms, "
                f"{len(result.tags)} Tags{', gekuerzt' if truncated else ''})",
                extra={"doc_id": document_id, "action": "analyze", "provider": provider.name,
                       "duration_ms": elapsed_ms},
            )
            return AnalysisOutcome(document=result, metrics=response.usage, truncated=truncated)
        except (EnricherError, requests.exceptions.RequestException) as exc:
            log.error(
                f"[red]Dok {doc_label}: Analyse fehlgeschlagen[/red] - {exc}",
                extra={"doc_id": document_id, "action": "analyze", "status": "error"},
            )
            return _degraded(str(exc), truncated)

    def analyze_playground(self, content: str, prompt: str) -> AnalysisOutcome:
        """Free-form prompt experiment: no restriction sections, no enforcement."""
        truncated = False
        try:
            provider = self.provider
            bundle = self._assembler().build_playground(content or "", prompt or "")
            truncated = bundle.truncated
            response = provider.send_chat(bundle.system_prompt, bundle.user_prompt)
            try:
                result = coerce_result(parse_model_output(response.raw_text))
            except MalformedModelOutput as exc:
                log.error(f"[red]Playground:[/red] Modellantwort nicht auswertbar: {exc}")
                return _degraded(str(exc), truncated)
            if result.is_empty:
                log.warning(NO_METADATA_WARNING.format(doc_id="playground"))
            return AnalysisOutcome(document=result, metrics=response.usage, truncated=truncated)
        except (EnricherError, requests.exceptions.RequestException) as exc:
            log.error(f"[red]Playground fehlgeschlagen[/red] - {exc}")
            return _degraded(str(exc), truncated)

    def generate_text(self, prompt: str) -> str:
        """Plain text completion; errors propagate to the caller."""
        return self.provider.generate_text(prompt)

    def check_status(self) -> dict:
        try:
            provider = self.provider
        except BackendUnavailable as exc:
            log.error(f"Backend nicht konfiguriert: {exc}")
            return {"status": "error", "error": str(exc)}
        return provider.check_status()
