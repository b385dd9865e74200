"""Prompt assembly: system prompt sections, custom fields, token budget."""

from __future__ import annotations

import json
from typing import Any

from .config import AnalyzerSettings, log
from .constants import (
    CORRESPONDENT_RESTRICTION_BLOCK,
    DOCUMENT_TYPE_RESTRICTION_BLOCK,
    EXISTING_DATA_BLOCK,
    EXTERNAL_DATA_HEADER,
    JSON_STRUCTURE_BLOCK,
    MUST_HAVE_PROMPT,
    PLACEHOLDER_CUSTOM_FIELDS,
    PLACEHOLDER_RESTRICTED_CORRESPONDENTS,
    PLACEHOLDER_RESTRICTED_DOCUMENT_TYPES,
    PLACEHOLDER_RESTRICTED_TAGS,
    PLAYGROUND_MUST_HAVE_PROMPT,
    PROMPT_TAGS_HEADER,
    RESTRICTIONS_END,
    RESTRICTIONS_START,
    TAG_RESTRICTION_BLOCK,
)
from .exceptions import BudgetExceeded, ExternalDataValidationFailure
from .models import AnalysisRequest, CustomFieldSpec, PromptBundle, RestrictionFlags
from .restrictions import resolve_flags
from .tokens import estimate_tokens, truncate_content, truncate_to_token_limit

BUDGET_EXCEEDED_MESSAGE = "Token limit exceeded: prompt too large for available token limit"


def render_custom_fields(specs: tuple[CustomFieldSpec, ...] | list[CustomFieldSpec]) -> str:
    """Render the ``"custom_fields": {...}`` template block the model has to fill in."""
    template = {
        str(index): {"field_name": entry.name, "value": entry.value_hint}
        for index, entry in enumerate(specs)
    }
    body = json.dumps(template, indent=2, ensure_ascii=False)
    return '"custom_fields": ' + "\n".join("    " + line for line in body.splitlines())


def render_external_data(data: Any, max_tokens: int, model_hint: str | None = None) -> str | None:
    """Serialize external context and cap it at ``max_tokens``.

    Raises ExternalDataValidationFailure when the data cannot be serialized or sized.
    """
    if data is None or data == "":
        return None
    if isinstance(data, str):
        text = data
    else:
        try:
            text = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ExternalDataValidationFailure(f"Externe Daten nicht serialisierbar: {exc}") from exc
    if max_tokens <= 0:
        raise ExternalDataValidationFailure(f"Ungueltiges Token-Limit fuer externe Daten: {max_tokens}")
    data_tokens = estimate_tokens(text, model_hint)
    if data_tokens <= max_tokens:
        log.debug(f"Externe Daten validiert: {data_tokens} Tokens")
        return text
    log.warning(f"Externe Daten ({data_tokens} Tokens) ueber Limit ({max_tokens}), werden gekuerzt")
    truncated = truncate_to_token_limit(text, max_tokens, model_hint)
    if not truncated:
        raise ExternalDataValidationFailure("Externe Daten konnten nicht gekuerzt werden")
    return truncated


class PromptAssembler:
    """Builds system + user prompt for one analysis in a single pass."""

    def __init__(self, settings: AnalyzerSettings, model_hint: str | None = None):
        self.settings = settings
        self.model_hint = model_hint

    # --- Abschnitte ---
    def _base_instructions(self, request: AnalysisRequest, flags: RestrictionFlags, custom_fields: str) -> str:
        def _restricted(active: bool, names: tuple[str, ...]) -> str:
            return ", ".join(names) if active and names else ""

        text = self.settings.system_prompt or ""
        text = text.replace(PLACEHOLDER_CUSTOM_FIELDS, custom_fields)
        text = text.replace(PLACEHOLDER_RESTRICTED_TAGS, _restricted(flags.tags, request.existing_tags))
        text = text.replace(
            PLACEHOLDER_RESTRICTED_CORRESPONDENTS,
            _restricted(flags.correspondents, request.existing_correspondents),
        )
        text = text.replace(
            PLACEHOLDER_RESTRICTED_DOCUMENT_TYPES,
            _restricted(flags.document_types, request.existing_document_types),
        )
        return text

    @staticmethod
    def _restriction_block(request: AnalysisRequest, flags: RestrictionFlags) -> str:
        parts = [RESTRICTIONS_START]
        if flags.tags and request.existing_tags:
            parts.append(TAG_RESTRICTION_BLOCK.format(names=", ".join(request.existing_tags)))
        if flags.correspondents and request.existing_correspondents:
            parts.append(CORRESPONDENT_RESTRICTION_BLOCK.format(names=", ".join(request.existing_correspondents)))
        if flags.document_types and request.existing_document_types:
            parts.append(DOCUMENT_TYPE_RESTRICTION_BLOCK.format(names=", ".join(request.existing_document_types)))
        parts.append(RESTRICTIONS_END)
        return "".join(parts)

    @staticmethod
    def _existing_data_block(request: AnalysisRequest) -> str:
        return EXISTING_DATA_BLOCK.format(
            tags=", ".join(request.existing_tags),
            correspondents=", ".join(request.existing_correspondents),
            document_types=", ".join(request.existing_document_types),
        )

    def _external_block(self, data: Any, document_id: str | None) -> str:
        try:
            rendered = render_external_data(data, self.settings.external_data_max_tokens, self.model_hint)
        except ExternalDataValidationFailure as exc:
            log.warning(f"[yellow]Dok {document_id}:[/yellow] Externe Daten verworfen: {exc}")
            return ""
        if not rendered:
            return ""
        return EXTERNAL_DATA_HEADER + rendered

    def system_prompt(self, request: AnalysisRequest) -> str:
        flags = resolve_flags(request.options, self.settings)
        custom_fields = render_custom_fields(self.settings.custom_fields)
        must_have = MUST_HAVE_PROMPT.replace(PLACEHOLDER_CUSTOM_FIELDS, custom_fields)

        if request.custom_prompt and request.custom_prompt.strip():
            log.debug(f"Dok {request.document_id}: eigener Prompt aktiv")
            return request.custom_prompt + "\n\n" + must_have

        log.debug(
            f"Restriktionen Dok {request.document_id}: tags={flags.tags}, "
            f"correspondents={flags.correspondents}, doc_types={flags.document_types}"
        )
        sections = [
            self._base_instructions(request, flags, custom_fields) + "\n\n",
            JSON_STRUCTURE_BLOCK,
        ]
        if flags.any:
            sections.append(self._restriction_block(request, flags))
        elif self.settings.use_existing_data:
            sections.append(self._existing_data_block(request))
        sections.append(must_have)
        sections.append(self._external_block(request.options.external_api_data, request.document_id))
        if self.settings.use_prompt_tags and self.settings.prompt_tags and not flags.any:
            sections.append(PROMPT_TAGS_HEADER + ", ".join(self.settings.prompt_tags))
        return "".join(sections)

    # --- Budget ---
    def _bundle(self, system_prompt: str, content: str) -> PromptBundle:
        prompt_tokens = estimate_tokens(system_prompt, self.model_hint)
        max_tokens = self.settings.token_limit
        available = max_tokens - (prompt_tokens + self.settings.response_tokens)
        if available <= 0:
            log.warning(
                f"Kein Platz fuer Inhalt: Prompt {prompt_tokens} + Antwort {self.settings.response_tokens} "
                f">= Limit {max_tokens}"
            )
            raise BudgetExceeded(BUDGET_EXCEEDED_MESSAGE, prompt_tokens=prompt_tokens, max_tokens=max_tokens)

        original = content or ""
        limited = truncate_content(original, self.settings.content_max_length)
        user_prompt = truncate_to_token_limit(limited, available, self.model_hint)
        log.debug(f"Token-Budget: Prompt {prompt_tokens}, verfuegbar {available}, Limit {max_tokens}")
        return PromptBundle(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            prompt_tokens=prompt_tokens,
            available_tokens=available,
            max_tokens=max_tokens,
            truncated=len(user_prompt) < len(original),
        )

    def build(self, request: AnalysisRequest) -> PromptBundle:
        return self._bundle(self.system_prompt(request), request.content)

    def build_playground(self, content: str, prompt: str) -> PromptBundle:
        """Free-form prompt with the short output template; no restriction sections."""
        return self._bundle((prompt or "") + PLAYGROUND_MUST_HAVE_PROMPT, content)
