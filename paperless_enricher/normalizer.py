"""Parsing and normalization of raw model output."""

from __future__ import annotations

import json
import re
from typing import Any

from .config import log
from .exceptions import MalformedModelOutput
from .models import RESULT_STRING_FIELDS, AnalysisResult
from .utils import _safe_iso_date

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)
_OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_OBJ_RE = re.compile(r",\s*}")
_TRAILING_COMMA_ARR_RE = re.compile(r",\s*]")
_PROPERTY_NAME_RE = re.compile(r"(['\"])?([a-zA-Z0-9_]+)(['\"])?\s*:")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def sanitize_json(text: str) -> str:
    """Remove trailing commas and force bare property names into quoted form."""
    text = _TRAILING_COMMA_OBJ_RE.sub("}", text)
    text = _TRAILING_COMMA_ARR_RE.sub("]", text)
    return _PROPERTY_NAME_RE.sub(r'"\2":', text)


def _loads_object(text: str) -> dict | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_model_output(raw: Any) -> dict:
    """Decode model output into a dict; escalates fence strip -> span extraction -> sanitizing."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedModelOutput("Leere Antwort vom Modell")

    cleaned = strip_code_fences(raw)
    data = _loads_object(cleaned)
    if data is not None:
        return data

    match = _OBJECT_SPAN_RE.search(cleaned)
    if not match:
        log.debug(f"Kein JSON-Objekt in Modellantwort: {cleaned[:120]!r}")
        raise MalformedModelOutput("Modellantwort enthaelt kein JSON-Objekt")
    span = match.group(0)
    data = _loads_object(span)
    if data is not None:
        return data

    log.debug("JSON-Parsing fehlgeschlagen, versuche Bereinigung")
    data = _loads_object(sanitize_json(span))
    if data is not None:
        return data
    raise MalformedModelOutput("Modellantwort ist auch nach Bereinigung kein gueltiges JSON")


def _string_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def coerce_result(data: dict) -> AnalysisResult:
    """Force parsed output into the fixed result shape."""
    raw_tags = data.get("tags")
    tags = [t for t in raw_tags if isinstance(t, str)] if isinstance(raw_tags, list) else []
    fields = {name: _string_or_none(data.get(name)) for name in RESULT_STRING_FIELDS}
    if fields["document_date"]:
        fields["document_date"] = _safe_iso_date(fields["document_date"]) or None
    custom_fields = data.get("custom_fields")
    return AnalysisResult(
        tags=tags,
        custom_fields=custom_fields if isinstance(custom_fields, dict) else None,
        **fields,
    )


def normalize_response(raw: Any) -> AnalysisResult:
    """Like parse + coerce, but degrades to the empty result instead of raising."""
    try:
        return coerce_result(parse_model_output(raw))
    except MalformedModelOutput as exc:
        log.error(f"Modellantwort nicht auswertbar: {exc}")
        return AnalysisResult.degraded()
