"""Utility functions: normalization, lookups, dates."""

from __future__ import annotations

from datetime import datetime


# ---------------------------------------------------------------------------
# Lookup helpers (avoid O(n) linear scans)
# ---------------------------------------------------------------------------

def _build_id_name_map(items: list) -> dict[int, str]:
    """Build {id: name} lookup dict from a list of Paperless-NGX objects."""
    return {int(item["id"]): str(item.get("name", "")) for item in items if item.get("id") is not None}


def _build_name_id_map(items: list) -> dict[str, int]:
    """Build {lowercased name: id}; first entry wins on case-insensitive duplicates."""
    mapping: dict[str, int] = {}
    for item in items:
        name = _normalize_text(str(item.get("name") or "")).lower()
        if name and item.get("id") is not None and name not in mapping:
            mapping[name] = int(item["id"])
    return mapping


def _name_list(items: list) -> list[str]:
    """Names of Paperless-NGX objects in API order, blanks dropped."""
    names = []
    for item in items:
        name = item if isinstance(item, str) else (item or {}).get("name")
        name = _normalize_text(str(name or ""))
        if name:
            names.append(name)
    return names


# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------

def _normalize_text(value: str) -> str:
    return " ".join((value or "").strip().split())


def _safe_iso_date(value: str) -> str:
    text = str(value or "").strip()
    if len(text) >= 10:
        candidate = text[:10]
        try:
            datetime.strptime(candidate, "%Y-%m-%d")
            return candidate
        except ValueError:
            return ""
    return ""
