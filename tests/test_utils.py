"""Tests for paperless_enricher.utils."""

import pytest

from paperless_enricher.utils import (
    _build_id_name_map,
    _build_name_id_map,
    _name_list,
    _normalize_text,
    _safe_iso_date,
)


# ---------------------------------------------------------------------------
# _build_id_name_map / _build_name_id_map
# ---------------------------------------------------------------------------

class TestBuildIdNameMap:
    def test_basic(self):
        items = [{"id": 1, "name": "Alpha"}, {"id": 2, "name": "Beta"}]
        assert _build_id_name_map(items) == {1: "Alpha", 2: "Beta"}

    def test_missing_id_skipped(self):
        assert _build_id_name_map([{"name": "Alpha"}]) == {}


class TestBuildNameIdMap:
    def test_lowercased(self):
        assert _build_name_id_map([{"id": 1, "name": "Strom  Rechnung"}]) == {"strom rechnung": 1}

    def test_first_wins(self):
        items = [{"id": 1, "name": "Bank"}, {"id": 2, "name": "BANK"}]
        assert _build_name_id_map(items) == {"bank": 1}


# ---------------------------------------------------------------------------
# _name_list
# ---------------------------------------------------------------------------

class TestNameList:
    def test_objects_and_strings(self):
        assert _name_list([{"id": 1, "name": "A"}, "B", {"id": 2}, "", None]) == ["A", "B"]

    def test_order_kept(self):
        assert _name_list(["Zeta", "Alpha"]) == ["Zeta", "Alpha"]


# ---------------------------------------------------------------------------
# _normalize_text / _safe_iso_date
# ---------------------------------------------------------------------------

class TestNormalizeText:
    def test_whitespace(self):
        assert _normalize_text("  Acme \n GmbH ") == "Acme GmbH"

    def test_none(self):
        assert _normalize_text(None) == ""


class TestSafeIsoDate:
    @pytest.mark.parametrize("raw, expected", [
        ("2024-01-31", "2024-01-31"),
        ("2024-01-31T08:00:00Z", "2024-01-31"),
        ("31.01.2024", ""),
        ("2024-13-01", ""),
        ("", ""),
        (None, ""),
    ])
    def test_values(self, raw, expected):
        assert _safe_iso_date(raw) == expected
