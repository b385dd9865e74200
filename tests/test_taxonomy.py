"""Tests for paperless_enricher.taxonomy."""

import json
from unittest.mock import MagicMock

import pytest

from paperless_enricher.constants import DEFAULT_DOCUMENT_TYPES, DEFAULT_TAGS
from paperless_enricher.exceptions import ConfigError, PaperlessAPIError
from paperless_enricher.taxonomy import Taxonomy, import_taxonomy


class TestLoad:
    def test_default_catalogue(self):
        taxonomy = Taxonomy.load()
        assert taxonomy.document_types == list(DEFAULT_DOCUMENT_TYPES)
        assert taxonomy.tags == list(DEFAULT_TAGS)
        assert len(set(taxonomy.tags)) == len(taxonomy.tags)

    def test_file(self, tmp_path):
        path = tmp_path / "taxonomy.json"
        path.write_text(json.dumps({"document_types": ["Invoice", " Invoice ", ""], "tags": ["Steuer"]}))
        taxonomy = Taxonomy.load(str(path))
        assert taxonomy.document_types == ["Invoice"]
        assert taxonomy.tags == ["Steuer"]

    def test_missing_key_uses_default(self, tmp_path):
        path = tmp_path / "taxonomy.json"
        path.write_text(json.dumps({"tags": ["Steuer"]}))
        assert Taxonomy.load(str(path)).document_types == list(DEFAULT_DOCUMENT_TYPES)

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_invalid(self, tmp_path, content):
        path = tmp_path / "taxonomy.json"
        path.write_text(content)
        with pytest.raises(ConfigError):
            Taxonomy.load(str(path))

    def test_not_found(self, tmp_path):
        with pytest.raises(ConfigError):
            Taxonomy.load(str(tmp_path / "fehlt.json"))


class TestImport:
    def test_counts(self):
        paperless = MagicMock()
        paperless.create_document_type.side_effect = [
            {"id": 1, "name": "Invoice"},
            PaperlessAPIError("exists", status_code=400),
        ]
        paperless.create_tag.side_effect = [
            {"id": 5, "name": "Steuer"},
            PaperlessAPIError("server", status_code=500),
            PaperlessAPIError("exists", status_code=400),
        ]
        taxonomy = Taxonomy(document_types=["Invoice", "Receipt"], tags=["Steuer", "Bank", "Auto"])
        stats = import_taxonomy(paperless, taxonomy, delay=0)
        assert stats == {
            "document_types": {"created": 1, "existing": 1, "failed": 0},
            "tags": {"created": 1, "existing": 1, "failed": 1},
        }
        assert [c.args[0] for c in paperless.create_tag.call_args_list] == ["Steuer", "Bank", "Auto"]

    def test_delay_between_requests(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("paperless_enricher.taxonomy.time.sleep", sleeps.append)
        paperless = MagicMock()
        paperless.create_document_type.return_value = {"id": 1}
        paperless.create_tag.return_value = {"id": 2}
        import_taxonomy(paperless, Taxonomy(document_types=["A", "B"], tags=["C"]), delay=0.1)
        assert sleeps == [0.1]
