"""Tests for paperless_enricher.config."""

import json
import logging
from dataclasses import replace

import pytest

from paperless_enricher.config import (
    AIProvider,
    AnalyzerSettings,
    PaperlessSettings,
    _JsonLineFormatter,
    _validate_config,
    parse_custom_fields,
)
from paperless_enricher.constants import DEFAULT_SYSTEM_PROMPT
from paperless_enricher.exceptions import ConfigError
from paperless_enricher.models import DEFAULT_CUSTOM_FIELD_HINT, CustomFieldSpec

_ENV_KEYS = (
    "AI_PROVIDER", "OPENAI_API_KEY", "OPENAI_MODEL", "TOKEN_LIMIT", "RESPONSE_TOKENS", "CONTENT_MAX_LENGTH",
    "RESTRICT_TO_EXISTING_TAGS", "RESTRICT_TO_EXISTING_CORRESPONDENTS", "RESTRICT_TO_EXISTING_DOCUMENT_TYPES",
    "USE_EXISTING_DATA", "SYSTEM_PROMPT", "CUSTOM_FIELDS", "USE_PROMPT_TAGS", "PROMPT_TAGS", "OLLAMA_TOP_K",
    "LLM_TEMPERATURE", "AGENT_WORKERS", "PAPERLESS_API_URL", "PAPERLESS_API_TOKEN",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# AIProvider
# ---------------------------------------------------------------------------

class TestAIProvider:
    @pytest.mark.parametrize("raw, expected", [
        ("openai", AIProvider.OPENAI),
        (" Ollama ", AIProvider.OLLAMA),
        ("AZURE", AIProvider.AZURE),
        ("custom", AIProvider.CUSTOM),
    ])
    def test_parse(self, raw, expected):
        assert AIProvider.parse(raw) is expected

    def test_unknown(self):
        with pytest.raises(ConfigError, match="anthropic"):
            AIProvider.parse("anthropic")


# ---------------------------------------------------------------------------
# CUSTOM_FIELDS
# ---------------------------------------------------------------------------

class TestParseCustomFields:
    def test_wrapped_list(self):
        raw = json.dumps({"custom_fields": [{"value": "Invoice Number"}, {"value": "Total", "value_hint": "Betrag"}]})
        assert parse_custom_fields(raw) == (
            CustomFieldSpec("Invoice Number", DEFAULT_CUSTOM_FIELD_HINT),
            CustomFieldSpec("Total", "Betrag"),
        )

    def test_plain_strings(self):
        assert parse_custom_fields('["Total", " "]') == (CustomFieldSpec("Total"),)

    @pytest.mark.parametrize("raw", [None, "", "{not json", '{"other": 1}'])
    def test_invalid_yields_nothing(self, raw):
        assert parse_custom_fields(raw) == ()


# ---------------------------------------------------------------------------
# from_env
# ---------------------------------------------------------------------------

class TestFromEnv:
    def test_defaults(self, clean_env):
        settings = AnalyzerSettings.from_env()
        assert settings.provider is AIProvider.OPENAI
        assert settings.token_limit == 128000
        assert settings.response_tokens == 1000
        assert settings.content_max_length == 4000
        assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert settings.restrict_to_existing_tags is False
        assert settings.custom_fields == ()

    def test_overrides(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "ollama")
        clean_env.setenv("TOKEN_LIMIT", "32000")
        clean_env.setenv("RESTRICT_TO_EXISTING_TAGS", "yes")
        clean_env.setenv("RESTRICT_TO_EXISTING_DOCUMENT_TYPES", "0")
        clean_env.setenv("PROMPT_TAGS", "Steuer, Versicherung,,")
        clean_env.setenv("OLLAMA_TOP_K", "40")
        clean_env.setenv("CUSTOM_FIELDS", '{"custom_fields": [{"value": "Total"}]}')
        settings = AnalyzerSettings.from_env()
        assert settings.provider is AIProvider.OLLAMA
        assert settings.model_name == "llama3.2"
        assert settings.token_limit == 32000
        assert settings.restrict_to_existing_tags is True
        assert settings.restrict_to_existing_document_types is False
        assert settings.prompt_tags == ("Steuer", "Versicherung")
        assert settings.ollama_sampling.top_k == 40
        assert settings.custom_fields == (CustomFieldSpec("Total"),)

    def test_bad_number_falls_back(self, clean_env):
        clean_env.setenv("TOKEN_LIMIT", "viele")
        assert AnalyzerSettings.from_env().token_limit == 128000

    def test_bad_provider(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "gemini")
        with pytest.raises(ConfigError):
            AnalyzerSettings.from_env()

    def test_paperless(self, clean_env):
        clean_env.setenv("PAPERLESS_API_URL", " http://paperless:8000 ")
        clean_env.setenv("PAPERLESS_API_TOKEN", "abc")
        clean_env.setenv("AGENT_WORKERS", "0")
        paperless = PaperlessSettings.from_env()
        assert paperless == PaperlessSettings(url="http://paperless:8000", token="abc", agent_workers=1)


class TestValidateConfig:
    def test_valid(self, settings):
        assert _validate_config(settings, PaperlessSettings("http://p:8000", "tok")) is True

    def test_warnings(self, settings):
        settings = replace(settings, response_tokens=settings.token_limit)
        assert _validate_config(settings, PaperlessSettings("p:8000", "")) is False


# ---------------------------------------------------------------------------
# JSON log lines
# ---------------------------------------------------------------------------

class TestJsonLineFormatter:
    def test_markup_stripped_and_extras(self):
        record = logging.LogRecord("enricher", logging.INFO, __file__, 1,
                                   "[green]Dok 7 analysiert[/green]", None, None)
        record.doc_id = 7
        record.action = "analyze"
        entry = json.loads(_JsonLineFormatter().format(record))
        assert entry["msg"] == "Dok 7 analysiert"
        assert entry["level"] == "INFO"
        assert entry["doc_id"] == 7
        assert entry["action"] == "analyze"
        assert "provider" not in entry
