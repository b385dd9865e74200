"""Shared fixtures: settings without network, a scripted backend."""

import pytest

from paperless_enricher.config import AIProvider, AnalyzerSettings
from paperless_enricher.models import ChatResponse, UsageMetrics
from paperless_enricher.providers import BaseProvider


class FakeProvider(BaseProvider):
    """Returns queued raw texts and records every call."""

    name = "fake"

    def __init__(self, settings, replies=None, usage=None, error=None):
        super().__init__(settings)
        self.replies = list(replies or [])
        self.usage = usage or UsageMetrics(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        self.error = error
        self.calls = []

    @property
    def tokenizer_model(self):
        return None

    def send_chat(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return ChatResponse(raw_text=self.replies.pop(0), usage=self.usage)

    def generate_text(self, prompt):
        self.calls.append(("", prompt))
        return self.replies.pop(0)

    def check_status(self):
        return {"status": "ok", "model": "fake"}


@pytest.fixture
def settings(tmp_path):
    return AnalyzerSettings(
        provider=AIProvider.OPENAI,
        openai_api_key="sk-test",
        openai_model="test-model",
        token_limit=8000,
        response_tokens=1000,
        thumbnail_cache_dir=str(tmp_path / "images"),
        prompt_log_file=str(tmp_path / "logs" / "prompt.txt"),
    )


@pytest.fixture
def fake_provider_factory(settings):
    def _make(*replies, **kwargs):
        return FakeProvider(settings, replies=replies, **kwargs)
    return _make
