"""Tests for paperless_enricher.providers (HTTP patched, no network)."""

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
import requests

from paperless_enricher.config import AIProvider
from paperless_enricher.exceptions import (
    BackendUnavailable,
    InvalidResponseShape,
    LLMError,
    LLMTimeoutError,
)
from paperless_enricher.providers import (
    AzureOpenAIProvider,
    CustomProvider,
    OllamaProvider,
    OpenAIProvider,
    create_provider,
)


def _response(status=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.reason = "OK" if status < 400 else "Error"
    resp.text = text
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


def _chat_body(content='{"tags": []}', usage=None):
    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return body


@pytest.fixture
def ollama_settings(settings):
    return replace(settings, provider=AIProvider.OLLAMA, ollama_url="http://ollama:11434/", ollama_model="llama3.2")


# ---------------------------------------------------------------------------
# Factory / construction
# ---------------------------------------------------------------------------

class TestCreateProvider:
    @pytest.mark.parametrize("kind, cls, extra", [
        (AIProvider.OPENAI, OpenAIProvider, {}),
        (AIProvider.OLLAMA, OllamaProvider, {}),
        (AIProvider.AZURE, AzureOpenAIProvider,
         {"azure_endpoint": "https://x.openai.azure.com", "azure_api_key": "k", "azure_deployment": "gpt4"}),
        (AIProvider.CUSTOM, CustomProvider, {"custom_base_url": "http://llm:4000/v1", "custom_model": "qwen"}),
    ])
    def test_selects_by_enum(self, settings, kind, cls, extra):
        provider = create_provider(replace(settings, provider=kind, **extra))
        assert isinstance(provider, cls)

    def test_openai_without_key(self, settings):
        with pytest.raises(BackendUnavailable):
            OpenAIProvider(replace(settings, openai_api_key=""))

    def test_azure_missing_fields(self, settings):
        with pytest.raises(BackendUnavailable, match="AZURE_DEPLOYMENT_NAME"):
            AzureOpenAIProvider(replace(settings, azure_endpoint="https://x", azure_api_key="k"))

    def test_custom_without_url(self, settings):
        with pytest.raises(BackendUnavailable):
            CustomProvider(replace(settings, custom_model="m"))

    def test_ollama_without_url(self, settings):
        with pytest.raises(BackendUnavailable):
            OllamaProvider(replace(settings, ollama_url=""))


# ---------------------------------------------------------------------------
# Chat-completion variant
# ---------------------------------------------------------------------------

class TestChatCompletion:
    def test_request_shape_and_usage(self, settings):
        provider = OpenAIProvider(settings)
        usage = {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150}
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=_chat_body(usage=usage))) as post:
            reply = provider.send_chat("SYSTEM", "USER")

        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"] == {"Authorization": "Bearer sk-test"}
        assert kwargs["json"]["model"] == "test-model"
        assert kwargs["json"]["temperature"] == 0.3
        assert kwargs["json"]["messages"] == [
            {"role": "system", "content": "SYSTEM"},
            {"role": "user", "content": "USER"},
        ]
        assert reply.raw_text == '{"tags": []}'
        assert reply.usage.prompt_tokens == 120
        assert reply.usage.completion_tokens == 30
        assert reply.usage.total_tokens == 150

    def test_missing_usage_is_zero(self, settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(json_data=_chat_body())):
            reply = OpenAIProvider(settings).send_chat("s", "u")
        assert reply.usage.total_tokens == 0

    def test_azure_url_and_header(self, settings):
        settings = replace(settings, provider=AIProvider.AZURE, azure_endpoint="https://res.openai.azure.com/",
                           azure_api_key="azkey", azure_deployment="gpt4o", azure_api_version="2024-02-01")
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=_chat_body())) as post:
            AzureOpenAIProvider(settings).send_chat("s", "u")
        assert post.call_args.args[0] == (
            "https://res.openai.azure.com/openai/deployments/gpt4o/chat/completions?api-version=2024-02-01"
        )
        assert post.call_args.kwargs["headers"] == {"api-key": "azkey"}
        assert "model" not in post.call_args.kwargs["json"]

    def test_custom_without_key_sends_no_auth(self, settings):
        settings = replace(settings, provider=AIProvider.CUSTOM, custom_base_url="http://litellm:4000/v1/",
                           custom_model="qwen2.5")
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=_chat_body())) as post:
            CustomProvider(settings).send_chat("s", "u")
        assert post.call_args.args[0] == "http://litellm:4000/v1/chat/completions"
        assert post.call_args.kwargs["headers"] == {}
        assert post.call_args.kwargs["json"]["model"] == "qwen2.5"

    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{"message": {}}]},
                                      {"choices": [{"message": {"content": ""}}]}])
    def test_missing_content(self, settings, body):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(json_data=body)):
            with pytest.raises(InvalidResponseShape):
                OpenAIProvider(settings).send_chat("s", "u")

    def test_non_json_body(self, settings):
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=ValueError("no json"), text="<html>")):
            with pytest.raises(InvalidResponseShape):
                OpenAIProvider(settings).send_chat("s", "u")

    def test_server_error_is_unavailable(self, settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(503, text="overloaded")):
            with pytest.raises(BackendUnavailable):
                OpenAIProvider(settings).send_chat("s", "u")

    def test_client_error(self, settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(401, text="bad key")):
            with pytest.raises(LLMError) as exc_info:
                OpenAIProvider(settings).send_chat("s", "u")
        assert not isinstance(exc_info.value, BackendUnavailable)
        assert "401" in str(exc_info.value)

    def test_timeout(self, settings):
        with patch("paperless_enricher.providers.requests.post", side_effect=requests.exceptions.ReadTimeout()):
            with pytest.raises(LLMTimeoutError):
                OpenAIProvider(settings).send_chat("s", "u")

    def test_connection_error(self, settings):
        with patch("paperless_enricher.providers.requests.post",
                   side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(BackendUnavailable):
                OpenAIProvider(settings).send_chat("s", "u")

    def test_no_retry(self, settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(500)) as post:
            with pytest.raises(BackendUnavailable):
                OpenAIProvider(settings).send_chat("s", "u")
        assert post.call_count == 1

    def test_timeout_tuple(self, settings):
        settings = replace(settings, llm_timeout=90, connect_timeout=4)
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=_chat_body())) as post:
            OpenAIProvider(settings).send_chat("s", "u")
        assert post.call_args.kwargs["timeout"] == (4, 90)

    def test_generate_text(self, settings):
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data=_chat_body("Hallo"))) as post:
            assert OpenAIProvider(settings).generate_text("Sag hallo") == "Hallo"
        assert post.call_args.kwargs["json"]["messages"] == [{"role": "user", "content": "Sag hallo"}]

    def test_check_status(self, settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(json_data=_chat_body("pong"))) as post:
            assert OpenAIProvider(settings).check_status() == {"status": "ok", "model": "test-model"}
        assert post.call_args.kwargs["json"]["max_tokens"] == 5
        assert post.call_args.kwargs["json"]["messages"] == [{"role": "user", "content": "Ping"}]
        with patch("paperless_enricher.providers.requests.post", return_value=_response(500)):
            assert OpenAIProvider(settings).check_status() == {"status": "error"}


# ---------------------------------------------------------------------------
# Ollama variant
# ---------------------------------------------------------------------------

class TestOllama:
    def test_request_shape(self, ollama_settings):
        provider = OllamaProvider(ollama_settings)
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data={"response": '{"tags": ["A"]}'})) as post:
            reply = provider.send_chat("S" * 400, "U" * 400)

        assert post.call_args.args[0] == "http://ollama:11434/api/generate"
        body = post.call_args.kwargs["json"]
        assert body["model"] == "llama3.2"
        assert body["system"] == "S" * 400
        assert body["prompt"] == "U" * 400
        assert body["stream"] is False
        assert body["format"] == "json"
        assert body["options"] == {
            "temperature": 0.5,
            "top_p": 0.9,
            "top_k": 10,
            "repeat_penalty": 1.1,
            "num_predict": 512,
            "num_ctx": 200 + 1000,
        }
        assert post.call_args.kwargs["timeout"][1] == 1800
        assert reply.raw_text == '{"tags": ["A"]}'
        assert reply.usage.total_tokens == 0

    def test_num_ctx_capped(self, ollama_settings):
        provider = OllamaProvider(replace(ollama_settings, token_limit=2048))
        assert provider.num_ctx(5000, 1000) == 2048
        assert provider.num_ctx(500, 1000) == 1500

    def test_object_response(self, ollama_settings):
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data={"response": {"tags": ["A"]}})):
            reply = OllamaProvider(ollama_settings).send_chat("s", "u")
        assert reply.raw_text == {"tags": ["A"]}

    def test_missing_response(self, ollama_settings):
        with patch("paperless_enricher.providers.requests.post", return_value=_response(json_data={"done": True})):
            with pytest.raises(InvalidResponseShape):
                OllamaProvider(ollama_settings).send_chat("s", "u")

    def test_tokenizer_model_is_heuristic(self, ollama_settings):
        assert OllamaProvider(ollama_settings).tokenizer_model is None

    def test_generate_text(self, ollama_settings):
        with patch("paperless_enricher.providers.requests.post",
                   return_value=_response(json_data={"response": "Antwort"})) as post:
            assert OllamaProvider(ollama_settings).generate_text("Frage") == "Antwort"
        body = post.call_args.kwargs["json"]
        assert "format" not in body
        assert body["options"]["num_predict"] == 1024

    def test_check_status(self, ollama_settings):
        with patch("paperless_enricher.providers.requests.get",
                   return_value=_response(json_data={"models": [{"name": "llama3.2:latest"}]})) as get:
            assert OllamaProvider(ollama_settings).check_status() == {"status": "ok", "model": "llama3.2:latest"}
        assert get.call_args.args[0] == "http://ollama:11434/api/ps"

    def test_check_status_unreachable(self, ollama_settings):
        with patch("paperless_enricher.providers.requests.get",
                   side_effect=requests.exceptions.ConnectionError("down")):
            assert OllamaProvider(ollama_settings).check_status() == {"status": "error"}
