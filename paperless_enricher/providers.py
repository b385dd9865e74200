"""LLM backends behind one ``send_chat`` interface."""

from __future__ import annotations

import time
from urllib.parse import quote

import requests

from .config import AIProvider, AnalyzerSettings, log
from .constants import TEXT_GENERATION_SYSTEM_PROMPT
from .exceptions import (
    BackendUnavailable,
    InvalidResponseShape,
    LLMError,
    LLMTimeoutError,
)
from .models import ChatResponse, UsageMetrics
from .tokens import estimate_tokens

STATUS_PING_MAX_TOKENS = 5


def _error_snippet(resp: requests.Response) -> str:
    text = (resp.text or "").strip().replace("\n", " ")
    if len(text) > 300:
        text = text[:300] + "..."
    return text


class BaseProvider:
    """Common HTTP plumbing. Subclasses build payloads and read responses."""

    name = "base"

    def __init__(self, settings: AnalyzerSettings):
        self.settings = settings

    @property
    def model(self) -> str:
        return self.settings.model_name

    @property
    def tokenizer_model(self) -> str | None:
        """Model hint for token estimation; None means heuristic only."""
        return self.model or None

    @property
    def read_timeout(self) -> int:
        return max(5, int(self.settings.llm_timeout))

    def _post(self, url: str, headers: dict | None, payload: dict, read_timeout: int | None = None) -> dict:
        connect_timeout = max(3, int(self.settings.connect_timeout))
        timeout = (connect_timeout, read_timeout or self.read_timeout)
        t0 = time.perf_counter()
        try:
            resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
        except requests.exceptions.Timeout as exc:
            raise LLMTimeoutError(f"{self.name}: Timeout nach {timeout[1]}s ({url})") from exc
        except requests.exceptions.ConnectionError as exc:
            raise BackendUnavailable(f"{self.name}: Server nicht erreichbar ({url}): {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise LLMError(f"{self.name}: Anfrage fehlgeschlagen: {exc}") from exc
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        log.debug(
            f"{self.name}: HTTP {resp.status_code} in {elapsed_ms} ms",
            extra={"provider": self.name, "duration_ms": elapsed_ms, "status": resp.status_code},
        )
        if resp.status_code >= 500:
            raise BackendUnavailable(f"{self.name}: HTTP {resp.status_code} | body: {_error_snippet(resp)}")
        if not resp.ok:
            raise LLMError(f"{self.name}: HTTP {resp.status_code} {resp.reason} | body: {_error_snippet(resp)}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise InvalidResponseShape(f"{self.name}: Antwort ist kein JSON: {_error_snippet(resp)}") from exc
        if not isinstance(data, dict):
            raise InvalidResponseShape(f"{self.name}: unerwartetes Antwortformat ({type(data).__name__})")
        return data

    def send_chat(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        raise NotImplementedError

    def generate_text(self, prompt: str) -> str:
        raise NotImplementedError

    def check_status(self) -> dict:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Chat-completion backends (OpenAI, Azure OpenAI, OpenAI-compatible)
# ---------------------------------------------------------------------------

class ChatCompletionProvider(BaseProvider):
    """Sends a ``messages`` array with separate system and user roles."""

    def _endpoint(self) -> str:
        raise NotImplementedError

    def _headers(self) -> dict:
        raise NotImplementedError

    def _payload(self, messages: list[dict], temperature: float, max_tokens: int | None = None) -> dict:
        payload: dict = {"messages": messages, "temperature": temperature}
        if self.model:
            payload["model"] = self.model
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return payload

    def _complete(self, messages: list[dict], temperature: float, max_tokens: int | None = None) -> tuple[str, dict]:
        data = self._post(self._endpoint(), self._headers(), self._payload(messages, temperature, max_tokens))
        choices = data.get("choices")
        first = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else {}
        message = first.get("message") if isinstance(first.get("message"), dict) else {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            keys = ", ".join(sorted(data.keys())[:8])
            raise InvalidResponseShape(f"{self.name}: Antwort ohne message.content (keys: {keys})")
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        return content, usage

    def send_chat(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        content, usage = self._complete(messages, self.settings.temperature)
        metrics = UsageMetrics.from_usage(usage)
        log.debug(f"{self.name}: {metrics.total_tokens} Tokens verbraucht")
        return ChatResponse(raw_text=content, usage=metrics)

    def generate_text(self, prompt: str) -> str:
        content, _ = self._complete([{"role": "user", "content": prompt}], 0.7)
        return content

    def check_status(self) -> dict:
        try:
            self._complete([{"role": "user", "content": "Ping"}], 0.7, max_tokens=STATUS_PING_MAX_TOKENS)
        except LLMError as exc:
            log.error(f"{self.name}: Statuspruefung fehlgeschlagen: {exc}")
            return {"status": "error"}
        return {"status": "ok", "model": self.model}


class OpenAIProvider(ChatCompletionProvider):
    name = "openai"

    def __init__(self, settings: AnalyzerSettings):
        super().__init__(settings)
        if not settings.openai_api_key:
            raise BackendUnavailable("OpenAI-Client nicht initialisiert - OPENAI_API_KEY fehlt")

    def _endpoint(self) -> str:
        return f"{self.settings.openai_base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.settings.openai_api_key}"}


class CustomProvider(ChatCompletionProvider):
    """Any OpenAI-compatible endpoint (LiteLLM, vLLM, LM Studio, ...)."""

    name = "custom"

    def __init__(self, settings: AnalyzerSettings):
        super().__init__(settings)
        if not settings.custom_base_url:
            raise BackendUnavailable("Custom-Client nicht initialisiert - CUSTOM_BASE_URL fehlt")
        if not settings.custom_model:
            raise BackendUnavailable("Custom-Client nicht initialisiert - CUSTOM_MODEL fehlt")

    def _endpoint(self) -> str:
        return f"{self.settings.custom_base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> dict:
        key = self.settings.custom_api_key
        return {"Authorization": f"Bearer {key}"} if key else {}


class AzureOpenAIProvider(ChatCompletionProvider):
    name = "azure"

    def __init__(self, settings: AnalyzerSettings):
        super().__init__(settings)
        missing = [
            label for label, value in (
                ("AZURE_ENDPOINT", settings.azure_endpoint),
                ("AZURE_API_KEY", settings.azure_api_key),
                ("AZURE_DEPLOYMENT_NAME", settings.azure_deployment),
            ) if not value
        ]
        if missing:
            raise BackendUnavailable(f"Azure-Client nicht initialisiert - fehlt: {', '.join(missing)}")

    @property
    def tokenizer_model(self) -> str | None:
        # Deployment-Namen sind frei waehlbar, nur AZURE_MODEL ist ein echter Modellname
        return self.settings.azure_model or None

    def _endpoint(self) -> str:
        endpoint = self.settings.azure_endpoint.rstrip("/")
        deployment = quote(self.settings.azure_deployment, safe="")
        return (
            f"{endpoint}/openai/deployments/{deployment}/chat/completions"
            f"?api-version={self.settings.azure_api_version}"
        )

    def _headers(self) -> dict:
        return {"api-key": self.settings.azure_api_key}

    def _payload(self, messages: list[dict], temperature: float, max_tokens: int | None = None) -> dict:
        # Deployment steckt in der URL
        payload: dict = {"messages": messages, "temperature": temperature}
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return payload


# ---------------------------------------------------------------------------
# Single-prompt backend (Ollama /api/generate)
# ---------------------------------------------------------------------------

class OllamaProvider(BaseProvider):
    """Sends ``system`` and ``prompt`` separately; no usage numbers come back."""

    name = "ollama"

    def __init__(self, settings: AnalyzerSettings):
        super().__init__(settings)
        if not settings.ollama_url:
            raise BackendUnavailable("Ollama-Client nicht initialisiert - OLLAMA_API_URL fehlt")
        if not settings.ollama_model:
            raise BackendUnavailable("Ollama-Client nicht initialisiert - OLLAMA_MODEL fehlt")
        self.api_url = settings.ollama_url.rstrip("/")

    @property
    def tokenizer_model(self) -> str | None:
        return None

    @property
    def read_timeout(self) -> int:
        return max(5, int(self.settings.ollama_timeout))

    def num_ctx(self, prompt_tokens: int, expected_response_tokens: int) -> int:
        return min(prompt_tokens + expected_response_tokens, self.settings.token_limit)

    def send_chat(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        sampling = self.settings.ollama_sampling
        prompt_tokens = estimate_tokens(system_prompt + user_prompt)
        num_ctx = self.num_ctx(prompt_tokens, self.settings.response_tokens)
        log.debug(f"ollama: Prompt {prompt_tokens} Tokens, num_ctx {num_ctx}")
        payload = {
            "model": self.model,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": sampling.temperature,
                "top_p": sampling.top_p,
                "top_k": sampling.top_k,
                "repeat_penalty": sampling.repeat_penalty,
                "num_predict": sampling.num_predict,
                "num_ctx": num_ctx,
            },
        }
        data = self._post(f"{self.api_url}/api/generate", None, payload)
        response = data.get("response")
        if not response:
            raise InvalidResponseShape("ollama: Antwort ohne 'response'-Feld")
        if not isinstance(response, (str, dict)):
            raise InvalidResponseShape(f"ollama: unerwarteter Antworttyp {type(response).__name__}")
        return ChatResponse(raw_text=response, usage=UsageMetrics())

    def generate_text(self, prompt: str) -> str:
        num_ctx = self.num_ctx(estimate_tokens(prompt), 512)
        payload = {
            "model": self.model,
            "system": TEXT_GENERATION_SYSTEM_PROMPT,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.7, "top_p": 0.9, "num_predict": 1024, "num_ctx": num_ctx},
        }
        data = self._post(f"{self.api_url}/api/generate", None, payload)
        response = data.get("response")
        if not isinstance(response, str) or not response:
            raise InvalidResponseShape("ollama: Antwort ohne 'response'-Feld")
        return response

    def check_status(self) -> dict:
        try:
            resp = requests.get(f"{self.api_url}/api/ps", timeout=(max(3, self.settings.connect_timeout), 10))
        except requests.exceptions.RequestException as exc:
            log.error(f"ollama: Statuspruefung fehlgeschlagen: {exc}")
            return {"status": "error"}
        if resp.status_code != 200:
            log.error(f"ollama: Statuspruefung HTTP {resp.status_code}")
            return {"status": "error"}
        try:
            data = resp.json()
        except ValueError:
            return {"status": "error"}
        models = data.get("models") if isinstance(data, dict) else None
        model_name = None
        if isinstance(models, list) and models and isinstance(models[0], dict):
            model_name = models[0].get("name")
        return {"status": "ok", "model": model_name}


_PROVIDERS: dict[AIProvider, type[BaseProvider]] = {
    AIProvider.OPENAI: OpenAIProvider,
    AIProvider.OLLAMA: OllamaProvider,
    AIProvider.AZURE: AzureOpenAIProvider,
    AIProvider.CUSTOM: CustomProvider,
}


def create_provider(settings: AnalyzerSettings) -> BaseProvider:
    """Instantiate the backend selected by ``settings.provider``."""
    return _PROVIDERS[settings.provider](settings)
