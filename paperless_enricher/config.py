"""Configuration, logging setup, and shared state."""

from __future__ import annotations

import json as _json
import logging
import logging.handlers
import os
import re
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from .constants import DEFAULT_SYSTEM_PROMPT
from .exceptions import ConfigError
from .models import DEFAULT_CUSTOM_FIELD_HINT, CustomFieldSpec

load_dotenv()
console = Console()
log = logging.getLogger("enricher")

# --- Version ---
__version__ = "1.0.0"

# --- File Paths ---
LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs")).strip()
LOG_FILE = os.path.join(LOG_DIR, "enricher.log")
LOG_FILE_JSON = os.path.join(LOG_DIR, "enricher.jsonl")

_TRUTHY = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"[yellow]Config:[/yellow] {name}='{raw}' ist keine Zahl, nutze {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"[yellow]Config:[/yellow] {name}='{raw}' ist keine Zahl, nutze {default}")
        return default


# --- Structured JSON Logging ---
_RICH_MARKUP_RE = re.compile(r"\[/?[a-z_]+(?:\s[^\]]+)?\]")


class _JsonLineFormatter(logging.Formatter):
    """Formats log records as single-line JSON (JSONL) for monitoring tools."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        # Strip Rich markup tags like [bold], [cyan], [/cyan] etc.
        msg = _RICH_MARKUP_RE.sub("", msg)
        entry: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": msg,
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        for key in ("doc_id", "action", "provider", "duration_ms", "status"):
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return _json.dumps(entry, ensure_ascii=False, default=str)


_LOG_LEVEL_MAP = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR}


def configure_logging(log_dir: str = LOG_DIR, level: str | None = None) -> None:
    """Install Rich console + rotating file handlers on the root logger."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, os.path.basename(LOG_FILE)),
        maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s  %(message)s", datefmt="%H:%M:%S"))

    handlers: list[logging.Handler] = [
        RichHandler(console=console, show_path=False, markup=True, rich_tracebacks=True),
        file_handler,
    ]
    if _env_bool("STRUCTURED_LOG", True):
        json_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, os.path.basename(LOG_FILE_JSON)),
            maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8",
        )
        json_handler.setFormatter(_JsonLineFormatter())
        handlers.append(json_handler)

    logging.basicConfig(
        level=_LOG_LEVEL_MAP.get(level_name, logging.INFO),
        format="%(asctime)s  %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )


# --- Shared write lock (creating tags/correspondents/types in Paperless) ---
WRITE_LOCK = threading.Lock()

# --- Defaults ---
DEFAULT_TOKEN_LIMIT = 128000
DEFAULT_RESPONSE_TOKENS = 1000
DEFAULT_CONTENT_MAX_LENGTH = 4000
DEFAULT_EXTERNAL_DATA_MAX_TOKENS = 500
DEFAULT_LLM_TIMEOUT = 120
DEFAULT_OLLAMA_TIMEOUT = 1800


class AIProvider(str, Enum):
    """Supported LLM backends."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    AZURE = "azure"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> AIProvider:
        key = (value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ConfigError(f"Unbekannter AI_PROVIDER '{value}' (erlaubt: {allowed})")


def parse_custom_fields(raw: str | None) -> tuple[CustomFieldSpec, ...]:
    """Parse CUSTOM_FIELDS JSON: {"custom_fields": [{"value": "Invoice Number", ...}]}."""
    if not raw or not raw.strip():
        return ()
    try:
        data = _json.loads(raw)
    except _json.JSONDecodeError as exc:
        log.error(f"CUSTOM_FIELDS ist kein gueltiges JSON: {exc}")
        return ()
    entries = data.get("custom_fields") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        log.error("CUSTOM_FIELDS: Schluessel 'custom_fields' fehlt oder ist keine Liste")
        return ()
    specs = []
    for entry in entries:
        if isinstance(entry, str):
            name, hint = entry, ""
        elif isinstance(entry, dict):
            name = entry.get("value") or entry.get("name") or ""
            hint = entry.get("value_hint") or entry.get("hint") or ""
        else:
            continue
        name = str(name).strip()
        if name:
            specs.append(CustomFieldSpec(name=name, value_hint=str(hint).strip() or DEFAULT_CUSTOM_FIELD_HINT))
    return tuple(specs)


@dataclass
class OllamaSampling:
    """Sampling parameters sent in the Ollama ``options`` object."""
    temperature: float = 0.5
    top_p: float = 0.9
    top_k: int = 10
    repeat_penalty: float = 1.1
    num_predict: int = 512


@dataclass
class AnalyzerSettings:
    """Everything the analysis core reads; passed explicitly instead of module globals."""
    provider: AIProvider = AIProvider.OPENAI
    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    # Ollama
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    ollama_sampling: OllamaSampling = field(default_factory=OllamaSampling)
    # Azure OpenAI
    azure_endpoint: str = ""
    azure_api_key: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2023-05-15"
    azure_model: str = ""
    # Generic OpenAI-compatible endpoint
    custom_base_url: str = ""
    custom_api_key: str = ""
    custom_model: str = ""
    # Budgets
    token_limit: int = DEFAULT_TOKEN_LIMIT
    response_tokens: int = DEFAULT_RESPONSE_TOKENS
    content_max_length: int = DEFAULT_CONTENT_MAX_LENGTH
    external_data_max_tokens: int = DEFAULT_EXTERNAL_DATA_MAX_TOKENS
    temperature: float = 0.3
    # Timeouts (seconds)
    llm_timeout: int = DEFAULT_LLM_TIMEOUT
    ollama_timeout: int = DEFAULT_OLLAMA_TIMEOUT
    connect_timeout: int = 8
    # Restrictions / prompt content
    restrict_to_existing_tags: bool = False
    restrict_to_existing_correspondents: bool = False
    restrict_to_existing_document_types: bool = False
    use_existing_data: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    custom_fields: tuple[CustomFieldSpec, ...] = ()
    use_prompt_tags: bool = False
    prompt_tags: tuple[str, ...] = ()
    # Side artifacts
    thumbnail_cache_dir: str = os.path.join("public", "images")
    prompt_log_file: str = os.path.join("logs", "prompt.txt")

    @classmethod
    def from_env(cls) -> AnalyzerSettings:
        sampling = OllamaSampling(
            temperature=_env_float("OLLAMA_TEMPERATURE", 0.5),
            top_p=_env_float("OLLAMA_TOP_P", 0.9),
            top_k=_env_int("OLLAMA_TOP_K", 10),
            repeat_penalty=_env_float("OLLAMA_REPEAT_PENALTY", 1.1),
            num_predict=_env_int("OLLAMA_NUM_PREDICT", 512),
        )
        prompt_tags = tuple(
            t.strip() for t in (os.getenv("PROMPT_TAGS") or "").split(",") if t.strip()
        )
        return cls(
            provider=AIProvider.parse(os.getenv("AI_PROVIDER", "openai")),
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip(),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip(),
            ollama_url=os.getenv("OLLAMA_API_URL", "http://localhost:11434").strip(),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3.2").strip(),
            ollama_sampling=sampling,
            azure_endpoint=os.getenv("AZURE_ENDPOINT", "").strip(),
            azure_api_key=os.getenv("AZURE_API_KEY", "").strip(),
            azure_deployment=os.getenv("AZURE_DEPLOYMENT_NAME", "").strip(),
            azure_api_version=os.getenv("AZURE_API_VERSION", "2023-05-15").strip(),
            azure_model=os.getenv("AZURE_MODEL", "").strip(),
            custom_base_url=os.getenv("CUSTOM_BASE_URL", "").strip(),
            custom_api_key=os.getenv("CUSTOM_API_KEY", "").strip(),
            custom_model=os.getenv("CUSTOM_MODEL", "").strip(),
            token_limit=_env_int("TOKEN_LIMIT", DEFAULT_TOKEN_LIMIT),
            response_tokens=_env_int("RESPONSE_TOKENS", DEFAULT_RESPONSE_TOKENS),
            content_max_length=_env_int("CONTENT_MAX_LENGTH", DEFAULT_CONTENT_MAX_LENGTH),
            external_data_max_tokens=_env_int("EXTERNAL_DATA_MAX_TOKENS", DEFAULT_EXTERNAL_DATA_MAX_TOKENS),
            temperature=_env_float("LLM_TEMPERATURE", 0.3),
            llm_timeout=_env_int("LLM_TIMEOUT", DEFAULT_LLM_TIMEOUT),
            ollama_timeout=_env_int("OLLAMA_TIMEOUT", DEFAULT_OLLAMA_TIMEOUT),
            connect_timeout=_env_int("LLM_CONNECT_TIMEOUT", 8),
            restrict_to_existing_tags=_env_bool("RESTRICT_TO_EXISTING_TAGS"),
            restrict_to_existing_correspondents=_env_bool("RESTRICT_TO_EXISTING_CORRESPONDENTS"),
            restrict_to_existing_document_types=_env_bool("RESTRICT_TO_EXISTING_DOCUMENT_TYPES"),
            use_existing_data=_env_bool("USE_EXISTING_DATA"),
            system_prompt=(os.getenv("SYSTEM_PROMPT") or "").strip() or DEFAULT_SYSTEM_PROMPT,
            custom_fields=parse_custom_fields(os.getenv("CUSTOM_FIELDS")),
            use_prompt_tags=_env_bool("USE_PROMPT_TAGS"),
            prompt_tags=prompt_tags,
            thumbnail_cache_dir=os.getenv("THUMBNAIL_CACHE_DIR", os.path.join("public", "images")).strip(),
            prompt_log_file=os.getenv("PROMPT_LOG_FILE", os.path.join("logs", "prompt.txt")).strip(),
        )

    @property
    def model_name(self) -> str:
        """Model identifier of the active provider (used for logging and token estimation)."""
        if self.provider is AIProvider.OLLAMA:
            return self.ollama_model
        if self.provider is AIProvider.AZURE:
            return self.azure_model or self.azure_deployment
        if self.provider is AIProvider.CUSTOM:
            return self.custom_model
        return self.openai_model


@dataclass
class PaperlessSettings:
    url: str = ""
    token: str = ""
    agent_workers: int = 1

    @classmethod
    def from_env(cls) -> PaperlessSettings:
        return cls(
            url=os.getenv("PAPERLESS_API_URL", "").strip(),
            token=os.getenv("PAPERLESS_API_TOKEN", "").strip(),
            agent_workers=max(1, _env_int("AGENT_WORKERS", 1)),
        )


def _validate_config(settings: AnalyzerSettings, paperless: PaperlessSettings | None = None) -> bool:
    """Validate configuration at startup and warn about potential issues."""
    warnings = []
    if paperless is not None:
        if not paperless.url:
            warnings.append("PAPERLESS_API_URL nicht gesetzt - Verbindung wird fehlschlagen")
        elif not paperless.url.startswith(("http://", "https://")):
            warnings.append(f"PAPERLESS_API_URL='{paperless.url}' hat kein http(s):// Prefix")
        if not paperless.token:
            warnings.append("PAPERLESS_API_TOKEN nicht gesetzt - Authentifizierung wird fehlschlagen")
    if settings.provider is AIProvider.OPENAI and not settings.openai_api_key:
        warnings.append("OPENAI_API_KEY nicht gesetzt")
    if settings.provider is AIProvider.AZURE and not (settings.azure_endpoint and settings.azure_api_key):
        warnings.append("AZURE_ENDPOINT/AZURE_API_KEY nicht gesetzt")
    if settings.provider is AIProvider.CUSTOM and not settings.custom_base_url:
        warnings.append("CUSTOM_BASE_URL nicht gesetzt")
    if settings.response_tokens >= settings.token_limit:
        warnings.append(
            f"RESPONSE_TOKENS={settings.response_tokens} >= TOKEN_LIMIT={settings.token_limit} - "
            "kein Platz fuer Dokumentinhalt"
        )
    if settings.temperature < 0.0 or settings.temperature > 2.0:
        warnings.append(f"LLM_TEMPERATURE={settings.temperature} ausserhalb sinnvollem Bereich (0.0-2.0)")
    if settings.llm_timeout < 10:
        warnings.append(f"LLM_TIMEOUT={settings.llm_timeout}s sehr kurz - Timeouts wahrscheinlich")
    if settings.content_max_length and settings.content_max_length < 500:
        warnings.append(f"CONTENT_MAX_LENGTH={settings.content_max_length} sehr klein - kaum Dokumentinhalt")
    for w in warnings:
        log.warning(f"[yellow]Config:[/yellow] {w}")
    return len(warnings) == 0
