"""Token estimation and content truncation."""

from __future__ import annotations

import functools
import math

import tiktoken

from .config import log

CHARS_PER_TOKEN = 4


@functools.lru_cache(maxsize=16)
def _load_encoding(model_hint: str):
    """Return the tiktoken encoding for a model name, or None when unknown/unloadable."""
    try:
        return tiktoken.encoding_for_model(model_hint)
    except KeyError:
        log.debug(f"Kein Tokenizer fuer Modell '{model_hint}', nutze Schaetzung")
        return None
    except Exception as exc:
        # tiktoken laedt BPE-Dateien nach; offline schlaegt das fehl
        log.warning(f"Tokenizer fuer '{model_hint}' nicht ladbar ({exc}), nutze Schaetzung")
        return None


def _encoding_for(model_hint: str | None):
    if not model_hint:
        return None
    return _load_encoding(model_hint.strip())


def _heuristic(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_tokens(text: str | None, model_hint: str | None = None) -> int:
    """Count tokens with the model's real tokenizer, or ``ceil(len / 4)`` as fallback."""
    if not text:
        return 0
    encoding = _encoding_for(model_hint)
    if encoding is None:
        return _heuristic(text)
    try:
        return len(encoding.encode(text, disallowed_special=()))
    except Exception as exc:
        log.warning(f"Token-Zaehlung fehlgeschlagen ({exc}), nutze Schaetzung")
        return _heuristic(text)


def truncate_to_token_limit(text: str | None, max_tokens: int, model_hint: str | None = None) -> str:
    """Return the longest stable prefix of ``text`` that fits into ``max_tokens``.

    ``max_tokens <= 0`` yields ``""``; callers must treat that as an exhausted budget.
    """
    if not text or max_tokens <= 0:
        return ""
    encoding = _encoding_for(model_hint)
    if encoding is not None:
        try:
            tokens = encoding.encode(text, disallowed_special=())
            if len(tokens) <= max_tokens:
                return text
            keep = max_tokens
            truncated = encoding.decode(tokens[:keep])
            # decode() kann an Token-Grenzen anders re-encodieren, daher nachmessen
            while keep > 0 and estimate_tokens(truncated, model_hint) > max_tokens:
                keep -= 1
                truncated = encoding.decode(tokens[:keep])
            return truncated
        except Exception as exc:
            log.warning(f"Token-Kuerzung fehlgeschlagen ({exc}), kuerze nach Zeichen")
    if _heuristic(text) <= max_tokens:
        return text
    return text[: max_tokens * CHARS_PER_TOKEN]


def truncate_content(text: str | None, max_length: int) -> str:
    """Fixed character ceiling applied before prompt assembly; ``max_length <= 0`` disables it."""
    text = text or ""
    if max_length <= 0 or len(text) <= max_length:
        return text
    log.debug(f"Kuerze Inhalt von {len(text)} auf {max_length} Zeichen")
    return text[:max_length]
