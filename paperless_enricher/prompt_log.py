"""Append-only audit log of prompt/response pairs."""

from __future__ import annotations

import json
import os
import threading

from .config import log
from .constants import PROMPT_LOG_SEPARATOR


class PromptLog:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, prompt: str, response: dict) -> None:
        entry = (
            PROMPT_LOG_SEPARATOR
            + prompt
            + "\n\n"
            + json.dumps(response, ensure_ascii=False)
            + "\n\n"
            + PROMPT_LOG_SEPARATOR
            + "\n\n"
        )
        try:
            with self._lock:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(entry)
        except OSError as exc:
            log.warning(f"Prompt-Log nicht schreibbar ({self.path}): {exc}")
