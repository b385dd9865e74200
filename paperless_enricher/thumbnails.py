"""On-disk thumbnail cache keyed by document id."""

from __future__ import annotations

import contextlib
import os
import threading
from typing import TYPE_CHECKING

import requests

from .config import log
from .exceptions import PaperlessAPIError

if TYPE_CHECKING:
    from .client import PaperlessClient


class ThumbnailCache:
    """Read-through cache: a file hit skips the Paperless request."""

    def __init__(self, cache_dir: str, paperless: PaperlessClient | None = None):
        self.cache_dir = cache_dir
        self.paperless = paperless

    @staticmethod
    def cache_key(doc_id: int | str | None) -> str | None:
        """Plain decimal id, or None when the id cannot name a file inside the cache."""
        key = str(doc_id).strip() if doc_id is not None else ""
        if not key.isascii() or not key.isdigit():
            return None
        return str(int(key))

    def path_for(self, doc_id: int | str) -> str:
        key = self.cache_key(doc_id)
        if key is None:
            raise ValueError(f"Ungueltige Dokument-ID fuer Thumbnail: {doc_id!r}")
        return os.path.join(self.cache_dir, f"{key}.png")

    def ensure(self, doc_id: int | str | None) -> str | None:
        """Cache the thumbnail if missing. Failures are logged, never raised."""
        if doc_id is None or doc_id == "" or self.paperless is None:
            return None
        key = self.cache_key(doc_id)
        if key is None:
            log.warning(f"[yellow]Thumbnail:[/yellow] ungueltige Dokument-ID {doc_id!r}, kein Cache")
            return None
        path = self.path_for(key)
        if os.path.exists(path):
            log.debug(f"Thumbnail {doc_id} bereits im Cache")
            return path
        try:
            data = self.paperless.get_thumbnail_image(doc_id)
        except (PaperlessAPIError, requests.exceptions.RequestException) as exc:
            log.warning(f"[yellow]Thumbnail {doc_id}:[/yellow] Abruf fehlgeschlagen: {exc}")
            return None
        if not data:
            log.warning(f"Thumbnail {doc_id} nicht gefunden")
            return None
        # Erst komplett schreiben, dann umbenennen; ein halbes PNG darf kein Cache-Treffer sein
        tmp_path = f"{path}.{os.getpid()}.{threading.get_ident()}.tmp"
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(tmp_path, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.remove(tmp_path)
            log.warning(f"[yellow]Thumbnail {doc_id}:[/yellow] Schreiben fehlgeschlagen: {exc}")
            return None
        return path
