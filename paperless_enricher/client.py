"""Paperless-NGX REST API client."""

from __future__ import annotations

import random
import time
from urllib.parse import urlencode

import requests

from .config import log
from .constants import MATCHING_ALGORITHM_AUTO
from .exceptions import PaperlessAPIError
from .utils import _name_list

_TRANSIENT = (requests.exceptions.Timeout, requests.exceptions.ConnectionError)


def _detail(resp: requests.Response | None) -> str:
    if resp is None:
        return ""
    text = (resp.text or "").strip().replace("\n", " ")
    return text[:300] + "..." if len(text) > 300 else text


class PaperlessClient:
    """Vereinter Client fuer die Paperless-NGX REST API."""

    _CACHE_TTL_SEC = 120
    _MIN_WRITE_INTERVAL = 0.15

    def __init__(self, url: str, token: str, max_retries: int = 3, timeout: int = 30):
        self.url = url.rstrip("/")
        self.token = token
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self._cache: dict[str, tuple[float, list]] = {}
        self._last_write_time = 0.0
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Token {token}",
            "Content-Type": "application/json",
        })

    def _rate_limit_write(self):
        """Ensure minimum interval between write operations."""
        now = time.monotonic()
        elapsed = now - self._last_write_time
        if elapsed < self._MIN_WRITE_INTERVAL:
            time.sleep(self._MIN_WRITE_INTERVAL - elapsed)
        self._last_write_time = time.monotonic()

    def _get_cached(self, endpoint: str) -> list:
        """Return cached result if still valid, otherwise fetch and cache."""
        now = time.monotonic()
        cached = self._cache.get(endpoint)
        if cached and (now - cached[0]) < self._CACHE_TTL_SEC:
            return cached[1]
        result = self._get_all(endpoint)
        self._cache[endpoint] = (now, result)
        return result

    def invalidate_cache(self, endpoint: str | None = None):
        """Clear cache for a specific endpoint or all."""
        if endpoint:
            self._cache.pop(endpoint, None)
        else:
            self._cache.clear()

    def _get(self, url: str) -> requests.Response:
        """GET mit Retry + exponential backoff bei transienten Fehlern."""
        for attempt in range(self.max_retries):
            try:
                resp = self.session.get(url, timeout=self.timeout)
            except _TRANSIENT as exc:
                if attempt < self.max_retries - 1:
                    time.sleep(min(30, (2 ** attempt) + random.uniform(0, 1)))
                    continue
                raise PaperlessAPIError(f"GET fehlgeschlagen: {url}: {exc}") from exc
            except requests.exceptions.RequestException as exc:
                raise PaperlessAPIError(f"GET fehlgeschlagen: {url}: {exc}") from exc
            return resp
        raise PaperlessAPIError(f"GET fehlgeschlagen: {url}")

    def _get_json(self, url: str):
        resp = self._get(url)
        if not resp.ok:
            raise PaperlessAPIError(
                f"GET {url} -> HTTP {resp.status_code}", status_code=resp.status_code, detail=_detail(resp),
            )
        return resp.json()

    def _get_all(self, endpoint: str, params: dict | None = None, max_results: int = 0) -> list:
        """Alle Eintraege mit Paginierung laden."""
        results = []
        page_num = 0
        query = {"page_size": 100, **(params or {})}
        url = f"{self.url}/api/{endpoint}/?{urlencode(query)}"
        while url:
            data = self._get_json(url)
            results.extend(data.get("results", []))
            page_num += 1
            total_count = data.get("count", 0)
            if total_count > 500 and page_num % 5 == 0:
                log.info(f"  Lade {endpoint}: {len(results)}/{total_count} ({len(results) * 100 // max(1, total_count)}%)")
            url = data.get("next")
            if max_results > 0 and len(results) >= max_results:
                results = results[:max_results]
                break
        return results

    # --- Lesen ---
    def get_tags(self) -> list:
        return self._get_cached("tags")

    def get_correspondents(self) -> list:
        return self._get_cached("correspondents")

    def get_document_types(self) -> list:
        return self._get_cached("document_types")

    def get_custom_fields(self) -> list:
        return self._get_cached("custom_fields")

    def get_tag_names(self) -> list[str]:
        return _name_list(self.get_tags())

    def get_correspondent_names(self) -> list[str]:
        return _name_list(self.get_correspondents())

    def get_document_type_names(self) -> list[str]:
        return _name_list(self.get_document_types())

    def get_documents(self, params: dict | None = None, max_results: int = 0) -> list:
        return self._get_all("documents", params=params, max_results=max_results)

    def get_document(self, doc_id: int) -> dict:
        return self._get_json(f"{self.url}/api/documents/{doc_id}/")

    def get_thumbnail_image(self, doc_id: int | str) -> bytes | None:
        """Thumbnail als PNG/WebP-Bytes; None wenn Paperless keins hat."""
        url = f"{self.url}/api/documents/{doc_id}/thumb/"
        resp = self._get(url)
        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise PaperlessAPIError(
                f"Thumbnail {doc_id} -> HTTP {resp.status_code}", status_code=resp.status_code, detail=_detail(resp),
            )
        return resp.content or None

    # --- Schreiben ---
    def _write_with_retry(self, method: str, url: str, data: dict) -> requests.Response:
        """Schreiboperation mit Retry + exponential backoff bei transienten Fehlern."""
        self._rate_limit_write()
        for attempt in range(self.max_retries):
            try:
                resp = getattr(self.session, method)(url, json=data, timeout=self.timeout)
            except _TRANSIENT as exc:
                if attempt < self.max_retries - 1:
                    time.sleep(min(30, (2 ** attempt) + random.uniform(0, 1)))
                    continue
                raise PaperlessAPIError(f"{method.upper()} {url} fehlgeschlagen: {exc}") from exc
            except requests.exceptions.RequestException as exc:
                raise PaperlessAPIError(f"{method.upper()} {url} fehlgeschlagen: {exc}") from exc
            if not resp.ok:
                raise PaperlessAPIError(
                    f"{method.upper()} {url} -> HTTP {resp.status_code}",
                    status_code=resp.status_code,
                    detail=_detail(resp),
                )
            return resp
        raise PaperlessAPIError(f"Schreiboperation fehlgeschlagen: {method.upper()} {url}")

    def update_document(self, doc_id: int, data: dict) -> dict:
        resp = self._write_with_retry("patch", f"{self.url}/api/documents/{doc_id}/", data)
        return resp.json()

    @staticmethod
    def _matching_payload(name: str, matching_algorithm: int) -> dict:
        return {"name": name, "matching_algorithm": matching_algorithm, "match": "", "is_insensitive": True}

    def create_tag(self, name: str, matching_algorithm: int = MATCHING_ALGORITHM_AUTO) -> dict:
        resp = self._write_with_retry("post", f"{self.url}/api/tags/", self._matching_payload(name, matching_algorithm))
        self.invalidate_cache("tags")
        return resp.json()

    def create_correspondent(self, name: str, matching_algorithm: int = MATCHING_ALGORITHM_AUTO) -> dict:
        resp = self._write_with_retry(
            "post", f"{self.url}/api/correspondents/", self._matching_payload(name, matching_algorithm),
        )
        self.invalidate_cache("correspondents")
        return resp.json()

    def create_document_type(self, name: str, matching_algorithm: int = MATCHING_ALGORITHM_AUTO) -> dict:
        resp = self._write_with_retry(
            "post", f"{self.url}/api/document_types/", self._matching_payload(name, matching_algorithm),
        )
        self.invalidate_cache("document_types")
        return resp.json()
