"""
Text localizer backed by a LibreTranslate-compatible HTTP endpoint.

English is the source language of the listings we scrape, so ``en`` is a
pass-through that never touches the network.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

import httpx

from zentrack.core import LocalizeError, ValidationError

log = logging.getLogger("zentrack.translate")

SOURCE_LANGUAGE = "en"
CACHE_SIZE = 1024
LANGUAGES = ("en", "fr", "ja", "de", "es")


def check_language(code: str) -> str:
    if code not in LANGUAGES:
        raise ValidationError(f"Unsupported language: {code!r}")
    return code


class Translator:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10,
        client: Optional[httpx.AsyncClient] = None,
        cache_size: int = CACHE_SIZE,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        self.cache_size = cache_size
        # least recently used first
        self._cache: OrderedDict[tuple[str, str], str] = OrderedDict()

    @classmethod
    def from_settings(cls, settings) -> "Translator":
        cfg = settings.translation
        return cls(
            cfg.endpoint,
            api_key=cfg.api_key,
            timeout=cfg.timeout_seconds,
            cache_size=cfg.cache_size,
        )

    async def localize(self, text: str, target_language: str) -> str:
        if target_language == SOURCE_LANGUAGE or not text.strip():
            return text
        key = (text, target_language)
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]
        if not self.endpoint:
            raise LocalizeError("No translation endpoint configured")

        payload = {
            "q": text,
            "source": "auto",
            "target": target_language,
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            data = await self._post(payload)
        except httpx.HTTPError as exc:
            raise LocalizeError(f"Translation to {target_language} failed: {exc}") from exc

        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not isinstance(translated, str) or not translated:
            raise LocalizeError("Translation provider returned no text")
        self._remember(key, translated)
        return translated

    def _remember(self, key: tuple[str, str], value: str) -> None:
        self._cache[key] = value
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def _post(self, payload: dict) -> dict:
        if self._client is not None:
            r = await self._client.post(self.endpoint, json=payload, timeout=self.timeout)
            r.raise_for_status()
            return _json(r)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(self.endpoint, json=payload)
            r.raise_for_status()
            return _json(r)


def _json(r: httpx.Response):
    try:
        return r.json()
    except ValueError as exc:
        raise LocalizeError("Translation provider returned invalid JSON") from exc
