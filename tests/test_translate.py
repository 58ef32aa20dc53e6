from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from zentrack.core import LocalizeError, ValidationError
from zentrack.translate import Translator, check_language

ENDPOINT = "https://translate.example/translate"


def _run(translator_kwargs, handler, *calls):
    """Run ``localize`` for each (text, lang) against a mocked provider."""

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        translator = Translator(ENDPOINT, client=client, **translator_kwargs)
        try:
            return [await translator.localize(text, lang) for text, lang in calls]
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_english_is_pass_through_without_network() -> None:
    requests: list[httpx.Request] = []

    def handler(request):
        requests.append(request)
        return httpx.Response(500)

    assert _run({}, handler, ("Vintage Seiko", "en")) == ["Vintage Seiko"]
    assert requests == []


def test_translates_and_caches() -> None:
    payloads: list[dict] = []

    def handler(request):
        payload = json.loads(request.content)
        payloads.append(payload)
        return httpx.Response(200, json={"translatedText": f"{payload['target']}:{payload['q']}"})

    out = _run({"api_key": "k"}, handler, ("Watch", "fr"), ("Watch", "fr"), ("Watch", "de"))

    assert out == ["fr:Watch", "fr:Watch", "de:Watch"]
    assert len(payloads) == 2
    assert payloads[0] == {
        "q": "Watch", "source": "auto", "target": "fr", "format": "text", "api_key": "k",
    }


def test_provider_error_raises_localize_error() -> None:
    with pytest.raises(LocalizeError):
        _run({}, lambda request: httpx.Response(503), ("Watch", "ja"))


def test_timeout_raises_localize_error() -> None:
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(LocalizeError):
        _run({}, handler, ("Watch", "es"))


def test_malformed_response_raises_localize_error() -> None:
    with pytest.raises(LocalizeError):
        _run({}, lambda request: httpx.Response(200, json={"oops": 1}), ("Watch", "es"))
    with pytest.raises(LocalizeError):
        _run({}, lambda request: httpx.Response(200, text="not json"), ("Watch", "es"))


def test_missing_endpoint_raises_localize_error() -> None:
    with pytest.raises(LocalizeError):
        asyncio.run(Translator(None).localize("Watch", "fr"))


def test_check_language() -> None:
    assert check_language("ja") == "ja"
    with pytest.raises(ValidationError):
        check_language("xx")


def test_cache_evicts_least_recently_used() -> None:
    asked: list[str] = []

    def handler(request):
        payload = json.loads(request.content)
        asked.append(payload["q"])
        return httpx.Response(200, json={"translatedText": payload["q"].lower()})

    calls = [("A", "fr"), ("B", "fr"), ("A", "fr"), ("C", "fr"), ("A", "fr"), ("B", "fr")]
    out = _run({"cache_size": 2}, handler, *calls)

    assert out == ["a", "b", "a", "c", "a", "b"]
    assert asked == ["A", "B", "C", "B"]
