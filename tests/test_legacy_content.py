"""Vault content provider."""

from uuid import uuid4

import httpx
import pytest

from afterme.services.legacy_content_service import (
    CONTENT_SECTIONS,
    ContentUnavailable,
    HttpContentProvider,
)


def _provider(handler) -> HttpContentProvider:
    return HttpContentProvider(
        "https://vault.test/api/",
        api_key="vault-key",
        transport=httpx.MockTransport(handler),
    )


def test_fetch_keeps_known_sections_only():
    owner_id = uuid4()
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(
            200,
            json={"memories": [{"title": "Lake house"}], "stories": "oops", "extra": [1]},
        )

    sections = _provider(handler).fetch(owner_id)

    assert seen == {
        "url": f"https://vault.test/api/owners/{owner_id}/legacy-content",
        "auth": "Bearer vault-key",
    }
    assert set(sections) == set(CONTENT_SECTIONS)
    assert sections["memories"] == [{"title": "Lake house"}]
    assert sections["stories"] == []


def test_fetch_raises_on_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(ContentUnavailable):
        _provider(handler).fetch(uuid4())


def test_fetch_raises_on_html_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ContentUnavailable):
        _provider(handler).fetch(uuid4())


def test_fetch_raises_on_non_object_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"memories": []}])

    with pytest.raises(ContentUnavailable):
        _provider(handler).fetch(uuid4())


def test_fetch_treats_null_body_as_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})

    sections = _provider(handler).fetch(uuid4())

    assert all(value == [] for value in sections.values())
