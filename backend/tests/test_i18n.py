"""Tests for message catalogs and locale negotiation."""

from pathlib import Path

import pytest
from starlette.requests import Request

from gatekeeper.core import i18n
from gatekeeper.core.i18n import MESSAGES, negotiate_locale, normalize_locale, request_locale, translate
from tests.helpers import bearer


def _request(query: str = "", headers: dict[str, str] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": query.encode(),
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        }
    )


class TestNegotiation:
    """Tests for picking the request locale."""

    def test_default(self):
        assert negotiate_locale(_request()) == "en"

    def test_query_parameter_wins(self):
        request = _request("lang=hi", {"x-locale": "en", "Accept-Language": "en"})
        assert negotiate_locale(request) == "hi"

    def test_header_beats_accept_language(self):
        assert negotiate_locale(_request(headers={"x-locale": "hi", "Accept-Language": "en"})) == "hi"

    def test_accept_language_quality(self):
        request = _request(headers={"Accept-Language": "fr;q=0.9, hi-IN;q=0.8, en;q=0.5"})
        assert negotiate_locale(request) == "hi"

    def test_unsupported_falls_back(self):
        assert negotiate_locale(_request("lang=xx", {"x-locale": "fr"})) == "en"

    def test_normalize(self):
        assert normalize_locale("HI_in") == "hi"
        assert normalize_locale("de") is None
        assert normalize_locale(None) is None

    def test_locale_is_cached_per_request(self):
        """Concurrent requests never share a locale: each keeps its own."""
        hindi = _request(headers={"x-locale": "hi"})
        english = _request(headers={"x-locale": "en"})

        assert request_locale(hindi) == "hi"
        assert request_locale(english) == "en"
        assert hindi.state.locale == "hi"


class TestTranslate:
    """Tests for catalog lookup."""

    def test_parameters(self):
        assert translate("rateLimit.exceeded", "en", retry_after=30) == (
            "Too many requests. Please try again in 30 seconds."
        )

    def test_missing_key_returns_key(self):
        assert translate("no.such.key", "hi") == "no.such.key"

    def test_catalogs_have_same_keys(self):
        assert set(MESSAGES["hi"]) == set(MESSAGES["en"])

    def test_every_message_is_used(self):
        """Each catalog key is looked up somewhere in the package."""
        package_dir = Path(i18n.__file__).parent.parent
        sources = "\n".join(
            path.read_text(encoding="utf-8")
            for path in package_dir.rglob("*.py")
            if path != Path(i18n.__file__)
        )

        unused = [key for key in MESSAGES["en"] if f'"{key}"' not in sources]

        assert unused == []


class TestLocalizedResponses:
    """Tests for localized error bodies over HTTP."""

    @pytest.mark.asyncio
    async def test_hindi_401(self, async_client):
        response = await async_client.get("/auth/me", headers={"x-locale": "hi"})

        assert response.status_code == 401
        assert response.json()["detail"] == MESSAGES["hi"]["auth.token.noToken"]
        assert response.headers["x-locale"] == "hi"

    @pytest.mark.asyncio
    async def test_query_parameter(self, async_client):
        response = await async_client.get("/auth/me", params={"lang": "hi"}, headers=bearer("x"))

        assert response.json()["detail"] == MESSAGES["hi"]["auth.token.invalidToken"]

    @pytest.mark.asyncio
    async def test_locale_echoed_on_success(self, async_client):
        response = await async_client.get("/", headers={"Accept-Language": "hi-IN,hi;q=0.9"})

        assert response.status_code == 200
        assert response.headers["x-locale"] == "hi"

    @pytest.mark.asyncio
    async def test_concurrent_requests_keep_their_locale(self, async_client):
        import asyncio

        responses = await asyncio.gather(
            *(
                async_client.get("/auth/me", headers={"x-locale": locale})
                for locale in ["hi", "en"] * 5
            )
        )

        for response, locale in zip(responses, ["hi", "en"] * 5):
            assert response.headers["x-locale"] == locale
            assert response.json()["detail"] == MESSAGES[locale]["auth.token.noToken"]
