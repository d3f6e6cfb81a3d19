"""
Tests for the search backends, with HTTP calls stubbed out.
"""

import pytest

from lean_browser.tools.simple_browser.backend import (
    ExaBackend,
    SearchResult,
    SearxNGBackend,
    build_search_html,
    split_view_source,
    with_retries,
)
from lean_browser.tools.simple_browser.errors import BackendError


class TestHelpers:
    def test_build_search_html_escapes(self):
        html = build_search_html(
            [SearchResult(title="<b>Title</b>", url="https://e.com/?a=1&b='2'", summary="x < y")]
        )
        assert "&lt;b&gt;Title&lt;/b&gt;" in html
        assert "href='https://e.com/?a=1&amp;b=&#x27;2&#x27;'" in html
        assert "x &lt; y" in html

    def test_split_view_source(self):
        assert split_view_source("view-source:https://e.com") == ("https://e.com", True)
        assert split_view_source("https://e.com") == ("https://e.com", False)

    def test_no_retries_returns_function(self):
        def func():
            return 1

        assert with_retries(func, num_retries=0, max_wait_time=1) is func

    def test_retries_reraise_original_exception(self):
        calls = []

        def func():
            calls.append(1)
            raise BackendError("down")

        wrapped = with_retries(func, num_retries=1, max_wait_time=1)
        with pytest.raises(BackendError, match="down"):
            wrapped()
        assert len(calls) == 1


class TestSearxNGBackend:
    @pytest.fixture
    def backend(self):
        return SearxNGBackend(source="web", base_url="http://searx.local/", num_retries=1)

    @pytest.mark.asyncio
    async def test_search(self, backend, monkeypatch):
        requests = []

        async def fake_get_json(self, session, url, params):
            requests.append((url, params))
            return {
                "results": [
                    {"title": "First", "url": "https://one.org/", "content": "first summary"},
                    {"title": "", "url": "https://two.org/", "content": None},
                    {"title": "No url"},
                    {"title": "Third", "url": "https://three.org/"},
                ]
            }

        monkeypatch.setattr(SearxNGBackend, "_get_json", fake_get_json)
        page = await backend.search("query", topn=2, session=None)

        assert requests == [
            (
                "http://searx.local/search",
                {"q": "query", "format": "json", "categories": "general"},
            )
        ]
        assert page.title == "query"
        assert page.url == ""
        assert page.links == {"0": "https://one.org/", "1": "https://two.org/"}
        assert "⟦0†First†one.org⟧" in page.text
        assert "first summary" in page.text
        assert "⟦1†https://two.org/†two.org⟧" in page.text

    @pytest.mark.asyncio
    async def test_fetch(self, backend, monkeypatch):
        async def fake_get_text(self, session, url):
            return "<html><title>Page</title><body><a href='/next'>Next</a></body></html>"

        monkeypatch.setattr(SearxNGBackend, "_get_text", fake_get_text)
        page = await backend.fetch("https://e.com/a", session=None)

        assert page.title == "Page"
        assert page.links == {"0": "https://e.com/next"}
        assert page.text.startswith("\nURL: https://e.com/a\n")

    @pytest.mark.asyncio
    async def test_fetch_view_source(self, backend, monkeypatch):
        fetched = []

        async def fake_get_text(self, session, url):
            fetched.append(url)
            return "<a href='/next'>Next</a>"

        monkeypatch.setattr(SearxNGBackend, "_get_text", fake_get_text)
        page = await backend.fetch("view-source:https://e.com/a", session=None)

        assert fetched == ["https://e.com/a"]
        assert page.title == "view-source:https://e.com/a"
        assert page.links == {}
        assert "<a href='/next'>Next</a>" in page.text


class TestExaBackend:
    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("EXA_API_KEY", raising=False)
        with pytest.raises(BackendError) as exc_info:
            ExaBackend(source="web")._get_api_key()
        assert exc_info.value.hint == "Set the EXA_API_KEY environment variable."

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("EXA_API_KEY", "from-env")
        assert ExaBackend(source="web")._get_api_key() == "from-env"
        assert ExaBackend(source="web", api_key="explicit")._get_api_key() == "explicit"

    @pytest.mark.asyncio
    async def test_fetch(self, monkeypatch):
        posts = []

        async def fake_post(self, session, endpoint, payload):
            posts.append((endpoint, payload))
            return {"results": [{"title": "Exa Page", "text": "<p>Hello <a href='https://x.org/'>X</a></p>"}]}

        monkeypatch.setattr(ExaBackend, "_post", fake_post)
        page = await ExaBackend(source="web", api_key="k").fetch("https://e.com", session=None)

        assert posts == [("/contents", {"urls": ["https://e.com"], "text": {"includeHtmlTags": True}})]
        assert page.title == "Exa Page"
        assert page.links == {"0": "https://x.org/"}

    @pytest.mark.asyncio
    async def test_fetch_without_results(self, monkeypatch):
        async def fake_post(self, session, endpoint, payload):
            return {"results": []}

        monkeypatch.setattr(ExaBackend, "_post", fake_post)
        with pytest.raises(BackendError, match="No contents returned"):
            await ExaBackend(source="web", api_key="k").fetch("https://e.com", session=None)
