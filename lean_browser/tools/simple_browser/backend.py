"""
Backend Abstraction for the Browser Tool

Backends do the actual HTTP work for the browser: querying a search engine
and fetching pages. Both operations return a processed `Document`.

Concrete implementations:
- SearxNGBackend: Queries a SearxNG instance's JSON API and fetches pages directly
- ExaBackend: Uses the Exa Search API for both search and page contents

Search results are turned into a small HTML list page and run through the same
HTML processing as any other page, so result links get numbered markers that
the model can `open`.

URLs prefixed with `view-source:` are fetched without processing; the raw
markup is shown instead.
"""

from __future__ import annotations

import asyncio
import html as html_lib
import logging
import os
from abc import abstractmethod
from typing import Callable, ParamSpec, TypeVar

import aiohttp
import chz
import pydantic
from aiohttp import ClientSession, ClientTimeout
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import BackendError, maybe_truncate
from .page_contents import Document, process_html, process_source

logger = logging.getLogger(__name__)

# Prefix for URLs requesting the raw HTML source view
VIEW_SOURCE_PREFIX = "view-source:"

P = ParamSpec("P")
R = TypeVar("R")


def with_retries(
    func: Callable[P, R],
    num_retries: int,
    max_wait_time: float,
    exception_types: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[P, R]:
    """
    Adds retry logic with exponential backoff to `func`.

    Waits start at 2 seconds and are capped at `max_wait_time`. The last
    exception is re-raised once `num_retries` attempts are used up.
    """
    if num_retries > 0:
        retry_decorator = retry(
            stop=stop_after_attempt(num_retries),
            wait=wait_exponential(
                multiplier=1,
                min=2,
                max=max_wait_time,
            ),
            before_sleep=before_sleep_log(logger, logging.INFO),
            after=after_log(logger, logging.INFO),
            retry=retry_if_exception_type(exception_types),
            reraise=True,
        )
        return retry_decorator(func)
    else:
        return func


class SearchResult(pydantic.BaseModel):
    title: str
    url: str
    summary: str = ""


def build_search_html(results: list[SearchResult]) -> str:
    """Makes a simple HTML page to work with the browser format."""
    items = "".join(
        "<li><a href='{url}'>{title}</a> {summary}</li>".format(
            url=html_lib.escape(result.url, quote=True),
            title=html_lib.escape(result.title, quote=False),
            summary=html_lib.escape(result.summary, quote=False),
        )
        for result in results
    )
    return f"""
<html><body>
<h1>Search Results</h1>
<ul>
{items}
</ul>
</body></html>
"""


def split_view_source(url: str) -> tuple[str, bool]:
    if url.startswith(VIEW_SOURCE_PREFIX):
        return url[len(VIEW_SOURCE_PREFIX) :], True
    return url, False


@chz.chz(typecheck=True)
class Backend:
    """
    Abstract base class for web search and fetching backends.

    Attributes:
        source: Human-readable description of the backend (e.g., "web")
    """

    source: str = chz.field(doc="Description of the backend source")

    @abstractmethod
    async def search(
        self,
        query: str,
        topn: int,
        session: ClientSession,
    ) -> Document:
        """
        Perform a web search and return results as a Document whose links
        can be opened with browser.open(id=N).

        Raises:
            BackendError: If the search fails
        """
        pass

    @abstractmethod
    async def fetch(self, url: str, session: ClientSession) -> Document:
        """
        Fetch and process a web page. `url` may carry VIEW_SOURCE_PREFIX.

        Raises:
            BackendError: If the fetch fails
        """
        pass


@chz.chz(typecheck=True)
class SearxNGBackend(Backend):
    """
    Backend using a SearxNG metasearch instance.

    Search goes through `{base_url}/search?format=json`; pages are fetched
    directly over HTTP, with retries on network errors.
    """

    base_url: str = chz.field(doc="Root URL of the SearxNG instance")
    timeout: float = chz.field(doc="Per-request timeout in seconds", default=30.0)
    num_retries: int = chz.field(doc="Attempts for fetching a page", default=3)
    max_wait_time: float = chz.field(doc="Max seconds between attempts", default=10.0)

    async def search(
        self, query: str, topn: int, session: ClientSession
    ) -> Document:
        data = await self._get_json(
            session,
            f"{self.base_url.rstrip('/')}/search",
            {"q": query, "format": "json", "categories": "general"},
        )
        results = [
            SearchResult(
                title=result.get("title") or result["url"],
                url=result["url"],
                summary=result.get("content") or "",
            )
            for result in data.get("results", [])
            if result.get("url")
        ]
        return process_html(
            html=build_search_html(results[:topn]),
            url="",
            title=query,
            display_urls=True,
        )

    async def fetch(self, url: str, session: ClientSession) -> Document:
        target, is_view_source = split_view_source(url)
        get_text = with_retries(
            self._get_text,
            num_retries=self.num_retries,
            max_wait_time=self.max_wait_time,
            exception_types=(aiohttp.ClientConnectionError, asyncio.TimeoutError),
        )
        html = await get_text(session, target)
        if is_view_source:
            return process_source(html, url=url)
        return process_html(html=html, url=url, title=None, display_urls=True)

    async def _get_json(self, session: ClientSession, url: str, params: dict) -> dict:
        async with session.get(
            url, params=params, timeout=ClientTimeout(total=self.timeout)
        ) as resp:
            if resp.status != 200:
                raise BackendError(
                    f"{self.__class__.__name__} error {resp.status}: {await resp.text()}"
                )
            try:
                data = await resp.json(content_type=None)
            except ValueError as e:
                raise BackendError(f"Invalid JSON from {url}: {e}") from e
        if not isinstance(data, dict):
            raise BackendError(f"SearxNG response from {url} is not a JSON object")
        return data

    async def _get_text(self, session: ClientSession, url: str) -> str:
        async with session.get(
            url, timeout=ClientTimeout(total=self.timeout), max_redirects=10
        ) as resp:
            if resp.status >= 400:
                raise BackendError(
                    f"HTTP error for {url}: {resp.status} {maybe_truncate(await resp.text(), 500)}"
                )
            return await resp.text(errors="replace")


@chz.chz(typecheck=True)
class ExaBackend(Backend):
    """
    Backend using the Exa Search API (https://exa.ai).

    Configuration:
        Set EXA_API_KEY environment variable or pass api_key parameter

    API Endpoints:
        - POST /search: Search for web pages, with summaries
        - POST /contents: Fetch page content with HTML tags included
    """

    api_key: str | None = chz.field(
        doc="Exa API key. Uses EXA_API_KEY environment variable if not provided.",
        default=None,
    )
    base_url: str = chz.field(doc="Exa API root", default="https://api.exa.ai")
    timeout: float = chz.field(doc="Per-request timeout in seconds", default=30.0)

    def _get_api_key(self) -> str:
        key = self.api_key or os.environ.get("EXA_API_KEY")
        if not key:
            raise BackendError(
                "Exa API key not provided", hint="Set the EXA_API_KEY environment variable."
            )
        return key

    async def _post(self, session: ClientSession, endpoint: str, payload: dict) -> dict:
        headers = {"x-api-key": self._get_api_key()}
        async with session.post(
            f"{self.base_url}{endpoint}",
            json=payload,
            headers=headers,
            timeout=ClientTimeout(total=self.timeout),
        ) as resp:
            if resp.status != 200:
                raise BackendError(
                    f"{self.__class__.__name__} error {resp.status}: {await resp.text()}"
                )
            return await resp.json()

    async def search(
        self, query: str, topn: int, session: ClientSession
    ) -> Document:
        data = await self._post(
            session,
            "/search",
            {"query": query, "numResults": topn, "contents": {"text": True, "summary": True}},
        )
        results = [
            SearchResult(
                title=result.get("title") or result["url"],
                url=result["url"],
                summary=result.get("summary") or "",
            )
            for result in data.get("results", [])
        ]
        return process_html(
            html=build_search_html(results),
            url="",
            title=query,
            display_urls=True,
        )

    async def fetch(self, url: str, session: ClientSession) -> Document:
        target, is_view_source = split_view_source(url)
        data = await self._post(
            session,
            "/contents",
            {"urls": [target], "text": {"includeHtmlTags": True}},
        )
        results = data.get("results", [])
        if not results:
            raise BackendError(f"No contents returned for {target}")
        html = results[0].get("text", "")
        if is_view_source:
            return process_source(html, url=url)
        return process_html(
            html=html,
            url=url,
            title=results[0].get("title") or None,
            display_urls=True,
        )
