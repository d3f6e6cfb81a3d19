"""
Configuration for the browser tool and MCP server.

Settings come from keyword arguments or, through `BrowserConfig.from_env`, from
environment variables:

    BROWSER_BACKEND         "searxng" (default) or "exa"
    SEARXNG_URL             root URL of the SearxNG instance
    EXA_API_KEY             API key for the Exa backend
    BROWSER_VIEW_TOKENS     tokens shown per page view
    BROWSER_MAX_DOCUMENTS   documents cached per browsing session
"""

from __future__ import annotations

import os
from typing import Literal, Mapping

import chz

from .tools.simple_browser.backend import Backend, ExaBackend, SearxNGBackend
from .tools.simple_browser.simple_browser_tool import SimpleBrowserTool
from .tools.simple_browser.tokens import ENC_NAME

BACKENDS = ("searxng", "exa")


@chz.chz(typecheck=True)
class BrowserConfig:
    backend: Literal["searxng", "exa"] = chz.field(
        doc="Search backend to use", default="searxng"
    )
    searxng_url: str = chz.field(
        doc="Root URL of the SearxNG instance", default="http://localhost:8080"
    )
    exa_api_key: str | None = chz.field(
        doc="Exa API key. Falls back to EXA_API_KEY at request time.", default=None
    )
    view_tokens: int = chz.field(doc="Tokens shown per page view", default=1024)
    encoding_name: str | None = chz.field(
        doc="tiktoken encoding for pagination; None uses a character estimate",
        default=ENC_NAME,
    )
    max_search_results: int = chz.field(doc="Upper bound on results per search", default=10)
    max_documents: int = chz.field(doc="Documents cached per session", default=256)
    request_timeout: float = chz.field(doc="Per-request timeout in seconds", default=30.0)
    num_retries: int = chz.field(doc="Attempts for fetching a page", default=3)
    max_retry_wait: float = chz.field(doc="Max seconds between attempts", default=10.0)
    regex_timeout: float = chz.field(doc="Seconds one regex find may take", default=1.0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BrowserConfig:
        """
        Builds a config from environment variables; unset variables keep defaults.

        Raises:
            ValueError: If BROWSER_BACKEND names an unsupported backend, or a
                numeric variable is not a number
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        if backend := env.get("BROWSER_BACKEND"):
            backend = backend.strip().lower()
            if backend not in BACKENDS:
                raise ValueError(f"Invalid tool backend: {backend}")
            kwargs["backend"] = backend
        if searxng_url := env.get("SEARXNG_URL"):
            kwargs["searxng_url"] = searxng_url
        if exa_api_key := env.get("EXA_API_KEY"):
            kwargs["exa_api_key"] = exa_api_key
        if view_tokens := env.get("BROWSER_VIEW_TOKENS"):
            kwargs["view_tokens"] = int(view_tokens)
        if max_documents := env.get("BROWSER_MAX_DOCUMENTS"):
            kwargs["max_documents"] = int(max_documents)
        return cls(**kwargs)

    def make_backend(self) -> Backend:
        if self.backend == "exa":
            return ExaBackend(
                source="web",
                api_key=self.exa_api_key,
                timeout=self.request_timeout,
            )
        return SearxNGBackend(
            source="web",
            base_url=self.searxng_url,
            timeout=self.request_timeout,
            num_retries=self.num_retries,
            max_wait_time=self.max_retry_wait,
        )

    def make_browser(self) -> SimpleBrowserTool:
        return SimpleBrowserTool(
            backend=self.make_backend(),
            encoding_name=self.encoding_name,
            max_search_results=self.max_search_results,
            view_tokens=self.view_tokens,
            max_documents=self.max_documents,
            regex_timeout=self.regex_timeout,
        )
