"""
Tests for BrowserConfig.
"""

import pytest

from lean_browser.config import BrowserConfig
from lean_browser.tools.simple_browser.backend import ExaBackend, SearxNGBackend


class TestBrowserConfig:
    def test_defaults(self):
        config = BrowserConfig.from_env({})
        assert config.backend == "searxng"
        assert config.view_tokens == 1024
        assert config.max_documents == 256
        assert config.encoding_name == "o200k_base"

    def test_from_env(self):
        config = BrowserConfig.from_env(
            {
                "BROWSER_BACKEND": "Exa",
                "EXA_API_KEY": "secret",
                "SEARXNG_URL": "http://searx:8888",
                "BROWSER_VIEW_TOKENS": "512",
                "BROWSER_MAX_DOCUMENTS": "16",
            }
        )
        assert config.backend == "exa"
        assert config.exa_api_key == "secret"
        assert config.searxng_url == "http://searx:8888"
        assert config.view_tokens == 512
        assert config.max_documents == 16

    def test_invalid_backend(self):
        with pytest.raises(ValueError, match="Invalid tool backend: youcom"):
            BrowserConfig.from_env({"BROWSER_BACKEND": "youcom"})

    def test_invalid_number(self):
        with pytest.raises(ValueError):
            BrowserConfig.from_env({"BROWSER_VIEW_TOKENS": "many"})

    def test_make_searxng_backend(self):
        backend = BrowserConfig(searxng_url="http://searx:8888", num_retries=5).make_backend()
        assert isinstance(backend, SearxNGBackend)
        assert backend.base_url == "http://searx:8888"
        assert backend.num_retries == 5
        assert backend.source == "web"

    def test_make_exa_backend(self):
        backend = BrowserConfig(backend="exa", exa_api_key="k", request_timeout=5.0).make_backend()
        assert isinstance(backend, ExaBackend)
        assert backend.api_key == "k"
        assert backend.timeout == 5.0

    def test_make_browser(self):
        browser = BrowserConfig(encoding_name=None, view_tokens=256, max_documents=8).make_browser()
        assert browser.token_counter is None
        assert browser.view_tokens == 256
        assert browser.tool_state.max_documents == 8
        assert browser.tool_state.is_empty()
