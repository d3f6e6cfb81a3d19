"""
Tests for the MCP server's per-client browser management.
"""

from lean_browser.config import BrowserConfig
from lean_browser.server import AppContext, mcp


class TestAppContext:
    def test_one_browser_per_session(self):
        context = AppContext(config=BrowserConfig(encoding_name=None))
        first = context.create_or_get_browser("client-1")
        assert context.create_or_get_browser("client-1") is first
        assert context.create_or_get_browser("client-2") is not first

    def test_remove_browser(self):
        context = AppContext(config=BrowserConfig(encoding_name=None))
        first = context.create_or_get_browser("client-1")
        context.remove_browser("client-1")
        context.remove_browser("unknown")
        assert context.create_or_get_browser("client-1") is not first

    def test_config_comes_from_environment(self, monkeypatch):
        monkeypatch.setenv("BROWSER_BACKEND", "exa")
        monkeypatch.setenv("BROWSER_VIEW_TOKENS", "300")
        context = AppContext()
        assert context.config.backend == "exa"
        assert context.config.view_tokens == 300


def test_server_name():
    assert mcp.name == "browser"
