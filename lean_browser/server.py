"""
MCP Server for the Browser Tool

This module provides a Model Context Protocol (MCP) server that exposes the
browser's search, open and find functions as MCP tools.

Setup:
    1. Choose a search backend:
       export BROWSER_BACKEND=searxng  # or "exa"
       export SEARXNG_URL=http://localhost:8080  # for SearxNG
       export EXA_API_KEY=your_key  # for Exa

    2. Run the server:
       lean-browser-mcp
       (Server runs on port 8001 by default)

Features:
    - Multi-session browser management (separate browser per client)
    - Failed calls return the error message and a hint as the tool result
    - Citation support with page id based references

Log verbosity is taken from LEAN_BROWSER_LOG_LEVEL (default INFO).
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from mcp.server.fastmcp import Context, FastMCP

from .config import BrowserConfig
from .tools.simple_browser import SimpleBrowserTool, ToolError
from .tools.simple_browser.tokens import warmup_caches


@dataclass
class AppContext:
    """
    Application context for managing browser sessions.

    Each client session gets its own browser, with its own history and page
    ids, so clients do not interfere with each other.
    """

    config: BrowserConfig = field(default_factory=BrowserConfig.from_env)
    browsers: dict[str, SimpleBrowserTool] = field(default_factory=dict)

    def create_or_get_browser(self, session_id: str) -> SimpleBrowserTool:
        if session_id not in self.browsers:
            self.browsers[session_id] = self.config.make_browser()
        return self.browsers[session_id]

    def remove_browser(self, session_id: str) -> None:
        self.browsers.pop(session_id, None)


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    yield AppContext()


# The instructions teach the model how to properly cite sources from browser output
mcp = FastMCP(
    name="browser",
    instructions=r"""
Tool for browsing.
The `page_id` appears in brackets before each browsing display: `[{page_id}]`.
Cite information from the tool using the following format:
`⟦{page_id}†L{line_start}(-L{line_end})?⟧`, for example: `⟦a006†L9-L11⟧` or `⟦a008†L3⟧`.
Do not quote more than 10 words directly from the tool output.
sources=web
""".strip(),
    lifespan=app_lifespan,
    port=8001,
)


async def _call(ctx: Context, function_name: str, args: dict[str, Any]) -> str:
    browser = ctx.request_context.lifespan_context.create_or_get_browser(ctx.client_id)
    result = await browser.call(function_name, args)
    if isinstance(result, ToolError):
        return result.render()
    return result


@mcp.tool(
    name="search",
    title="Search for information",
    description="Searches for information related to `query` and displays `topn` results.",
)
async def search(ctx: Context, query: str, topn: int = 10) -> str:
    """
    Search the web. The results page becomes page `a000` of a fresh session;
    its links can be opened with `open(id=N)`.
    """
    return await _call(ctx, "search", {"query": query, "topn": topn})


@mcp.tool(
    name="open",
    title="Open a link or page",
    description="""
Opens the link `id` from the page indicated by `page_id` starting at line number `loc`, showing `num_lines` lines.
Valid link ids are displayed with the formatting: `⟦{id}†.*⟧`.
If `page_id` is not provided, the most recent page is implied.
If `id` is a string, it is treated as a fully qualified URL.
If `loc` is not provided, the viewport will be positioned at the beginning of the document or at the find match being opened.
Use this function without `id` to scroll to a new location of an opened page.
""".strip(),
)
async def open_link(
    ctx: Context,
    id: Union[int, str] = -1,
    page_id: Optional[str] = None,
    loc: int = -1,
    num_lines: int = -1,
    view_source: bool = False,
) -> str:
    """
    Examples:
        # Open first search result
        await open_link(ctx, id=0)

        # Open a direct URL
        await open_link(ctx, id="https://example.com")

        # Scroll to line 50 of current page
        await open_link(ctx, loc=50)
    """
    return await _call(
        ctx,
        "open",
        {
            "id": id,
            "page_id": page_id,
            "loc": loc,
            "num_lines": num_lines,
            "view_source": view_source,
        },
    )


@mcp.tool(
    name="find",
    title="Find pattern in page",
    description="""
Finds matches of `pattern` (case-insensitive text) or `regex` (a delimited expression such as `/v\\d+/i`) in the current page, or the page given by `page_id`.
Exactly one of `pattern` and `regex` must be given.
""".strip(),
)
async def find_pattern(
    ctx: Context,
    pattern: Optional[str] = None,
    regex: Optional[str] = None,
    page_id: Optional[str] = None,
) -> str:
    return await _call(ctx, "find", {"pattern": pattern, "regex": regex, "page_id": page_id})


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LEAN_BROWSER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = BrowserConfig.from_env()
    if config.encoding_name:
        # vocabulary lengths are cached per encoding
        warmup_caches([config.encoding_name])
    mcp.run(transport="sse")


if __name__ == "__main__":
    main()
