"""
Simple Browser Tool Implementation

SimpleBrowserTool gives the model a stateful browser with three functions:

1. search(query): Search the web and display results
2. open(id): Open a link, navigate to a URL, or scroll a page
3. find(pattern | regex): Search for text within a page

Every result is a window of a page with line numbers, headed by the page id in
brackets, e.g. `[a001]`. The model cites what it read as
`⟦{page_id}†L{start}-L{end}⟧`.

State Management:
-----------------
BrowsingSession keeps the visited pages. Each call pushes at most one page; if
rendering the new page fails, the session is restored from a checkpoint, so a
failed call leaves the history, URL index and cache exactly as they were.

Errors:
-------
The model-callable functions raise ToolUsageError or BackendError. `call`
(used by harmony message processing and the MCP server) turns those into
ToolError values instead of raising.
"""

from __future__ import annotations

import inspect
import json
import re
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar
from urllib.parse import unquote, urlparse

import structlog
from aiohttp import ClientSession
from openai_harmony import (
    Author,
    Content,
    Message,
    Role,
    TextContent,
    ToolNamespaceConfig,
)

from ..tool import Tool
from .backend import VIEW_SOURCE_PREFIX, Backend
from .errors import BackendError, ToolError, ToolUsageError, maybe_truncate
from .find import run_find_in_page
from .page_contents import CITATION_CLOSE, CITATION_OPEN, CITATION_SEP, Document
from .pagination import render_page
from .state import BrowsingSession
from .tokens import ENC_NAME, TiktokenCounter, TokenCounter

logger = structlog.stdlib.get_logger(component=__name__)

MAX_TOPN = 10

# Lines shown above a find match when it is opened
SNIPPET_CONTEXT_LINES = 4

# Pattern for parsing citations in model output
CITATION_OUTPUT_PATTERN = re.compile(
    rf"{CITATION_OPEN}(?P<cursor>[0-9a-z]+){CITATION_SEP}"
    rf"(?P<content>[^{CITATION_SEP}{CITATION_CLOSE}]+)"
    rf"(?:{CITATION_SEP}[^{CITATION_SEP}{CITATION_CLOSE}]+)?{CITATION_CLOSE}"
)
# Unfinished citation at the end of streamed model output
PARTIAL_CITATION_PATTERN = re.compile(
    rf"{CITATION_OPEN}[0-9a-z]*(?:{CITATION_SEP}[^{CITATION_SEP}{CITATION_CLOSE}]*)*$"
)

_F = TypeVar("_F", bound=Callable[..., Awaitable[str]])


def function_the_model_can_call(fn: _F) -> _F:
    """Marks a browser method as callable by the model through `call`."""
    fn.__fn_calling_tool_fn_type__ = "function_the_model_can_call"  # type: ignore
    return fn


def maybe_get_function_args(
    message: Message, tool_name: str = "browser"
) -> dict[str, Any] | None:
    if not message.recipient or not message.recipient.startswith(f"{tool_name}."):
        return None

    contents = ""
    if len(message.content) == 1 and isinstance(message.content[0], TextContent):
        contents = message.content[0].text

    if not contents:
        return {}

    try:
        parsed_contents = json.loads(contents)
        if isinstance(parsed_contents, dict):
            return parsed_contents
    except json.JSONDecodeError:
        pass

    return None


class SimpleBrowserTool(Tool):
    """
    Web browsing tool that enables the model to search and navigate the web.

    Configuration:
    --------------
    - backend: Backend instance used for search and fetch
    - token_counter: Counts tokens for pagination (tiktoken by default; pass
      `encoding_name=None` and no counter to use a character estimate)
    - max_search_results: Upper bound on results per search
    - view_tokens: How many tokens to show per page view
    - max_documents: How many documents the session keeps cached
    - regex_timeout: Seconds a single `find(regex=...)` may spend matching
    """

    def __init__(
        self,
        backend: Backend,
        encoding_name: str | None = ENC_NAME,
        token_counter: TokenCounter | None = None,
        max_search_results: int = MAX_TOPN,
        view_tokens: int = 1024,
        max_documents: int = 256,
        regex_timeout: float = 1.0,
        name: str = "browser",
    ):
        self.backend = backend
        if token_counter is None and encoding_name is not None:
            token_counter = TiktokenCounter(encoding_name)
        self.token_counter = token_counter
        self.max_search_results = max_search_results
        self.view_tokens = view_tokens
        self.regex_timeout = regex_timeout
        self.tool_state = BrowsingSession(max_documents=max_documents)
        self._name = name

    @classmethod
    def get_tool_name(cls) -> str:
        return "browser"

    @property
    def name(self) -> str:
        return self._name

    @property
    def tool_config(self) -> ToolNamespaceConfig:
        config = ToolNamespaceConfig.browser()
        config.name = self.name
        config.description = f"""Tool for browsing.
The `page_id` appears in brackets before each browsing display: `[{{page_id}}]`.
Cite information from the tool using the following format:
`{CITATION_OPEN}{{page_id}}{CITATION_SEP}L{{line_start}}(-L{{line_end}})?{CITATION_CLOSE}`, for example: `{CITATION_OPEN}a006{CITATION_SEP}L9-L11{CITATION_CLOSE}` or `{CITATION_OPEN}a008{CITATION_SEP}L3{CITATION_CLOSE}`.
Do not quote more than 10 words directly from the tool output.
sources=""" + self.backend.source
        return config

    @property
    def instruction(self) -> str:
        return self.tool_config.description

    def _render(self, page_id: str, loc: int = 0, num_lines: int = -1) -> str:
        return render_page(
            self.tool_state.get_page(page_id),
            cursor=page_id,
            loc=loc,
            num_lines=num_lines,
            view_tokens=self.view_tokens,
            token_counter=self.token_counter,
        )

    def show_page_safely(self, page: Document, loc: int = 0, num_lines: int = -1) -> str:
        """Pushes `page` and renders it; the session is restored if rendering fails."""
        checkpoint = self.tool_state.checkpoint()
        page_id = self.tool_state.add_page(page)
        try:
            return self._render(page_id, loc=loc, num_lines=num_lines)
        except Exception:
            self.tool_state.restore(checkpoint)
            raise

    async def _open_url(self, url: str, direct_url_open: bool) -> Document:
        """Use the cache, if available."""
        # direct_url_open should be regarded as a refresh
        if not direct_url_open and (page := self.tool_state.get_page_by_url(url)):
            return page

        try:
            async with ClientSession() as session:
                return await self.backend.fetch(url, session=session)
        except Exception as e:
            msg = maybe_truncate(str(e))
            logger.warning("Error fetching URL in browser tool", url=url, exc_info=e)
            raise BackendError(
                f"Error fetching URL `{maybe_truncate(url, 256)}`: {msg}",
                hint=getattr(e, "hint", None),
            ) from e

    @function_the_model_can_call
    async def search(self, query: str, topn: int = 10) -> str:
        """
        Search the web and show the results page.

        A search starts a new topic: the session is cleared before the results
        page is pushed, unless the search or its display fails.

        Raises:
            ToolUsageError: If the query is empty or topn is not in [1, 10]
            BackendError: If the search API call fails
        """
        if not query or not query.strip():
            raise ToolUsageError("`query` must not be empty.")
        if not 1 <= topn <= MAX_TOPN:
            raise ToolUsageError(f"`topn` must be between 1 and {MAX_TOPN}, got {topn}.")

        try:
            async with ClientSession() as session:
                search_page = await self.backend.search(
                    query=query,
                    topn=min(topn, self.max_search_results),
                    session=session,
                )
        except Exception as e:
            msg = maybe_truncate(str(e))
            logger.warning("Error during search in browser tool", query=query, exc_info=e)
            raise BackendError(
                f"Error during search for `{query}`: {msg}", hint=getattr(e, "hint", None)
            ) from e

        checkpoint = self.tool_state.checkpoint()
        self.tool_state.reset()
        page_id = self.tool_state.add_page(search_page)
        try:
            return self._render(page_id, loc=0)
        except Exception:
            self.tool_state.restore(checkpoint)
            raise

    @function_the_model_can_call
    async def open(
        self,
        id: int | str = -1,
        page_id: str | None = None,
        loc: int = -1,
        num_lines: int = -1,
        view_source: bool = False,
    ) -> str:
        """
        Open a link or navigate to a specific location on a page.

        1. Open a link by id: open(id=0) opens link ⟦0†...⟧ of the current page
        2. Open a URL directly: open(id="https://example.com") (always re-fetched)
        3. Scroll: open(loc=100) shows the current page from line 100
        4. Scroll an earlier page: open(page_id="a003", loc=50)
        5. View page source: open(id=0, view_source=True)

        Opening a find match without `loc` starts the view a few lines above
        the match.

        Raises:
            ToolUsageError: If the link id, page id or location is invalid
            BackendError: If fetching the URL fails
        """
        if isinstance(id, str) and id.strip().isdigit():
            id = int(id)

        snippet = None
        direct_url_open = False
        if isinstance(id, str):
            url = id
            direct_url_open = True
        else:  # Operate on a previously opened page
            curr_page = self.tool_state.get_page(page_id)
            if id >= 0:  # click a link
                try:
                    url = curr_page.links[str(id)]
                except KeyError as e:
                    raise ToolUsageError(
                        f"Invalid link id `{id}`.",
                        hint=f"Valid link ids are displayed as `{CITATION_OPEN}{{id}}{CITATION_SEP}...{CITATION_CLOSE}`.",
                    ) from e
                snippet = (curr_page.matches or {}).get(str(id))
            elif not view_source:
                # navigate to a new position on an already opened page
                target_id = page_id or self.tool_state.current_page_id
                return self._render(target_id, loc=max(loc, 0), num_lines=num_lines)
            else:
                url = curr_page.url

        if view_source:
            url = f"{VIEW_SOURCE_PREFIX}{url}"
            snippet = None

        new_page = await self._open_url(url, direct_url_open)

        if loc < 0:  # unset
            if snippet is not None and snippet.line_idx is not None:
                loc = max(0, snippet.line_idx - SNIPPET_CONTEXT_LINES)
            else:
                loc = 0
        return self.show_page_safely(new_page, loc=loc, num_lines=num_lines)

    @function_the_model_can_call
    async def find(
        self,
        pattern: str | None = None,
        regex: str | None = None,
        page_id: str | None = None,
    ) -> str:
        """
        Search for text within the current page (or `page_id`).

        `pattern` matches case-insensitively; `regex` takes a delimited
        expression such as `/v\\d+\\.\\d+/i`. Each hit is shown with a few
        lines of context under a marker like ⟦0†match at L15⟧ that can be
        opened.

        Raises:
            ToolUsageError: If run on a find results page, or unless exactly
                one of pattern/regex is given
        """
        page = self.tool_state.get_page(page_id)
        result_page = run_find_in_page(
            page,
            pattern=pattern,
            regex=regex,
            regex_timeout=self.regex_timeout,
        )
        return self.show_page_safely(result_page, loc=0)

    async def call(self, function_name: str, args: dict[str, Any]) -> str | ToolError:
        """Runs a model-callable function; failures come back as a ToolError."""
        fn = getattr(self, function_name, None)
        if getattr(fn, "__fn_calling_tool_fn_type__", None) != "function_the_model_can_call":
            return ToolError(kind="usage", message=f"Unknown function: {function_name}")
        assert fn is not None
        try:
            inspect.signature(fn).bind(**args)
        except TypeError as e:
            return ToolError(
                kind="usage", message=f"Invalid arguments for `{function_name}`: {e}"
            )

        try:
            return await fn(**args)
        except (ToolUsageError, BackendError) as e:
            logger.info("Browser call failed", function=function_name, error=str(e))
            return ToolError.from_exception(e)

    def make_response(self, content: Content, *, author: Author) -> Message:
        return Message(
            author=author,
            content=[content],
        ).with_recipient("assistant")

    async def _process(self, message: Message) -> AsyncIterator[Message]:
        function_args = maybe_get_function_args(message, tool_name=self.name)
        if function_args is None:
            yield self.make_response(
                content=TextContent(text=json.dumps({"error": "Invalid function arguments"})),
                author=Author(role=Role.TOOL, name=message.recipient),
            )
            return

        _, function_name = message.recipient.split(".", 1)
        result = await self.call(function_name, function_args)
        text = result.render() if isinstance(result, ToolError) else result
        yield self.make_response(
            content=TextContent(text=text),
            author=Author(role=Role.TOOL, name=f"{self.name}.{function_name}"),
        )

    def normalize_citations(
        self, old_content: str, hide_partial_citations: bool = False
    ) -> tuple[str, list[dict[str, Any]], bool]:
        """
        Returns a tuple of (new_message, annotations, has_partial_citations)
        - new_message: Message with citations replaced by ([domain](url))
        - annotations: list of dicts with start_index, end_index, and title (url)
        - has_partial_citations: whether the text includes an unfinished citation
        """
        has_partial_citations = PARTIAL_CITATION_PATTERN.search(old_content) is not None
        if hide_partial_citations and has_partial_citations:
            old_content = PARTIAL_CITATION_PATTERN.sub("", old_content)

        # Build a mapping from page id to url
        cursor_to_url = {
            page_id: page.url for page_id, page in self.tool_state.documents.items()
        }

        def extract_domain(url: str) -> str:
            return urlparse(unquote(url)).netloc or url

        new_content = ""
        last_idx = 0
        annotations = []
        for match in CITATION_OUTPUT_PATTERN.finditer(old_content):
            # Add text before the citation
            new_content += old_content[last_idx : match.start()]

            url = cursor_to_url.get(match.group("cursor"))
            if url:
                domain = extract_domain(url)
                replacement = f" ([{domain}]({url})) "
                annotations.append(
                    {
                        "start_index": len(new_content),
                        "end_index": len(new_content) + len(replacement),
                        "title": domain,
                        "url": url,
                        "type": "url_citation",
                    }
                )
            else:
                # Keep the original citation format if the page id is unknown
                replacement = match.group(0)
            new_content += replacement
            last_idx = match.end()

        new_content += old_content[last_idx:]
        return new_content, annotations, has_partial_citations
