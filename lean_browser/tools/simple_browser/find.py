"""
Find-in-page for the browser tool.

`run_find_in_page` scans the wrapped, de-annotated text of a page for a literal
pattern (case-insensitive) or a PCRE-style delimited regex such as `/beta/i`,
and builds a synthetic results page. Each match gets its own citation marker,
`# ⟦{idx}†match at L{line}⟧`, which the model can `open` to jump to the match.
"""

from __future__ import annotations

import logging
import re
import time
from urllib.parse import quote

import regex as regex_engine

from .errors import ToolUsageError
from .page_contents import CITATION_CLOSE, CITATION_OPEN, CITATION_SEP, Document, Snippet
from .pagination import join_lines, wrap_lines

logger = logging.getLogger(__name__)

# Format for displaying find results with citation markers
FIND_PAGE_LINK_FORMAT = "# " + CITATION_OPEN + "{idx}" + CITATION_SEP + "{title}" + CITATION_CLOSE

_O, _C, _S = CITATION_OPEN, CITATION_CLOSE, CITATION_SEP
# Incomplete citation at start
PARTIAL_INITIAL_LINK_PATTERN = re.compile(rf"^[^{_O}{_C}]*{_C}")
# Incomplete citation at end
PARTIAL_FINAL_LINK_PATTERN = re.compile(
    rf"{_O}\d*(?:{_S}(?P<content>[^{_S}{_C}]*)(?:{_S}[^{_S}{_C}]*)?)?$"
)
# Complete citation
LINK_PATTERN = re.compile(rf"{_O}\d+{_S}(?P<content>[^{_S}{_C}]+)(?:{_S}[^{_S}{_C}]+)?{_C}")

REGEX_BRACKET_DELIMITERS = {"(": ")", "[": "]", "{": "}", "<": ">"}
REGEX_FLAGS = {
    "i": regex_engine.IGNORECASE,
    "m": regex_engine.MULTILINE,
    "s": regex_engine.DOTALL,
    "x": regex_engine.VERBOSE,
    "u": regex_engine.UNICODE,
}


class InvalidRegex(ValueError):
    pass


def _keep_content(mo: re.Match[str]) -> str:
    # Keep the line breaks of removed parts so line numbers stay aligned
    content = mo.group("content") or ""
    return content + "\n" * (mo.group(0).count("\n") - content.count("\n"))


def strip_links(text: str) -> str:
    """Replaces citation markers with their display text."""
    text = PARTIAL_INITIAL_LINK_PATTERN.sub(lambda mo: "\n" * mo.group(0).count("\n"), text)
    text = PARTIAL_FINAL_LINK_PATTERN.sub(_keep_content, text)
    text = LINK_PATTERN.sub(_keep_content, text)
    return text


def compile_delimited_regex(expression: str) -> regex_engine.Pattern:
    """
    Compiles a PCRE-style expression: a delimiter, the pattern, the same
    delimiter (or the closing bracket), then optional flags, e.g. `/v\\d+/i`.

    Raises:
        InvalidRegex: If delimiters or flags are malformed
        regex.error: If the pattern itself does not compile
    """
    expression = expression.lstrip()
    if not expression:
        raise InvalidRegex("Empty regular expression")
    delimiter = expression[0]
    if delimiter.isalnum() or delimiter == "\\":
        raise InvalidRegex("Delimiter must not be alphanumeric or backslash")
    end_delimiter = REGEX_BRACKET_DELIMITERS.get(delimiter, delimiter)
    end = expression.rfind(end_delimiter)
    if end <= 0:
        raise InvalidRegex(f"No ending delimiter '{end_delimiter}' found")

    flags = 0
    for flag in expression[end + 1 :].rstrip():
        if flag not in REGEX_FLAGS:
            raise InvalidRegex(f"Unknown modifier '{flag}'")
        flags |= REGEX_FLAGS[flag]
    return regex_engine.compile(expression[1:end], flags)


def _regex_error_page(page: Document, expression: str, description: str) -> Document:
    return Document(
        url=f"{page.url}/find?regex={quote(expression)}",
        title=f"Find results for regex: `{expression}` in `{page.title}`",
        text=f"Regex error for regex `{expression}`: {description}",
        links={},
        matches={},
        error_message=description,
    )


def run_find_in_page(
    page: Document,
    pattern: str | None = None,
    regex: str | None = None,
    max_results: int = 50,
    num_show_lines: int = 4,
    regex_timeout: float = 1.0,
) -> Document:
    """
    Builds a find results page for `pattern` (literal) or `regex` on `page`.

    Matching starts a snippet of `num_show_lines` lines; scanning resumes after
    the snippet, so hits inside one snippet are reported once. Regex problems
    (bad syntax, or matching that takes longer than `regex_timeout` seconds in
    total) produce a page describing the error instead of raising.

    Raises:
        ToolUsageError: If `page` is a find results page, or the arguments are
            not exactly one non-empty pattern
    """
    if page.matches is not None:
        raise ToolUsageError("Cannot run `find` on a find results page")
    if (pattern is None) == (regex is None):
        raise ToolUsageError(
            "Provide exactly one of `pattern` or `regex`.",
            hint="Use `pattern` for plain text and `regex` for expressions like `/v\\d+/i`.",
        )

    if pattern is not None:
        if not pattern.strip():
            raise ToolUsageError("`pattern` must not be empty.")
        kind, arg_name, query = "text", "pattern", pattern
        needle = pattern.lower()

        def is_match(line: str) -> bool:
            return needle in line.lower()

    else:
        assert regex is not None
        if not regex.strip():
            raise ToolUsageError("`regex` must not be empty.")
        kind, arg_name, query = "regex", "regex", regex
        try:
            compiled = compile_delimited_regex(regex)
        except (InvalidRegex, regex_engine.error) as e:
            return _regex_error_page(page, regex, str(e))
        deadline = time.monotonic() + regex_timeout

        def is_match(line: str) -> bool:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"regex {regex} ran past its deadline")
            return compiled.search(line, timeout=remaining) is not None

    lines = wrap_lines(text=page.text)
    txt = join_lines(lines, add_line_numbers=False)
    without_links = strip_links(txt)
    lines = without_links.split("\n")

    result_chunks, snippets = [], []
    line_idx, match_idx = 0, 0
    try:
        while line_idx < len(lines):
            line = lines[line_idx]
            if not is_match(line):
                line_idx += 1
                continue
            snippet = "\n".join(lines[line_idx : line_idx + num_show_lines])
            link_title = FIND_PAGE_LINK_FORMAT.format(
                idx=f"{match_idx}", title=f"match at L{line_idx}"
            )
            result_chunks.append(f"{link_title}\n{snippet}")
            snippets.append(
                Snippet(url=page.url, text=snippet, label=f"#{match_idx}", line_idx=line_idx)
            )
            if len(result_chunks) == max_results:
                break
            match_idx += 1
            line_idx += num_show_lines
    except TimeoutError:
        logger.info("Regex %s timed out on %s", query, page.url)
        return _regex_error_page(
            page, query, f"Matching exceeded the time limit of {regex_timeout}s"
        )

    if result_chunks:
        display_text = "\n\n".join(result_chunks)
    else:
        display_text = f"No `find` results for {arg_name}: `{query}`"

    return Document(
        url=f"{page.url}/find?{arg_name}={quote(query)}",
        title=f"Find results for {kind}: `{query}` in `{page.title}`",
        text=display_text,
        links={str(i): page.url for i in range(len(result_chunks))},
        matches={str(i): snip for i, snip in enumerate(snippets)},
    )
