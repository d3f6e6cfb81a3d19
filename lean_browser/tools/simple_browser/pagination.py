"""
Line wrapping and windowed rendering of browser pages.

Pages are wrapped to 80 characters per line and shown with line numbers, so
the model can cite `⟦{page_id}†L{start}-L{end}⟧`. A view shows either a fixed
number of lines or as many lines as fit in the token budget.
"""

from __future__ import annotations

import itertools
import logging
import textwrap
from urllib.parse import unquote

from .errors import OutOfRange, maybe_truncate
from .page_contents import Document
from .tokens import TokenCounter, estimate_prefix_length

logger = logging.getLogger(__name__)

LINE_WIDTH = 80


def join_lines(
    lines: list[str], add_line_numbers: bool = False, offset: int = 0
) -> str:
    if add_line_numbers:
        return "\n".join([f"L{i + offset}: {line}" for i, line in enumerate(lines)])
    else:
        return "\n".join(lines)


def wrap_lines(text: str, width: int = LINE_WIDTH) -> list[str]:
    """Wraps each line at `width`, keeping whitespace runs and empty lines intact."""
    lines = text.split("\n")
    wrapped = itertools.chain.from_iterable(
        (
            textwrap.wrap(
                line,
                width=width,
                replace_whitespace=False,
                drop_whitespace=False,
                break_on_hyphens=True,
                break_long_words=True,
            )
            if line
            else [""]
        )  # preserve empty lines
        for line in lines
    )
    return list(wrapped)


def get_end_loc(
    loc: int,
    num_lines: int,
    total_lines: int,
    lines: list[str],
    view_tokens: int,
    token_counter: TokenCounter | None = None,
) -> int:
    if num_lines <= 0:
        # COMPUTE NUMBER OF LINES TO SHOW
        txt = join_lines(lines[loc:], add_line_numbers=True, offset=loc)
        # if the text is very short, no need to truncate at all
        # at least one char per token
        if len(txt) > view_tokens:
            end_idx = _prefix_length(txt, view_tokens, token_counter)
            if end_idx < len(txt):
                num_lines = txt[:end_idx].count("\n") + 1  # round up
            else:
                num_lines = total_lines
        else:
            num_lines = total_lines

    return max(loc, min(loc + num_lines, total_lines))


def _prefix_length(txt: str, view_tokens: int, token_counter: TokenCounter | None) -> int:
    if token_counter is not None:
        try:
            return token_counter.prefix_length(txt, view_tokens)
        except Exception as e:
            logger.warning("Token counter failed, estimating instead", exc_info=e)
    return estimate_prefix_length(txt, view_tokens)


def render_page(
    page: Document,
    cursor: str,
    loc: int = 0,
    num_lines: int = -1,
    view_tokens: int = 1024,
    token_counter: TokenCounter | None = None,
) -> str:
    """
    Renders one window of a page as the display string shown to the model.

    Raises:
        OutOfRange: If `loc` is not a line of the page
    """
    lines = wrap_lines(text=page.text)
    total_lines = len(lines)

    if loc < 0 or loc >= total_lines:
        raise OutOfRange(
            f"Invalid location parameter: `{loc}`. "
            f"Cannot exceed page maximum of {total_lines - 1}."
        )

    end_loc = get_end_loc(loc, num_lines, total_lines, lines, view_tokens, token_counter)

    body = join_lines(lines[loc:end_loc], add_line_numbers=True, offset=loc)
    scrollbar = f"viewing lines [{loc} - {end_loc - 1}] of {total_lines - 1}"

    header = page.title
    if domain := maybe_truncate(unquote(page.url)):
        header += f" ({domain})"
    return f"[{cursor}] {header}\n**{scrollbar}**\n\n{body}"
