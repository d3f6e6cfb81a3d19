"""
Error types for the browser tool.

Internally the browser raises exceptions to short-circuit a single call. At the
tool boundary those exceptions are turned into a `ToolError` value, so callers
get a `{kind, message, hint}` record instead of having to catch anything.
"""

from __future__ import annotations

from typing import Literal

import pydantic


def maybe_truncate(text: str, num_chars: int = 1024) -> str:
    """Truncate text to `num_chars`, marking the cut with an ellipsis."""
    if len(text) > num_chars:
        text = text[: (num_chars - 3)] + "..."
    return text


class ToolUsageError(Exception):
    """
    Raised when the model uses the browser tool incorrectly.

    Examples:
    - Accessing a page id that doesn't exist
    - Running find() on a find results page
    - Invalid link ids or location parameters

    The optional `hint` tells the caller how to recover.
    """

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.hint = hint


class EmptySession(ToolUsageError):
    def __init__(self) -> None:
        super().__init__(
            "No pages to access!",
            hint="Run `browser.search` to obtain a `page_id`.",
        )


class UnknownPage(ToolUsageError):
    def __init__(self, page_id: str) -> None:
        super().__init__(
            f"Page `{page_id}` is not available in the current browser session.",
            hint="Use a `page_id` provided in the latest tool response.",
        )
        self.page_id = page_id


class OutOfRange(ToolUsageError):
    pass


class BackendError(Exception):
    """
    Raised when a backend operation fails.

    This includes network errors, invalid responses, missing API keys and
    timeouts. The message is truncated before it reaches the model.
    """

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(maybe_truncate(message))
        self.hint = hint


class ToolError(pydantic.BaseModel):
    """A failed tool call, as returned to the caller."""

    model_config = pydantic.ConfigDict(frozen=True)

    kind: Literal["usage", "backend"]
    message: str
    hint: str | None = None

    @classmethod
    def from_exception(cls, error: ToolUsageError | BackendError) -> ToolError:
        kind: Literal["usage", "backend"] = (
            "usage" if isinstance(error, ToolUsageError) else "backend"
        )
        return cls(kind=kind, message=str(error), hint=error.hint)

    def render(self) -> str:
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message
