"""
Browsing state for the browser tool.

A `BrowsingSession` keeps a stack of visited pages (the history) and a cache of
documents keyed by page id. Page ids are short base-36 strings (`a000`,
`a001`, ...) that the model uses to refer to earlier pages, both in tool calls
and in citations.
"""

from __future__ import annotations

import string

import pydantic

from .errors import EmptySession, UnknownPage
from .page_contents import Document

# First page id is `a000`
PAGE_ID_OFFSET = 10 * 36**3
PAGE_ID_WIDTH = 4
PAGE_ID_ALPHABET = string.digits + string.ascii_lowercase


def encode_page_id(sequence: int) -> str:
    value = PAGE_ID_OFFSET + sequence
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(PAGE_ID_ALPHABET[rem])
        if value == 0:
            break
    return "".join(reversed(digits)).zfill(PAGE_ID_WIDTH)


class SessionCheckpoint(pydantic.BaseModel):
    documents: dict[str, Document]
    history: list[str]
    url_index: dict[str, str]
    sequence: int


class BrowsingSession(pydantic.BaseModel):
    """
    Maintains the browsing history of one SimpleBrowserTool.

    State Components:
    -----------------
    - documents: Cache of Documents by page id
    - history: Page ids in visit order; the last one is the current page
    - url_index: Page id of the latest document seen for each URL

    Popping a page removes it from the history and drops its URL mapping, but
    the document stays cached, so page ids that appear in earlier output keep
    resolving. The cache is bounded by `max_documents`; when it overflows, the
    oldest documents that are no longer in the history are evicted.
    """

    documents: dict[str, Document] = pydantic.Field(default_factory=dict)
    history: list[str] = pydantic.Field(default_factory=list)
    url_index: dict[str, str] = pydantic.Field(default_factory=dict)
    sequence: int = 0
    max_documents: int = 256

    def is_empty(self) -> bool:
        return not self.history

    @property
    def current_page_id(self) -> str:
        """
        Raises:
            EmptySession: If no page has been visited yet
        """
        if self.is_empty():
            raise EmptySession()
        return self.history[-1]

    def add_page(self, page: Document) -> str:
        """Caches the page, makes it the current page and returns its new page id."""
        page_id = encode_page_id(self.sequence)
        self.sequence += 1
        self.documents[page_id] = page
        self.history.append(page_id)
        if page.url:
            self.url_index[page.url] = page_id
        self._evict()
        return page_id

    def get_page(self, page_id: str | None = None) -> Document:
        """
        Retrieve a page by its id (the current page if omitted).

        Raises:
            EmptySession: If no page id is given and no page has been visited
            UnknownPage: If the id is not in the cache
        """
        if page_id is None:
            page_id = self.current_page_id
        try:
            return self.documents[page_id]
        except KeyError as e:
            raise UnknownPage(page_id) from e

    def get_page_by_url(self, url: str) -> Document | None:
        page_id = self.url_index.get(url)
        if page_id is None:
            return None
        return self.documents.get(page_id)

    def pop_page_stack(self) -> None:
        """Remove the most recent page from the history and its URL mapping."""
        if not self.history:
            return
        page_id = self.history.pop()
        for url in [url for url, id_ in self.url_index.items() if id_ == page_id]:
            del self.url_index[url]

    def reset(self) -> None:
        self.documents.clear()
        self.history.clear()
        self.url_index.clear()
        self.sequence = 0

    def checkpoint(self) -> SessionCheckpoint:
        return SessionCheckpoint(
            documents=dict(self.documents),
            history=list(self.history),
            url_index=dict(self.url_index),
            sequence=self.sequence,
        )

    def restore(self, checkpoint: SessionCheckpoint) -> None:
        self.documents = dict(checkpoint.documents)
        self.history = list(checkpoint.history)
        self.url_index = dict(checkpoint.url_index)
        self.sequence = checkpoint.sequence

    def _evict(self) -> None:
        if len(self.documents) <= self.max_documents:
            return
        in_history = set(self.history)
        # dicts keep insertion order, so the oldest documents come first
        for page_id in list(self.documents):
            if len(self.documents) <= self.max_documents:
                break
            if page_id in in_history:
                continue
            del self.documents[page_id]
            for url in [url for url, id_ in self.url_index.items() if id_ == page_id]:
                del self.url_index[url]
