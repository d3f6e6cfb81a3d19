"""
Shared fixtures for all tests.

Browsers are built with `encoding_name=None`, so pagination uses the
characters-per-token estimate and no tokenizer files are downloaded.
"""

import pytest

from lean_browser.tools.simple_browser import SimpleBrowserTool
from lean_browser.tools.simple_browser.backend import SearchResult
from lean_browser.tools.simple_browser.page_contents import Document

from .fakes import DOC_URL, FakeBackend, numbered_page


@pytest.fixture
def backend():
    """FakeBackend with one search and the pages it links to."""
    fake = FakeBackend()
    fake.add_results(
        "python",
        [
            SearchResult(title="Doc", url=DOC_URL, summary="A numbered page"),
            SearchResult(title="Other", url="https://other.org/", summary="Another site"),
        ],
    )
    fake.add_page(numbered_page())
    fake.add_page(Document(url="https://other.org/", text="Other content", title="Other"))
    return fake


@pytest.fixture
def browser(backend):
    return SimpleBrowserTool(backend=backend, encoding_name=None)
