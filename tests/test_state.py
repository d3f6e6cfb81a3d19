"""
Tests for BrowsingSession: page ids, history, cache and rollback.
"""

import pytest

from lean_browser.tools.simple_browser.errors import EmptySession, UnknownPage
from lean_browser.tools.simple_browser.page_contents import Document
from lean_browser.tools.simple_browser.state import BrowsingSession, encode_page_id


def make_doc(url: str) -> Document:
    return Document(url=url, text=f"contents of {url}", title=url)


class TestPageIds:
    @pytest.mark.parametrize(
        "sequence, expected",
        [(0, "a000"), (1, "a001"), (35, "a00z"), (36, "a010"), (36**3, "b000")],
    )
    def test_encode_page_id(self, sequence, expected):
        assert encode_page_id(sequence) == expected


class TestBrowsingSession:
    @pytest.fixture
    def session(self):
        return BrowsingSession()

    def test_empty_session(self, session):
        assert session.is_empty()
        with pytest.raises(EmptySession):
            session.current_page_id
        with pytest.raises(EmptySession):
            session.get_page()

    def test_add_page(self, session):
        first = session.add_page(make_doc("https://a.com"))
        second = session.add_page(make_doc("https://b.com"))
        assert (first, second) == ("a000", "a001")
        assert session.current_page_id == "a001"
        assert session.get_page().url == "https://b.com"
        assert session.get_page("a000").url == "https://a.com"
        assert session.get_page_by_url("https://a.com").url == "https://a.com"

    def test_unknown_page(self, session):
        session.add_page(make_doc("https://a.com"))
        with pytest.raises(UnknownPage) as exc_info:
            session.get_page("zzzz")
        assert exc_info.value.page_id == "zzzz"
        assert exc_info.value.hint

    def test_pop_keeps_document_cached(self, session):
        session.add_page(make_doc("https://a.com"))
        page_id = session.add_page(make_doc("https://b.com"))
        session.pop_page_stack()
        assert session.current_page_id == "a000"
        assert session.get_page(page_id).url == "https://b.com"
        assert session.get_page_by_url("https://b.com") is None

    def test_pop_on_empty_is_noop(self, session):
        session.pop_page_stack()
        assert session.is_empty()

    def test_ids_are_not_reused_after_pop(self, session):
        session.add_page(make_doc("https://a.com"))
        session.pop_page_stack()
        assert session.add_page(make_doc("https://b.com")) == "a001"

    def test_reset(self, session):
        session.add_page(make_doc("https://a.com"))
        session.reset()
        assert session.is_empty()
        assert session.documents == {}
        assert session.add_page(make_doc("https://b.com")) == "a000"

    def test_checkpoint_and_restore(self, session):
        session.add_page(make_doc("https://a.com"))
        session.add_page(make_doc("https://b.com"))
        checkpoint = session.checkpoint()

        session.reset()
        session.add_page(make_doc("https://c.com"))
        session.restore(checkpoint)

        assert session.history == ["a000", "a001"]
        assert session.current_page_id == "a001"
        assert session.get_page_by_url("https://c.com") is None
        assert session.add_page(make_doc("https://d.com")) == "a002"

    def test_eviction_skips_pages_in_history(self):
        session = BrowsingSession(max_documents=2)
        session.add_page(make_doc("https://a.com"))
        session.add_page(make_doc("https://b.com"))
        session.pop_page_stack()
        session.add_page(make_doc("https://c.com"))

        assert set(session.documents) == {"a000", "a002"}
        with pytest.raises(UnknownPage):
            session.get_page("a001")

    def test_cache_may_exceed_bound_while_all_pages_are_in_history(self):
        session = BrowsingSession(max_documents=1)
        session.add_page(make_doc("https://a.com"))
        session.add_page(make_doc("https://b.com"))
        assert session.history == ["a000", "a001"]
        assert session.get_page("a000").url == "https://a.com"
