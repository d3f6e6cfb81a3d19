"""
Tests for line wrapping and page windows.
"""

import pytest

from lean_browser.tools.simple_browser.errors import OutOfRange
from lean_browser.tools.simple_browser.page_contents import Document
from lean_browser.tools.simple_browser.pagination import (
    get_end_loc,
    join_lines,
    render_page,
    wrap_lines,
)

from .fakes import FailingCounter, numbered_page


class TestWrapLines:
    def test_long_line_is_wrapped_at_80(self):
        lines = wrap_lines("a" * 200)
        assert [len(line) for line in lines] == [80, 80, 40]

    def test_empty_lines_are_kept(self):
        assert wrap_lines("a\n\nb") == ["a", "", "b"]

    def test_wrapping_is_idempotent(self):
        text = " ".join(f"word{i}" for i in range(100)) + "\n\n  indented line"
        lines = wrap_lines(text)
        assert wrap_lines(join_lines(lines)) == lines

    def test_join_lines_with_numbers(self):
        assert join_lines(["x", "y"], add_line_numbers=True, offset=3) == "L3: x\nL4: y"


class TestRenderPage:
    def test_window_with_fixed_line_count(self):
        out = render_page(numbered_page(num_lines=10), cursor="a000", loc=2, num_lines=3)
        assert out == (
            "[a000] Example (https://example.com/doc)\n"
            "**viewing lines [2 - 4] of 9**\n\n"
            "L2: line 2\nL3: line 3\nL4: line 4"
        )

    def test_whole_short_page(self):
        out = render_page(numbered_page(num_lines=5), cursor="a001")
        assert "**viewing lines [0 - 4] of 4**" in out
        assert out.endswith("L4: line 4")

    def test_num_lines_is_clamped_to_page(self):
        out = render_page(numbered_page(num_lines=5), cursor="a001", loc=3, num_lines=50)
        assert "**viewing lines [3 - 4] of 4**" in out

    def test_empty_url_omits_parenthetical(self):
        page = Document(url="", text="only line", title="results")
        assert render_page(page, cursor="a000").startswith("[a000] results\n")

    @pytest.mark.parametrize("loc", [-1, 5, 100])
    def test_invalid_location(self, loc):
        with pytest.raises(OutOfRange) as exc_info:
            render_page(numbered_page(num_lines=5), cursor="a000", loc=loc)
        assert str(exc_info.value) == (
            f"Invalid location parameter: `{loc}`. Cannot exceed page maximum of 4."
        )

    def test_token_budget_limits_window(self):
        page = numbered_page(num_lines=1000)
        out = render_page(page, cursor="a000", view_tokens=20)
        shown = [line for line in out.split("\n") if line.startswith("L")]
        assert 1 <= len(shown) < 1000
        assert shown[0] == "L0: line 0"

    def test_failing_counter_falls_back_to_estimate(self):
        page = numbered_page(num_lines=1000)
        with_estimate = render_page(page, cursor="a000", view_tokens=20)
        with_failing = render_page(
            page, cursor="a000", view_tokens=20, token_counter=FailingCounter()
        )
        assert with_failing == with_estimate


class TestGetEndLoc:
    def test_fixed_line_count(self):
        lines = [f"l{i}" for i in range(10)]
        assert get_end_loc(2, 3, 10, lines, view_tokens=1024) == 5

    def test_never_before_loc_or_past_end(self):
        lines = [f"l{i}" for i in range(10)]
        assert get_end_loc(8, 5, 10, lines, view_tokens=1024) == 10

    def test_short_text_shows_everything(self):
        lines = [f"l{i}" for i in range(10)]
        assert get_end_loc(0, -1, 10, lines, view_tokens=1024) == 10
