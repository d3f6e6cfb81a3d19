"""
Page Contents Processing for the Browser Tool

This module handles the conversion of raw HTML into model-readable text.
It extracts content, numbers links, replaces images, and produces the citation
markers the model uses to refer back to links.

Key Transformations:
--------------------
1. HTML -> Clean Text:
   - Parses the page with lxml and converts it with html2text
   - Keeps headings and list structure, drops scripts, styles and math
   - Normalizes whitespace while preserving intentional indentation

2. Link Processing:
   - Every <a href="..."> with visible text becomes a numbered marker:
     ⟦0†Link Text†domain.com⟧
   - Relative URLs are resolved against the page URL
   - The same target URL always gets the same id within one page

3. Image Handling:
   - <img> tags become placeholders: [Image 0: alt text]

Citation Format:
----------------
    <a href="https://example.com/page">Read more</a>

becomes

    ⟦0†Read more†example.com⟧

where 0 is the link id, "Read more" is the visible text, and the domain is
only shown for links that leave the current site. The marker glyphs are
reserved: occurrences in the source page are swapped for look-alikes first.

The parse tree is never mutated. Link and image rewriting happens during one
walk over the tree that emits a new markup buffer, which is then converted to
text.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from urllib.parse import urljoin, urlparse, urlunparse

import html2text
import lxml.etree
import lxml.html
import pydantic

logger = logging.getLogger(__name__)

CITATION_OPEN = "⟦"
CITATION_CLOSE = "⟧"
CITATION_SEP = "†"

HTML_SUP_RE = re.compile(r"<sup( [^>]*)?>([\w\-]+)</sup>")
HTML_SUB_RE = re.compile(r"<sub( [^>]*)?>([\w\-]+)</sub>")
HTML_TAGS_SEQ_RE = re.compile(r"(?<=\w)((<[^>]*>)+)(?=\w)")
HTML_BLOCK_BOUNDARY_RE = re.compile(
    r"</?(?:p|div|li|ul|ol|tr|table|blockquote|pre|h[1-6]|br)\b[^>]*>", flags=re.IGNORECASE
)
HTML_TAG_RE = re.compile(r"<[^>]*>")
UNICODE_SMP_RE = re.compile(r"[\U00010000-\U0010FFFF]")
EMPTY_LINE_RE = re.compile(r"^[^\S\n]+$", flags=re.MULTILINE)
EXTRA_NEWLINE_RE = re.compile(r"\n(\s*\n)+")
INTERNAL_WHITESPACE_RE = re.compile(r"(?<=\S)[^\S\n]+(?=\S)")
HEADING_RE = re.compile(r"^(#{1,6} .*)\n(?!\n)", flags=re.MULTILINE)
ESCAPED_NUMERAL_RE = re.compile(r"^(\s*\d+)\\\.", flags=re.MULTILINE)
ESCAPED_BULLET_RE = re.compile(r"^(\s*)\\([-+])", flags=re.MULTILINE)
BULLET_ARTIFACT_RE = re.compile(r"^\s*\* $")
LINK_ID_RE = re.compile(rf"{CITATION_OPEN}(\d+){CITATION_SEP}")

# Elements that never have a closing tag.
VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)


class Snippet(pydantic.BaseModel):
    """
    A block of text captured from a page, e.g. one `find` match.

    Attributes:
        url: The URL of the page the text was found on
        text: The captured text
        label: A short label, e.g. "#0"
        line_idx: Line of the wrapped page text where the block starts
    """

    model_config = pydantic.ConfigDict(frozen=True)

    url: str
    text: str
    label: str
    line_idx: int | None = None


class Document(pydantic.BaseModel):
    """
    Processed representation of a page, ready for display to the model.

    Attributes:
        url: The page URL
        text: Processed text content with citation markers
        title: Page title
        links: Mapping from link ids ("0", "1", ...) to URLs
        matches: Snippets by id; only set on find results pages
        error_message: Error information if the page couldn't be fully processed
    """

    model_config = pydantic.ConfigDict(frozen=True)

    url: str
    text: str
    title: str
    links: dict[str, str] = pydantic.Field(default_factory=dict)
    matches: dict[str, Snippet] | None = None
    error_message: str | None = None


def get_domain(url: str) -> str:
    """Extracts the domain from a URL."""
    if not url:
        return ""
    if "http" not in url:
        # If `get_domain` is called on a domain, add a scheme so that the
        # original domain is returned instead of the empty string.
        url = "http://" + url
    try:
        return urlparse(url).netloc
    except ValueError:
        return ""


def multiple_replace(text: str, replacements: dict[str, str]) -> str:
    """Performs multiple string replacements using a single regex pass."""
    regex = re.compile("(%s)" % "|".join(map(re.escape, replacements.keys())))
    return regex.sub(lambda mo: replacements[mo.group(1)], text)


def _replace_special_chars(text: str) -> str:
    """Replaces characters reserved for citation markers with visually similar ones."""
    replacements = {
        CITATION_OPEN: "〚",
        CITATION_CLOSE: "〛",
        "◼": "◾",
        "\u200b": "",  # zero width space
        # Note: not replacing † here, only inside link text
    }
    return multiple_replace(text, replacements)


def remove_unicode_smp(text: str) -> str:
    """Removes code points above U+FFFF, which lxml.html does not handle well."""
    return UNICODE_SMP_RE.sub("", text)


def merge_whitespace(text: str) -> str:
    """Replace newlines with spaces and merge consecutive whitespace into a single space."""
    text = text.replace("\n", " ")
    return re.sub(r"\s+", " ", text)


def arxiv_to_ar5iv(url: str) -> str:
    """Converts an arxiv.org URL to its ar5iv.org equivalent."""
    return re.sub(r"arxiv\.org", "ar5iv.org", url)


def canonicalize_url(url: str) -> str:
    """Lower-cases scheme and host and drops the fragment, so equal targets compare equal."""
    parsed = urlparse(url)
    parsed = parsed._replace(
        scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower(), fragment=""
    )
    return arxiv_to_ar5iv(urlunparse(parsed))


def html_to_text(html: str) -> str:
    """Converts an HTML string to plaintext with markdown-style headings and bullets."""
    h = html2text.HTML2Text()
    h.ignore_links = True
    h.ignore_images = True
    h.body_width = 0  # no wrapping
    h.ignore_tables = True
    h.unicode_snob = True
    h.ignore_emphasis = True
    return h.handle(html).strip()


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _keeps_trailing_whitespace(line: str, following: list[str]) -> bool:
    if BULLET_ARTIFACT_RE.match(line):
        return True
    next_line = next((candidate for candidate in following if candidate.strip()), None)
    return next_line is not None and _indent(next_line) > _indent(line)


def _trim_trailing_whitespace(text: str) -> str:
    lines = text.split("\n")
    trimmed = []
    for i, line in enumerate(lines):
        stripped = line.rstrip(" \t")
        if stripped != line and not _keeps_trailing_whitespace(line, lines[i + 1 :]):
            line = stripped
        trimmed.append(line)
    return "\n".join(trimmed)


def clean_text(text: str) -> str:
    """Whitespace and escaping cleanup applied to converted page text."""
    text = text.replace("\u00a0", " ")
    # html2text escapes things that look like markdown list markers
    text = ESCAPED_NUMERAL_RE.sub(r"\1.", text)
    text = ESCAPED_BULLET_RE.sub(r"\1\2", text)
    text = EMPTY_LINE_RE.sub("", text)
    text = INTERNAL_WHITESPACE_RE.sub(" ", text)
    text = _trim_trailing_whitespace(text)
    text = HEADING_RE.sub("\\1\n\n", text)
    text = EXTRA_NEWLINE_RE.sub("\n\n", text)
    return text


class _TreeRewriter:
    """
    Walks a parsed page once and emits markup in which links and images are
    already replaced by their text form. Collects the link table on the way.
    """

    def __init__(self, cur_url: str):
        self.cur_url = cur_url
        self.cur_domain = get_domain(cur_url).lower()
        self.urls: dict[str, str] = {}
        self.urls_rev: dict[str, str] = {}
        self.num_images = 0
        self.parts: list[str] = []

    def rewrite(self, root: lxml.html.HtmlElement) -> str:
        self._emit(root)
        return "".join(self.parts)

    def _emit(self, node: lxml.html.HtmlElement) -> None:
        tag = node.tag
        if not isinstance(tag, str):  # comments, processing instructions
            return
        tag = tag.lower()
        if tag == "math":
            return
        if tag == "img":
            self._emit_text(self._image_placeholder(node))
            return
        if tag == "a" and (replacement := self._link_replacement(node)) is not None:
            self._emit_text(replacement)
            return

        attrs = "".join(
            f' {name}="{html_lib.escape(value)}"' for name, value in node.attrib.items()
        )
        self.parts.append(f"<{tag}{attrs}>")
        self._emit_text(node.text)
        for child in node:
            self._emit(child)
            self._emit_text(child.tail)
        if tag not in VOID_ELEMENTS:
            self.parts.append(f"</{tag}>")

    def _emit_text(self, text: str | None) -> None:
        if text:
            self.parts.append(html_lib.escape(text, quote=False))

    def _image_placeholder(self, img: lxml.html.HtmlElement) -> str:
        image_name = merge_whitespace(img.get("alt") or img.get("title") or "").strip()
        if image_name:
            replacement = f"[Image {self.num_images}: {image_name}]"
        else:
            replacement = f"[Image {self.num_images}]"
        self.num_images += 1
        return replacement

    def _link_replacement(self, a: lxml.html.HtmlElement) -> str | None:
        """Returns the text that replaces an anchor, or None to keep the anchor's content."""
        link = (a.get("href") or "").strip()
        if not link or link.startswith(("mailto:", "javascript:")):
            return None
        raw_text = "".join(a.itertext())
        text = merge_whitespace(raw_text).strip().replace(CITATION_SEP, "‡")
        if not text:  # Probably an image
            return None
        # whitespace at the edges of the anchor goes outside the marker
        lead = " " if raw_text[:1].isspace() else ""
        trail = " " if raw_text[-1:].isspace() else ""
        if link.startswith("#"):
            return f"{lead}{text}{trail}"
        try:
            # works with both absolute and relative links
            joined = urljoin(self.cur_url, link)
            # domain of the link as written, before the ar5iv rewrite
            domain = urlparse(joined).netloc.lower()
            link = canonicalize_url(joined)
        except ValueError:
            domain = ""
        if not domain:
            logger.debug("SKIPPING LINK WITH URL %s", link)
            return f"{lead}{text}{trail}"
        if (link_id := self.urls_rev.get(link)) is None:
            link_id = f"{len(self.urls)}"
            self.urls[link_id] = link
            self.urls_rev[link] = link_id
        if domain == self.cur_domain:
            marker = f"{CITATION_OPEN}{link_id}{CITATION_SEP}{text}{CITATION_CLOSE}"
        else:
            marker = (
                f"{CITATION_OPEN}{link_id}{CITATION_SEP}{text}"
                f"{CITATION_SEP}{domain}{CITATION_CLOSE}"
            )
        return f"{lead}{marker}{trail}"


def _extract_title(root: lxml.html.HtmlElement, url: str, title: str | None) -> str:
    if title:
        return title
    title_element = next(root.iter("title"), None)
    if title_element is not None and (title_text := title_element.text_content().strip()):
        return title_text
    return get_domain(url)


def _url_header(url: str, display_urls: bool) -> str:
    return f"\nURL: {url}\n" if display_urls else ""


def process_plain_text(
    html: str, url: str, title: str | None, display_urls: bool = False
) -> Document:
    """Tag-stripping fallback for markup lxml cannot parse. Produces no links."""
    text = HTML_BLOCK_BOUNDARY_RE.sub("\n", html)
    text = html_lib.unescape(HTML_TAG_RE.sub("", text))
    text = clean_text(text.strip())
    return Document(
        url=url,
        text=_url_header(url, display_urls) + text,
        title=title or get_domain(url),
        links={},
    )


def process_source(html: str, url: str) -> Document:
    """Shows raw markup as-is, for `view-source:` pages. Produces no links."""
    text = _replace_special_chars(remove_unicode_smp(html))
    return Document(url=url, text=_url_header(url, True) + text, title=url, links={})


def process_html(
    html: str,
    url: str,
    title: str | None,
    display_urls: bool = False,
) -> Document:
    """
    Convert raw HTML into a model-readable Document.

    Processing Pipeline:
    1. Remove SMP characters and swap out glyphs reserved for citation markers
    2. Turn <sup>/<sub> into ^{...}/_{...}; separate words glued by tags
    3. Parse HTML into an lxml tree (falls back to tag stripping on failure)
    4. Pick the title: explicit, <title>, then the URL's domain
    5. Walk the tree, emitting link markers, image placeholders, and no math
    6. Convert to plaintext with html2text and clean up whitespace

    Args:
        html: Raw HTML string
        url: The page URL (used for resolving relative links)
        title: Optional explicit title (otherwise extracted from <title> tag)
        display_urls: Whether to show the URL at the top of the text

    Example:
        >>> page = process_html('<a href="/page">Click here</a>', "https://example.com", None)
        >>> page.text
        '⟦0†Click here⟧'
        >>> page.links
        {'0': 'https://example.com/page'}
    """
    html = remove_unicode_smp(html)
    html = _replace_special_chars(html)
    html = HTML_SUP_RE.sub(r"^{\2}", html)
    html = HTML_SUB_RE.sub(r"_{\2}", html)
    # add spaces between tags such as table cells
    html = HTML_TAGS_SEQ_RE.sub(r" \1", html)

    try:
        root = lxml.html.fromstring(html)
        final_title = _extract_title(root, url, title)
        rewriter = _TreeRewriter(url)
        clean_html = rewriter.rewrite(root)
    except (lxml.etree.LxmlError, ValueError, RecursionError) as e:
        logger.debug("Falling back to plain text for %s: %s", url, e)
        return process_plain_text(html, url, title, display_urls=display_urls)

    text = clean_text(html_to_text(clean_html))

    # html2text may drop content (e.g. inside <head>); keep only links that survived
    referenced = set(LINK_ID_RE.findall(text))
    urls = {link_id: link for link_id, link in rewriter.urls.items() if link_id in referenced}

    return Document(
        url=url,
        text=_url_header(url, display_urls) + text,
        title=final_title,
        links=urls,
    )
