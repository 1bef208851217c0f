"""Plain-text extraction for message bodies.

Providers do not always send a body preview (and mock inboxes rarely do), so the
ingestor derives one from the body. Identifier and keyword matching run against this
text, never against raw HTML.
"""

import html
import re

from bs4 import BeautifulSoup

PREVIEW_LENGTH = 255

_WHITESPACE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def html_to_text(text: str, content_type: str) -> str:
    """Convert HTML to plain text, preserving line structure."""
    if content_type.lower() != "html" or not text.strip():
        return text

    soup = BeautifulSoup(text, "lxml")

    for el in soup(["script", "style", "head", "meta", "link"]):
        el.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(["p", "div", "tr", "li"]):
        tag.insert_before("\n")
        tag.insert_after("\n")

    return html.unescape(soup.get_text(separator=" "))


def normalize_whitespace(text: str) -> str:
    lines = [_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def body_to_text(content: str, content_type: str = "text") -> str:
    """Return whitespace-normalized plain text for a body of either content type."""
    if not content:
        return ""
    return normalize_whitespace(html_to_text(content, content_type))


def make_preview(content: str, content_type: str = "text", length: int = PREVIEW_LENGTH) -> str:
    """Single-line preview of at most `length` characters."""
    text = body_to_text(content, content_type).replace("\n", " ")
    return text[:length]
