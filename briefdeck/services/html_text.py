"""HTML to plain text conversion for feed content and scraped pages."""

import re

from bs4 import BeautifulSoup

_NOISE_TAGS = ["script", "style", "noscript", "template", "iframe", "svg"]
_BLOCK_TAGS = {"p", "div", "br", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre", "section", "article"}

_INLINE_WS = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def html_to_text(html: str | None) -> str | None:
    """Strip markup from *html*, keeping paragraph breaks.

    Returns None for None input and an empty string for markup with no text.
    """
    if html is None:
        return None
    if "<" not in html:
        return _normalize_whitespace(html)

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    return _normalize_whitespace(soup.get_text())


def page_to_text(html: str, max_chars: int) -> str:
    """Readable text of a whole page (navigation chrome removed), capped at *max_chars*."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS + ["nav", "footer", "aside", "header", "form"]):
        tag.decompose()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    # Anchors keep their href so relative links survive into extraction
    for anchor in soup.find_all("a", href=True):
        text = anchor.get_text(strip=True)
        anchor.replace_with(f"{text} ({anchor['href']})" if text else anchor["href"])

    text = _normalize_whitespace(soup.get_text())
    return text[:max_chars]


def page_title(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def _normalize_whitespace(text: str) -> str:
    lines = [_INLINE_WS.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()
