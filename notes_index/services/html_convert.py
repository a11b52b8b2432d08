"""HTML note content helpers: markdown conversion, hashing, image detection."""

from __future__ import annotations

import hashlib
import re

from bs4 import BeautifulSoup, NavigableString, Tag

from notes_index.config.logger import app_logger

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_SPACES_RE = re.compile(r"[ \t]{2,}")
_IMG_RE = re.compile(r"<img\b", re.IGNORECASE)

_HEADINGS = {"h1": "#", "h2": "##", "h3": "###", "h4": "####", "h5": "#####", "h6": "######"}
_BLOCKS = {"p", "div", "br", "tr", "table", "blockquote", "pre", "section", "article"}


def compute_content_hash(raw: str) -> str:
    """Return the sha256 hex digest of the raw note markup."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def strip_tags(html: str) -> str:
    """Best-effort plain text: drop tags and collapse whitespace."""
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def has_images(html: str) -> bool:
    return bool(_IMG_RE.search(html))


def _render(node, parts: list[str]) -> None:
    for child in node.children:
        if isinstance(child, NavigableString):
            text = _WS_RE.sub(" ", str(child))
            if text.strip():
                parts.append(text)
            continue
        if not isinstance(child, Tag):
            continue

        name = child.name
        if name in ("script", "style", "head", "title"):
            continue
        if name in _HEADINGS:
            parts.append(f"\n\n{_HEADINGS[name]} {child.get_text(' ', strip=True)}\n\n")
        elif name in ("ul", "ol"):
            parts.append("\n")
            _render(child, parts)
            parts.append("\n")
        elif name == "li":
            parts.append("\n- ")
            _render(child, parts)
        elif name in ("b", "strong"):
            text = child.get_text(" ", strip=True)
            if text:
                parts.append(f"**{text}**")
        elif name in ("i", "em"):
            text = child.get_text(" ", strip=True)
            if text:
                parts.append(f"_{text}_")
        elif name == "a":
            text = child.get_text(" ", strip=True)
            href = child.get("href")
            parts.append(f"[{text}]({href})" if href and text else text)
        elif name == "img":
            parts.append("![image]")
        elif name == "br":
            parts.append("\n")
        elif name in _BLOCKS:
            parts.append("\n\n")
            _render(child, parts)
            parts.append("\n\n")
        else:
            _render(child, parts)


def _convert(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup
    parts: list[str] = []
    _render(root, parts)
    lines = [_SPACES_RE.sub(" ", line).strip() for line in "".join(parts).splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def html_to_markdown(html: str) -> str:
    """Convert note HTML to markdown-flavoured text.

    Conversion errors degrade to strip_tags() instead of failing the note.
    """
    if not html:
        return ""
    try:
        return _convert(html)
    except Exception as exc:
        app_logger.warning(f"HTML conversion failed, falling back to tag stripping: {exc}")
        return strip_tags(html)
