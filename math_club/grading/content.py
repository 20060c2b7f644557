"""
Rich-text helpers for essay answers.

Essay answers come from a rich-text editor as HTML, possibly with pasted
photos of handwritten work embedded as base64 data URIs.
"""

import html
import re

_IMG_TAG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_DATA_IMAGE_SRC = re.compile(
    r"<img[^>]+src=[\"']?(data:image/[^\"'\s>]+)[\"']?[^>]*>",
    re.IGNORECASE,
)
_LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_PARAGRAPH_END = re.compile(r"</p>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")


def strip_html(text: str) -> str:
    """Strip tags but keep text content, turning breaks into newlines."""
    text = _LINE_BREAK.sub("\n", text)
    text = _PARAGRAPH_END.sub("\n", text)
    text = _TAG.sub("", text)
    return html.unescape(text).replace("\xa0", " ").strip()


def extract_inline_images(text: str) -> list[str]:
    """Return the data URIs of all inline base64 images."""
    return [m.group(1) for m in _DATA_IMAGE_SRC.finditer(text) if m.group(1)]


def has_essay_content(text: str | None) -> bool:
    """An essay has content if text remains after stripping tags or it embeds an image."""
    if not text:
        return False
    if _IMG_TAG.search(text):
        return True
    return bool(strip_html(text))
