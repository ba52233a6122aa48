"""
HTML clean-up for WordPress post bodies.

WordPress content exported from sites built with page builders carries
shortcodes, builder-specific classes and data attributes, comments and image
tags pointing at resized variants that will not exist after the migration.
:func:`sanitize_html` strips all of that and makes images responsive.  It is
a pure text transform and running it on its own output returns the same
string.
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

__all__ = [
    "sanitize_html",
    "extract_image_urls",
    "rewrite_image_urls",
    "merge_responsive_style",
]

_SHORTCODE_RE = re.compile(
    r"\[/?(?:caption|elementor-[\w-]*|vc_[\w-]*|et_pb_[\w-]*)(?:\s[^\]]*)?\]",
    flags=re.IGNORECASE,
)
_SIZE_ATTRIBUTES = ("width", "height", "srcset", "sizes")
_RESPONSIVE = (("max-width", "100%"), ("height", "auto"))


def _split_declarations(style: str) -> List[str]:
    """Split a style attribute on ``;`` outside parentheses and quotes."""
    parts = []
    current = []
    depth = 0
    quote = None
    for char in style:
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == ";" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def merge_responsive_style(style: Optional[str]) -> str:
    """Return ``style`` with ``max-width: 100%`` and ``height: auto`` enforced.

    Other declarations are kept in their original order.  Values containing
    ``;`` inside ``url(...)`` or quotes (data URIs) stay intact.
    """
    declarations = []
    for part in _split_declarations(style or ""):
        if ":" not in part:
            continue
        name, value = part.split(":", 1)
        name = name.strip().lower()
        if not name or name in dict(_RESPONSIVE):
            continue
        declarations.append((name, value.strip()))
    declarations.extend(_RESPONSIVE)
    return "; ".join(f"{name}: {value}" for name, value in declarations) + ";"


def _clean_builder_attributes(tag: Tag) -> None:
    for attr in [a for a in tag.attrs if a.lower().startswith("data-elementor")]:
        del tag[attr]
    classes = tag.get("class")
    if classes is None:
        return
    if isinstance(classes, str):
        classes = classes.split()
    kept = [c for c in classes if not c.lower().startswith("elementor")]
    if kept:
        tag["class"] = kept
    else:
        del tag["class"]


def _strip_shortcodes(text: str) -> str:
    # Nested tokens like "[[caption]caption]" only disappear after several passes.
    while True:
        stripped = _SHORTCODE_RE.sub("", text)
        if stripped == text:
            return text
        text = stripped


def sanitize_html(html: str) -> str:
    """Strip page-builder markup and normalize ``<img>`` tags.

    Shortcodes are removed from the parsed text nodes rather than from the
    raw markup, so entity-encoded brackets (``&#91;caption&#93;``) are
    handled the same way on the first run as on later ones.
    """
    if not html or not html.strip():
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for bad in soup.find_all(["script", "style"]):
        bad.decompose()
    # Removing comments and scripts can leave a token split over two strings.
    soup.smooth()

    for text in soup.find_all(string=True):
        if type(text) is not NavigableString:
            continue
        stripped = _strip_shortcodes(str(text))
        if stripped != text:
            text.replace_with(NavigableString(stripped))

    for tag in soup.find_all(True):
        _clean_builder_attributes(tag)
        if tag.name == "img":
            for attr in _SIZE_ATTRIBUTES:
                if attr in tag.attrs:
                    del tag[attr]
            tag["style"] = merge_responsive_style(tag.get("style"))

    return str(soup).strip()


def extract_image_urls(html: str) -> List[str]:
    """Return the ``src`` of every ``<img>`` in document order."""
    if not html or "<img" not in html.lower():
        return []
    soup = BeautifulSoup(html, "html.parser")
    urls = []
    for img in soup.find_all("img"):
        src = img.get("src")
        if isinstance(src, list):
            src = src[0] if src else ""
        if src and src.strip():
            urls.append(src.strip())
    return urls


def rewrite_image_urls(html: str, lookup: Callable[[str], Optional[str]]) -> str:
    """Replace image ``src`` (and links to image files) using ``lookup``.

    ``lookup`` receives the original URL and returns the new one, or ``None``
    to leave the attribute untouched.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    changed = False
    for tag, attr in [(t, "src") for t in soup.find_all("img")] + [(t, "href") for t in soup.find_all("a")]:
        value = tag.get(attr)
        if not isinstance(value, str) or not value:
            continue
        new_value = lookup(value)
        if new_value and new_value != value:
            tag[attr] = new_value
            changed = True
    return str(soup) if changed else html
