"""
Search helpers for Elementor page-builder data.

Elementor stores a page layout as a JSON tree in the ``_elementor_data``
post meta.  Section backgrounds carry ``{"background_image": {"url": ...}}``
at arbitrary depth.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterator, Optional, Union

JSONTree = Union[dict, list, str, int, float, bool, None]


def _walk(tree: JSONTree) -> Iterator[Any]:
    yield tree
    if isinstance(tree, dict):
        for value in tree.values():
            yield from _walk(value)
    elif isinstance(tree, list):
        for value in tree:
            yield from _walk(value)


def find_first(tree: JSONTree, predicate: Callable[[Any], bool]) -> Optional[Any]:
    """Return the first node, depth-first in key/index order, matching ``predicate``."""
    for node in _walk(tree):
        if predicate(node):
            return node
    return None


def _has_background_url(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    background = node.get("background_image")
    return isinstance(background, dict) and isinstance(background.get("url"), str) and bool(background["url"].strip())


def find_background_image_url(tree: JSONTree) -> Optional[str]:
    node = find_first(tree, _has_background_url)
    return node["background_image"]["url"].strip() if node is not None else None


def elementor_cover_url(raw: str) -> Optional[str]:
    """Parse raw ``_elementor_data`` and return the first background image URL.

    :raises ValueError: if ``raw`` is not valid JSON.
    """
    if not raw or not raw.strip():
        return None
    return find_background_image_url(json.loads(raw))
