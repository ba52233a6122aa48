"""
Parsers used by the migration pipeline.

* :mod:`src.parsers.html_cleaner` – ``sanitize_html`` and image URL helpers
* :mod:`src.parsers.elementor` – depth-first search in Elementor JSON
"""

from .elementor import find_first, find_background_image_url
from .html_cleaner import sanitize_html, extract_image_urls

__all__ = ["sanitize_html", "extract_image_urls", "find_first", "find_background_image_url"]
