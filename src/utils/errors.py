"""
Per-post event reports and the exception types of the importer.

Every skipped post, failed image and created or already existing entry is
written as one JSON object per line to ``reports/migration/errors.jsonl`` or
``reports/migration/success.jsonl``, next to the regular log output, so a
run can be audited (or grepped for a slug) after it finished.

``report_error``
    Record a failure for a post or image.  The exception text, when given,
    ends up in the ``error`` field.

``report_ok``
    Record a completed step, with optional fields such as the collection and
    entry id.

``ERRORS`` holds the message printed for each event code; unknown codes are
written as-is.

Setup errors (configuration, unreadable export) abort the run; everything
else is contained at the post or image level by the callers.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Failure and success codes share one table.
ERRORS: Dict[str, str] = {
    "NO_TITLE": "Post has no title",
    "NO_SLUG": "Post has no usable slug",
    "DOWNLOAD": "Failed to download image",
    "MEDIA_UPLOAD": "Failed to upload media to Strapi",
    "MEDIA_RECOVERED": "Upload returned a server error but the file exists",
    "ELEMENTOR_DATA": "Could not read Elementor data",
    "STRAPI_NETWORK": "Network error communicating with Strapi",
    "EXISTENCE_CHECK": "Could not check for an existing entry",
    "DUPLICATE_SWEEP": "Failed to remove duplicate entries",
    "DUPLICATE_REMOVED": "Removed duplicate entry",
    "ENTRY_CREATED": "Entry created successfully",
    "ENTRY_EXISTS": "Entry already exists",
    "TIMESTAMP_UPDATE": "Failed to update timestamps",
}

_REPORT_DIR = os.path.join("reports", "migration")
_ERROR_LOG = os.path.join(_REPORT_DIR, "errors.jsonl")
_OK_LOG = os.path.join(_REPORT_DIR, "success.jsonl")


def _write_jsonl(path: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``path``."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, default=str)
        f.write("\n")


def _post_field(post: Any, name: str) -> Optional[str]:
    if post is None:
        return None
    if isinstance(post, dict):
        return post.get(name)
    return getattr(post, name, None)


def report_error(code: str, post: Any, exc: Optional[BaseException] = None, **extra: Any) -> None:
    """Append a failure event to ``errors.jsonl`` and log it.

    ``post`` is a :class:`PostRecord`, a dict or ``None`` (image-level events);
    only its ``slug`` and ``title`` are copied.  ``extra`` keyword arguments
    such as ``url`` or ``collection`` are stored alongside.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {
        "code": code,
        "message": message,
        "slug": _post_field(post, "slug"),
        "title": _post_field(post, "title"),
    }
    entry.update(extra)
    if exc is not None:
        entry["error"] = str(exc)
    logger.error("%s - %s%s", message, entry["slug"] or "", f" ({exc})" if exc is not None else "")
    _write_jsonl(_ERROR_LOG, entry)


def report_ok(code: str, post: Any, extra: Optional[Dict[str, Any]] = None) -> None:
    """Append a success event to ``success.jsonl``, merging ``extra`` into it."""
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {
        "code": code,
        "message": message,
        "slug": _post_field(post, "slug"),
        "title": _post_field(post, "title"),
    }
    if extra:
        entry.update(extra)
    logger.info("%s - %s", message, entry["slug"] or "")
    _write_jsonl(_OK_LOG, entry)


###############################################################################
# Exceptions
###############################################################################

class MigrationError(Exception):
    """Base class for every error raised by the migration tool."""


class ConfigurationError(MigrationError):
    """Missing or invalid configuration (for example no API token)."""


class MalformedExportError(MigrationError):
    """The WXR document is not well-formed or has no ``rss/channel``."""


class DownloadError(MigrationError):
    """A remote image could not be fetched."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = "") -> None:
        self.url = url
        self.status = status
        detail = f"HTTP {status}" if status is not None else reason
        super().__init__(f"Failed to download {url}: {detail}")


class StrapiAPIError(MigrationError):
    """Non-2xx answer from the Strapi REST API."""

    def __init__(self, method: str, endpoint: str, status: int, body: str = "") -> None:
        self.method = method
        self.endpoint = endpoint
        self.status = status
        self.body = body
        super().__init__(f"Strapi API error: {method} {endpoint} -> {status} {body[:300]}")


class DuplicateSlugError(StrapiAPIError):
    """Strapi rejected a create call because the slug is already taken."""
