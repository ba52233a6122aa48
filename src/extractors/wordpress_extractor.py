"""
Extractors for WordPress eXtended RSS (WXR) export files.

The export is parsed with :mod:`xml.etree.ElementTree` and each ``<item>`` is
normalized into a :class:`models.strapi_entry.PostRecord` at the boundary:
every field is read through one accessor that returns the stripped text of
the first matching element, or an empty string when the element is absent.
Downstream code never touches the XML tree.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Iterable, Iterator, List, Optional, Union

from models.strapi_entry import AttachmentRecord, Category, PostRecord
from src.utils.errors import MalformedExportError

logger = logging.getLogger(__name__)

CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"
WP_NS_PREFIX = "http://wordpress.org/export/"
DEFAULT_WP_VERSION = "1.2"

Source = Union[str, bytes, os.PathLike]


def _detect_wp_version(channel: ET.Element) -> str:
    """Return the WXR version (``1.0``, ``1.1``, ``1.2``) used by the export."""
    for element in channel.iter():
        tag = element.tag
        if isinstance(tag, str) and tag.startswith("{" + WP_NS_PREFIX):
            return tag[len(WP_NS_PREFIX) + 1:].split("/", 1)[0]
    return DEFAULT_WP_VERSION


def _text(parent: ET.Element, path: str, ns: Dict[str, str]) -> str:
    element = parent.find(path, ns)
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def _parse_root(source: Source) -> ET.Element:
    try:
        if isinstance(source, bytes):
            return ET.fromstring(source)
        if not os.path.exists(source):
            raise FileNotFoundError(f"WordPress export not found: {source}")
        return ET.parse(source).getroot()
    except ET.ParseError as e:
        raise MalformedExportError(f"Export is not well-formed XML: {e}") from e


def _parse_item(item: ET.Element, ns: Dict[str, str]) -> PostRecord:
    categories = [
        Category(
            domain=cat.get("domain", ""),
            nicename=cat.get("nicename", ""),
            name=(cat.text or "").strip(),
        )
        for cat in item.findall("category")
    ]
    meta: Dict[str, str] = {}
    for postmeta in item.findall("wp:postmeta", ns):
        key = _text(postmeta, "wp:meta_key", ns)
        if key and key not in meta:
            element = postmeta.find("wp:meta_value", ns)
            meta[key] = element.text if element is not None and element.text else ""

    return PostRecord(
        post_id=_text(item, "wp:post_id", ns),
        title=_text(item, "title", ns),
        slug=_text(item, "wp:post_name", ns),
        content=_text(item, "content:encoded", ns),
        excerpt=_text(item, "excerpt:encoded", ns),
        link=_text(item, "link", ns),
        pub_date=_text(item, "pubDate", ns),
        post_date=_text(item, "wp:post_date", ns),
        post_date_gmt=_text(item, "wp:post_date_gmt", ns),
        modified_date=_text(item, "wp:post_modified", ns),
        modified_date_gmt=_text(item, "wp:post_modified_gmt", ns),
        creator=_text(item, "dc:creator", ns),
        post_type=_text(item, "wp:post_type", ns),
        status=_text(item, "wp:status", ns),
        parent_id=_text(item, "wp:post_parent", ns),
        attachment_url=_text(item, "wp:attachment_url", ns),
        categories=categories,
        meta=meta,
    )


def iter_items(source: Source) -> Iterator[PostRecord]:
    """Yield a :class:`PostRecord` for every ``<item>`` of a WXR export.

    ``source`` is a file path or the raw document bytes.  Parsing happens
    before the first record is yielded, so a malformed document fails before
    any item is processed.

    :raises FileNotFoundError: if ``source`` is a path that does not exist.
    :raises MalformedExportError: if the XML is not well-formed or the
        document has no ``rss/channel`` element.
    """
    root = _parse_root(source)
    channel = root.find("channel") if root.tag == "rss" else None
    if channel is None:
        raise MalformedExportError("Export has no rss/channel element")

    version = _detect_wp_version(channel)
    ns = {
        "wp": f"{WP_NS_PREFIX}{version}/",
        "excerpt": f"{WP_NS_PREFIX}{version}/excerpt/",
        "content": CONTENT_NS,
        "dc": DC_NS,
    }
    logger.debug("Detected WXR version %s", version)

    def generate() -> Iterator[PostRecord]:
        for item in channel.findall("item"):
            yield _parse_item(item, ns)

    return generate()


def extract_posts_from_xml(file_path: Source) -> List[PostRecord]:
    """Parse every item of the export into a list, in document order."""
    return list(iter_items(file_path))


def published_posts(records: Iterable[PostRecord]) -> List[PostRecord]:
    """Keep only items of post type ``post`` with status ``publish``."""
    return [r for r in records if r.is_published_post]


def build_attachment_map(records: Iterable[PostRecord]) -> Dict[str, List[AttachmentRecord]]:
    """Group attachment items by the id of the post they belong to.

    Unattached media (parent ``0``) and attachments without a URL are left
    out.  Order within each list follows the document.
    """
    attachments: Dict[str, List[AttachmentRecord]] = {}
    for record in records:
        if record.post_type != "attachment":
            continue
        parent = record.parent_id
        if not parent or parent == "0" or not record.attachment_url:
            continue
        attachments.setdefault(parent, []).append(
            AttachmentRecord(
                post_id=record.post_id,
                parent_id=parent,
                url=record.attachment_url,
                title=record.title or "Attachment",
            )
        )
    return attachments


_WP_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_wordpress_date(value: str) -> Optional[datetime]:
    """Parse a WordPress date into an aware UTC datetime.

    ``wp:post_date_gmt`` values (``2024-07-05 10:00:00``) are read as UTC, RFC 822
    ``pubDate`` values are converted to UTC.  Returns ``None`` for empty
    strings, the ``0000-00-00 00:00:00`` placeholder and anything unparsable.
    """
    value = (value or "").strip()
    if not value or value.startswith("0000-00-00"):
        return None
    try:
        return datetime.strptime(value, _WP_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError:
        pass
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def original_dates(record: PostRecord) -> Dict[str, datetime]:
    """Return ``created``/``modified`` datetimes for a post, falling back to now.

    The ``*_gmt`` fields are preferred since ``wp:post_date`` is in the
    site's local time; drafts carry a ``0000-00-00`` GMT placeholder and fall
    through.  Creation falls back post date → pubDate; modification falls back
    modified → creation.  A warning is logged when nothing parses.
    """
    created = (
        parse_wordpress_date(record.post_date_gmt)
        or parse_wordpress_date(record.post_date)
        or parse_wordpress_date(record.pub_date)
    )
    if created is None:
        logger.warning("Failed to parse date for '%s', using current date", record.slug or record.title)
        created = datetime.now(timezone.utc)
    modified = (
        parse_wordpress_date(record.modified_date_gmt)
        or parse_wordpress_date(record.modified_date)
        or created
    )
    return {"created": created, "modified": modified}
