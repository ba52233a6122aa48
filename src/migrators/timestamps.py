"""
Restore original WordPress dates on migrated entries.

Strapi stamps ``created_at``/``updated_at``/``published_at`` with the time of
the API call and ignores them in create payloads, so the historical dates are
written straight into the database in a separate pass.  Entries are matched
to export items by slug, both sides normalized with :func:`slugify`, falling
back to the slugified title.  Items without a matching entry and entries
without a matching item are left alone.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from models.strapi_entry import PostRecord, slugify
from src.extractors.wordpress_extractor import original_dates
from src.utils.categories import TARGETS, ContentType, classify
from src.utils.errors import report_error

logger = logging.getLogger(__name__)


@dataclass
class WordPressDates:
    slug: str
    title: str
    content_type: ContentType
    created: datetime
    modified: datetime
    published: datetime


def collect_wordpress_dates(records: Iterable[PostRecord]) -> List[WordPressDates]:
    """Original dates of every published post in the export."""
    items = []
    for record in records:
        if not record.is_published_post:
            continue
        primary = record.primary_category
        dates = original_dates(record)
        items.append(
            WordPressDates(
                slug=record.slug,
                title=record.title,
                content_type=classify(primary.nicename if primary else None),
                created=dates["created"],
                modified=dates["modified"],
                published=dates["created"],
            )
        )
    return items


class EntryStore(Protocol):
    def fetch_entries(self, table: str) -> List[Dict[str, Any]]: ...

    def update_timestamps(self, table: str, entry_id: Any, created: datetime,
                          updated: datetime, published: datetime) -> None: ...


def database_dsn(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Connection keyword arguments from the ``database`` config section."""
    if cfg.get("url"):
        return {"dsn": cfg["url"]}
    kwargs: Dict[str, Any] = {
        "host": cfg.get("host") or "localhost",
        "port": int(cfg.get("port") or 5432),
        "dbname": cfg.get("name"),
        "user": cfg.get("user"),
        "password": cfg.get("password"),
    }
    if cfg.get("ssl"):
        kwargs["sslmode"] = "require"
    return {k: v for k, v in kwargs.items() if v not in (None, "")}


class PostgresEntryStore:
    """Reads and updates Strapi tables in PostgreSQL."""

    def __init__(self, cfg: Dict[str, Any]) -> None:
        self.cfg = cfg

    def get_connection(self):
        return psycopg2.connect(**database_dsn(self.cfg))

    @contextmanager
    def get_cursor(self) -> Iterator[RealDictCursor]:
        """Cursor with automatic commit/rollback."""
        conn = self.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def check_connection(self) -> datetime:
        with self.get_cursor() as cur:
            cur.execute("SELECT NOW() AS current_time")
            return cur.fetchone()["current_time"]

    def fetch_entries(self, table: str) -> List[Dict[str, Any]]:
        # Table names come from TARGETS, never from user input.
        with self.get_cursor() as cur:
            cur.execute(f"SELECT id, title, slug FROM {table} ORDER BY id")
            return list(cur.fetchall())

    def update_timestamps(self, table: str, entry_id: Any, created: datetime,
                          updated: datetime, published: datetime) -> None:
        with self.get_cursor() as cur:
            cur.execute(
                f"UPDATE {table} SET created_at = %s, updated_at = %s, published_at = %s WHERE id = %s",
                (created, updated, published, entry_id),
            )


def _match(entry: Dict[str, Any], items: List[WordPressDates]) -> Optional[WordPressDates]:
    stored = slugify(str(entry.get("slug") or ""))
    if not stored:
        return None
    for item in items:
        if slugify(item.slug) == stored:
            return item
    for item in items:
        if slugify(item.title) == stored:
            return item
    return None


class TimestampBackfill:
    """Write original WordPress dates onto already-imported entries."""

    def __init__(self, store: EntryStore) -> None:
        self.store = store

    def run(self, records: Iterable[PostRecord]) -> Dict[str, int]:
        """Update every matched entry.  Returns the number updated per table."""
        items = collect_wordpress_dates(records)
        logger.info("Parsed %d published WordPress posts", len(items))
        updated: Dict[str, int] = {}
        for content_type, target in TARGETS.items():
            candidates = [i for i in items if i.content_type == content_type]
            entries = self.store.fetch_entries(target.table)
            logger.info("Found %d entries in %s", len(entries), target.table)
            count = 0
            for entry in entries:
                item = _match(entry, candidates)
                if item is None:
                    continue
                try:
                    self.store.update_timestamps(target.table, entry["id"], item.created, item.modified, item.published)
                except psycopg2.Error as e:
                    report_error("TIMESTAMP_UPDATE", entry, e, table=target.table)
                    continue
                count += 1
                logger.info("Updated %s %s: %s -> %s", target.table, entry.get("slug"),
                            item.created.date(), item.modified.date())
            updated[target.table] = count
        logger.info("Timestamp backfill finished: %s", updated)
        return updated


def database_config_from_env() -> Dict[str, Any]:
    return {
        "url": os.getenv("DATABASE_URL", ""),
        "host": os.getenv("DATABASE_HOST", ""),
        "port": os.getenv("DATABASE_PORT", ""),
        "name": os.getenv("DATABASE_NAME", ""),
        "user": os.getenv("DATABASE_USERNAME", ""),
        "password": os.getenv("DATABASE_PASSWORD", ""),
        "ssl": os.getenv("DATABASE_SSL", "").lower() == "true",
    }
