"""
High-level orchestration of the WordPress → Strapi migration.

This module defines a :class:`StrapiMigrationTool` class that ties together
the extractor, the image pipeline, the upsert engine and the redirect ledger
into a complete pipeline::

    WXR file -> records -> attachment map -> published posts
             -> upsert each post (classify, check, upload images, create)
             -> _redirects file

Configuration is supplied via a JSON file path or directly as a dictionary
and completed from environment variables (``.env`` is loaded with
python-dotenv).  The ``strapi`` section must provide an ``api_token``;
optional migration settings (dry-run, limit, output paths) live under the
``migration`` key and the database used by the timestamp backfill under
``database``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from models.strapi_entry import PostRecord, slugify
from src.extractors.wordpress_extractor import build_attachment_map, extract_posts_from_xml, published_posts
from src.migrators.context import MigrationContext, MigrationStats
from src.migrators.media import ImagePipeline
from src.migrators.strapi_migrator import StrapiClient
from src.migrators.timestamps import PostgresEntryStore, TimestampBackfill, database_config_from_env
from src.migrators.upsert import UpsertEngine
from src.utils.errors import ConfigurationError, report_error
from src.utils.redirects import generate_redirects_csv

LOG_FILE = os.path.join("reports", "migration", "migration.log")

logger = logging.getLogger("migration")


def configure_logging(level: str = "INFO", log_file: Optional[str] = LOG_FILE) -> None:
    """Console and file logging for the whole process.  Safe to call twice."""
    root = logging.getLogger()
    if getattr(root, "_migration_configured", False):
        return
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
    )
    root._migration_configured = True  # type: ignore[attr-defined]


def load_config(config: Optional[Dict[str, Any]] = None, config_file: Optional[str] = None) -> Dict[str, Any]:
    """Merge a config file or dictionary with environment defaults."""
    load_dotenv()
    if config_file and os.path.exists(config_file):
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
    elif config is None:
        # Default configuration
        config = {}

    # Ensure essential keys exist to prevent KeyErrors
    config.setdefault("strapi", {})
    config["strapi"].setdefault("base_url", os.getenv("STRAPI_URL") or os.getenv("PUBLIC_URL") or "http://localhost:1337")
    if not config["strapi"].get("api_token"):
        config["strapi"]["api_token"] = os.getenv("STRAPI_API_TOKEN", "").strip()
    config["strapi"].setdefault("timeout", 30)
    config["strapi"].setdefault("requests_per_minute", 300)

    config.setdefault("migration", {})
    config["migration"].setdefault("dry_run", False)
    config["migration"].setdefault("limit", None)
    config["migration"].setdefault("redirects_path", "_redirects")
    config["migration"].setdefault("wordpress_domain", "")
    config["migration"].setdefault("new_site_url", "")
    config["migration"].setdefault("upload_content_images", True)
    config["migration"].setdefault("author", {"name": "Content Team", "position": "Content Team", "team": "Marketing"})

    config.setdefault("database", {})
    for key, value in database_config_from_env().items():
        if not config["database"].get(key):
            config["database"][key] = value
    return config


class StrapiMigrationTool:
    """
    Encapsulates configuration and the clients needed to migrate a WordPress
    export into Strapi.  Per-run state lives in a fresh
    :class:`MigrationContext` created by :meth:`migrate_posts`, so a tool
    can run several times without leaking caches between runs.  Detailed
    success and failure information is recorded using the
    :mod:`src.utils.errors` module.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        config_file: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = load_config(config, config_file)
        self.dry_run: bool = bool(self.config["migration"].get("dry_run"))
        if not self.config["strapi"].get("api_token") and not self.dry_run:
            raise ConfigurationError("STRAPI_API_TOKEN is required. Please set it in your .env file.")
        self.session = session
        self.client = StrapiClient(self.config["strapi"], session=session)
        self.context = MigrationContext()

    def log_message(self, message: str, level: str = "INFO") -> None:
        logger.log(getattr(logging, level.upper(), logging.INFO), message)

    def extract_posts(self, xml_path: str) -> List[PostRecord]:
        """Parse the export.  Errors propagate: a bad export aborts the run."""
        self.log_message(f"Extracting posts from XML {xml_path}")
        records = extract_posts_from_xml(xml_path)
        self.log_message(f"Found {len(records)} items in XML")
        return records

    def migrate_file(self, xml_path: str) -> MigrationStats:
        return self.migrate_posts(self.extract_posts(xml_path))

    def migrate_posts(self, records: List[PostRecord]) -> MigrationStats:
        """
        Migrate the published posts among ``records`` to Strapi.

        Each post is handled on its own: a failure is logged with its title
        and slug and the run continues with the next post.  The redirect
        file is written once at the end.

        :param records: Every record of the export, attachments included.
        :return: Counters for the run.
        """
        self.context = MigrationContext()
        context = self.context
        options = self.config["migration"]
        limit: Optional[int] = options.get("limit")

        attachments = build_attachment_map(records)
        self.log_message(f"Found {len(attachments)} posts with attachments")
        posts = published_posts(records)
        self.log_message(f"Found {len(posts)} published posts to import")

        pipeline = ImagePipeline(
            self.client,
            context,
            dry_run=self.dry_run,
            session=self.session,
            timeout=float(self.config["strapi"].get("timeout") or 30),
        )
        engine = UpsertEngine(self.client, pipeline, context, attachments, options)

        for count, post in enumerate(posts):
            if limit is not None and count >= limit:
                break
            if not post.title:
                report_error("NO_TITLE", post)
                context.stats.skipped += 1
                continue
            # a title like "日本語" slugifies to nothing
            if not (post.slug or slugify(post.title)):
                report_error("NO_SLUG", post)
                context.stats.skipped += 1
                continue

            self.log_message(f"Processing: {post.title} ({post.slug})")
            try:
                result = engine.upsert(post)
            except Exception as e:
                error_details = e.response.text if getattr(e, "response", None) is not None else str(e)
                report_error("STRAPI_NETWORK", post, e)
                self.log_message(
                    f"Failed to process post '{post.title}' ({post.slug}): {error_details}", "ERROR"
                )
                context.stats.failed += 1
                continue

            if result.existed:
                context.stats.skipped += 1
            else:
                context.stats.processed += 1

        self.write_redirects()
        stats = context.stats
        stats.redirects = len(context.redirects)
        self.log_message(
            f"Import completed: processed={stats.processed} skipped={stats.skipped} "
            f"failed={stats.failed} redirects={stats.redirects}"
        )
        return stats

    def write_redirects(self) -> None:
        options = self.config["migration"]
        try:
            path = self.context.redirects.flush(options.get("redirects_path") or "_redirects")
            self.log_message(f"Generated {len(self.context.redirects)} redirects in {path}")
            if options.get("new_site_url"):
                csv_path = generate_redirects_csv(
                    self.context.redirects.entries,
                    old_domain=options.get("wordpress_domain", ""),
                    new_base=options["new_site_url"],
                )
                self.log_message(f"Redirect CSV generated at {csv_path}")
        except OSError as e:
            self.log_message(f"Failed to write redirects: {e}", "ERROR")

    def backfill_timestamps(self, xml_path: str, store=None) -> Dict[str, int]:
        """Restore original WordPress dates directly in the database."""
        store = store or PostgresEntryStore(self.config["database"])
        return TimestampBackfill(store).run(self.extract_posts(xml_path))
