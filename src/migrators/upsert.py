"""
Idempotent creation of Strapi entries from WordPress posts.

A slug maps to at most one entry per collection, across repeated and
interrupted runs.  For every post the engine goes through::

    unseen -> checking -> exists
                       -> creating -> created

1. A slug already handled in this run for the same collection short-circuits
   to ``exists``.
2. Otherwise the collection is queried by slug; a hit is ``exists``.
3. The slug is marked as handled *before* any image work starts.
4. Cover and body images are uploaded, the HTML is cleaned and the entry is
   created once.  Strapi rejecting the slug as a duplicate counts as
   ``exists``.
5. After creation the collection is queried again and every other entry with
   the same slug is deleted (Strapi has been seen to store two entries for a
   single create call).

Every path that ends in ``exists`` or ``created`` records a redirect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from models.strapi_entry import AttachmentRecord, PostRecord, RichTextBlock, SeoData, TargetEntry, slugify
from src.extractors.wordpress_extractor import original_dates
from src.migrators.context import MigrationContext
from src.migrators.media import ImagePipeline, resolve_cover_image
from src.migrators.strapi_migrator import StrapiClient, entry_field
from src.parsers.html_cleaner import sanitize_html
from src.utils.categories import ContentType, Target, classify, is_known_category, target_for
from src.utils.errors import DuplicateSlugError, MigrationError, StrapiAPIError, report_error, report_ok
from src.utils.redirects import wordpress_path

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    existed: bool
    content_type: ContentType
    slug: str
    entry_id: Optional[int] = None
    redirect_to: Optional[str] = None


def entry_identifiers(entry: Dict[str, Any]) -> List[Any]:
    """Identifiers to try when deleting ``entry``: numeric id, then documentId."""
    ids = []
    for name in ("id", "documentId"):
        value = entry_field(entry, name)
        if value not in (None, "") and value not in ids:
            ids.append(value)
    return ids


class UpsertEngine:
    """
    Create-if-absent for posts, scoped to one :class:`MigrationContext`.

    :param client: Strapi client.
    :param pipeline: Image pipeline used for covers and body images.
    :param context: Run context holding the handled-slug set and caches.
    :param attachments: Attachment map built from the same export.
    :param options: ``migration`` section of the configuration.
    """

    def __init__(
        self,
        client: StrapiClient,
        pipeline: ImagePipeline,
        context: MigrationContext,
        attachments: Dict[str, List[AttachmentRecord]],
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.client = client
        self.pipeline = pipeline
        self.context = context
        self.attachments = attachments
        self.options = options or {}
        self.dry_run = bool(self.options.get("dry_run"))

    # -- references ----------------------------------------------------------

    def ensure_author(self) -> Optional[int]:
        """Find or create the author every migrated entry is attributed to."""
        if self.context.author_resolved:
            return self.context.author_id
        self.context.author_resolved = True
        author = dict(self.options.get("author") or {})
        name = author.get("name") or "Content Team"
        if self.dry_run:
            return None
        try:
            found = self.client.find_by_field("authors", "name", name)
            if found:
                self.context.author_id = entry_field(found[0], "id")
            else:
                created = self.client.create_entry("authors", {"data": {**author, "name": name}})
                self.context.author_id = entry_field(created, "id")
                logger.info("Created default author %s", name)
        except (StrapiAPIError, requests.RequestException) as e:
            logger.error("Failed to resolve default author %s: %s", name, e)
        return self.context.author_id

    def ensure_category(self, target: Target) -> Optional[int]:
        """Find or create the default category of ``target``'s collection."""
        key = f"{target.category_collection}:{target.category_slug}"
        if key in self.context.category_ids:
            return self.context.category_ids[key]
        category_id = None
        if not self.dry_run:
            try:
                found = self.client.find_by_slug(target.category_collection, target.category_slug)
                if found:
                    category_id = entry_field(found[0], "id")
                else:
                    created = self.client.create_entry(
                        target.category_collection,
                        {"data": {
                            "name": target.category_name,
                            "slug": target.category_slug,
                            "description": target.category_name,
                        }},
                    )
                    category_id = entry_field(created, "id")
                    logger.info("Created category %s in %s", target.category_name, target.category_collection)
            except (StrapiAPIError, requests.RequestException) as e:
                logger.error("Failed to create/get category %s: %s", target.category_name, e)
        self.context.category_ids[key] = category_id
        return category_id

    # -- state machine -------------------------------------------------------

    def _record_redirect(self, post: PostRecord, target: Target, slug: str) -> str:
        to_path = target.public_path(slug)
        self.context.redirects.record(wordpress_path(post.link), to_path)
        return to_path

    def _exists(self, post: PostRecord, content_type: ContentType, target: Target, slug: str,
                entry_id: Optional[int] = None) -> UpsertResult:
        self.context.handled_slugs.add((target.collection, slug))
        redirect_to = self._record_redirect(post, target, slug)
        return UpsertResult(True, content_type, slug, entry_id, redirect_to)

    def upsert(self, post: PostRecord) -> UpsertResult:
        """
        Create the entry for ``post`` unless it already exists.

        :raises StrapiAPIError: if the create call fails for a reason other
            than a duplicate slug.
        :raises requests.RequestException: on network failure while creating.
        :raises MigrationError: if neither the post nor its title yields a slug.
        """
        slug = post.slug or slugify(post.title)
        if not slug:
            raise MigrationError(f"No usable slug for post {post.post_id or post.title!r}")
        primary = post.primary_category
        nicename = primary.nicename if primary else None
        content_type = classify(nicename)
        target = target_for(content_type)

        if nicename and not is_known_category(nicename):
            logger.info("Unsupported category '%s' for '%s', adding to knowledgebase", nicename, slug)

        handled_key = (target.collection, slug)

        # unseen -> exists (already handled in this run)
        if handled_key in self.context.handled_slugs:
            logger.info("Skipping duplicate slug (in-memory): %s", slug)
            return self._exists(post, content_type, target, slug)

        # checking
        if not self.dry_run:
            try:
                existing = self.client.find_by_slug(target.collection, slug)
            except (StrapiAPIError, requests.RequestException) as e:
                report_error("EXISTENCE_CHECK", post, e)
                existing = []
            if existing:
                entry_id = entry_field(existing[0], "id")
                logger.info("%s already exists: %s (ID: %s)", content_type.value, slug, entry_id)
                report_ok("ENTRY_EXISTS", post, {"collection": target.collection, "id": entry_id})
                return self._exists(post, content_type, target, slug, entry_id)

        # creating: the slug counts as handled from here on, whatever happens next
        self.context.handled_slugs.add(handled_key)
        payload = self.build_payload(post, target, slug)

        if self.dry_run:
            logger.info("Dry-run: would create %s %s", content_type.value, slug)
            redirect_to = self._record_redirect(post, target, slug)
            return UpsertResult(False, content_type, slug, None, redirect_to)

        try:
            created = self.client.create_entry(target.collection, payload)
        except DuplicateSlugError:
            logger.warning("Strapi rejected duplicate slug %s in %s, treating as existing", slug, target.collection)
            return self._exists(post, content_type, target, slug)

        entry_id = entry_field(created, "id")
        report_ok("ENTRY_CREATED", post, {"collection": target.collection, "id": entry_id})
        self.remove_duplicates(target.collection, slug, entry_id)
        redirect_to = self._record_redirect(post, target, slug)
        return UpsertResult(False, content_type, slug, entry_id, redirect_to)

    # -- payload -------------------------------------------------------------

    def build_payload(self, post: PostRecord, target: Target, slug: str) -> Dict[str, Any]:
        """Upload images, clean the body and assemble the create payload."""
        html = post.content
        if self.options.get("upload_content_images", True):
            html, _ = self.pipeline.upload_content_images(html)
        cover = resolve_cover_image(post, self.attachments, self.pipeline)
        dates = original_dates(post)
        created = dates["created"]

        entry = TargetEntry(
            title=post.title,
            description=post.excerpt or post.title,
            slug=slug,
            cover=cover.id if cover is not None else None,
            author=self.ensure_author(),
            blocks=[RichTextBlock(body=sanitize_html(html))],
            publishedAt=created,
            custom_created_at=created.date().isoformat(),
            custom_published_at=created.isoformat(),
            seo=SeoData(metaTitle=post.title, metaDescription=post.excerpt or post.title),
        )
        return entry.to_strapi_payload(target.category_field, self.ensure_category(target))

    # -- duplicate sweep -----------------------------------------------------

    def remove_duplicates(self, collection: str, slug: str, keep_id: Any) -> int:
        """Delete every entry of ``collection`` with ``slug`` except ``keep_id``.

        Failures are logged; the kept entry is never touched.  Returns the
        number of entries removed.
        """
        if keep_id is None:
            logger.warning("Create response for %s in %s had no id, skipping duplicate sweep", slug, collection)
            return 0
        try:
            records = self.client.find_by_slug(collection, slug)
        except (StrapiAPIError, requests.RequestException) as e:
            report_error("DUPLICATE_SWEEP", {"slug": slug}, e, collection=collection)
            return 0
        duplicates = [r for r in records if entry_field(r, "id") != keep_id]
        if not duplicates:
            return 0

        logger.warning("Found %d records with slug %s in %s, removing duplicates", len(records), slug, collection)
        removed = 0
        for duplicate in duplicates:
            if delete_with_fallback(self.client, collection, duplicate):
                removed += 1
                report_ok("DUPLICATE_REMOVED", {"slug": slug}, {"collection": collection, "id": entry_field(duplicate, "id")})
            else:
                report_error("DUPLICATE_SWEEP", {"slug": slug}, collection=collection, id=entry_field(duplicate, "id"))
        return removed


def delete_with_fallback(client: StrapiClient, collection: str, entry: Dict[str, Any]) -> bool:
    """Delete ``entry`` by numeric id, falling back to its documentId."""
    last_error: Optional[Exception] = None
    for identifier in entry_identifiers(entry):
        try:
            client.delete_entry(collection, identifier)
            return True
        except (StrapiAPIError, requests.RequestException) as e:
            logger.warning("Deleting %s/%s failed: %s", collection, identifier, e)
            last_error = e
    if last_error is None:
        logger.error("Entry in %s has no identifier to delete by", collection)
    return False
