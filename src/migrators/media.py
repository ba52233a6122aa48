"""
Image handling: size-variant deduplication, download/upload to the Strapi
media library and cover image resolution.

WordPress stores every uploaded image in several sizes, distinguished by a
``-<width>x<height>`` suffix before the extension.  All variants of one file
share a *base identity* (the URL with the suffix removed) and are uploaded at
most once per run.

Uploads to Strapi backed by S3 sometimes answer 500 although the file was
stored.  A 5xx answer is therefore never taken at face value: the media
library is listed and searched by file name before the upload is considered
lost.  The upload itself is never repeated.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

import requests
from pydantic import ValidationError

from models.strapi_entry import AttachmentRecord, PostRecord, UploadedAsset
from src.migrators.context import MigrationContext
from src.migrators.strapi_migrator import StrapiClient, entry_field
from src.parsers.elementor import elementor_cover_url
from src.parsers.html_cleaner import extract_image_urls, rewrite_image_urls
from src.utils.errors import DownloadError, StrapiAPIError, report_error, report_ok

logger = logging.getLogger(__name__)

_SIZE_SUFFIX_RE = re.compile(r"-\d+x\d+(\.[A-Za-z0-9]+)$")


def _asset_from_file(item: Any) -> UploadedAsset:
    """Validate a v5 (flat) or v4 (``attributes``) media library file."""
    if isinstance(item, dict) and isinstance(item.get("attributes"), dict):
        item = {"id": item.get("id"), **item["attributes"]}
    return UploadedAsset.model_validate(item)


def base_image_url(url: str) -> str:
    """Strip query, fragment and a WordPress ``-WxH`` size suffix from ``url``."""
    parts = urlsplit(url.strip())
    path = _SIZE_SUFFIX_RE.sub(r"\1", parts.path)
    return parts._replace(path=path, query="", fragment="").geturl()


def resolve_main_images(urls: Iterable[str]) -> List[str]:
    """Keep the first URL seen for each base identity, preserving order."""
    seen = set()
    main: List[str] = []
    for url in urls:
        key = base_image_url(url)
        if key in seen:
            continue
        seen.add(key)
        main.append(url)
    return main


def image_filename(url: str) -> str:
    name = unquote(os.path.basename(urlsplit(url).path))
    return name or "image.jpg"


class ImagePipeline:
    """
    Download remote images and store them in the Strapi media library.

    :param client: Strapi client used for uploads and media lookups.
    :param context: Run context; holds the per-run upload cache.
    :param dry_run: When true nothing is downloaded or uploaded.
    :param session: HTTP session used for downloads.
    """

    def __init__(
        self,
        client: StrapiClient,
        context: MigrationContext,
        *,
        dry_run: bool = False,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.client = client
        self.context = context
        self.dry_run = dry_run
        self.session = session or requests.Session()
        self.timeout = timeout

    def download(self, url: str) -> Tuple[bytes, str]:
        """Fetch ``url`` and return ``(content, content_type)``.

        :raises DownloadError: on a non-2xx status or a network error.
        """
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise DownloadError(url, reason=str(e)) from e
        if not 200 <= resp.status_code < 300:
            raise DownloadError(url, status=resp.status_code)
        content_type = (resp.headers.get("Content-Type") or "").split(";")[0].strip()
        if not content_type:
            content_type = mimetypes.guess_type(image_filename(url))[0] or "image/jpeg"
        return resp.content, content_type

    def find_uploaded_file(self, filename: str) -> Optional[UploadedAsset]:
        """Look ``filename`` up in the media library.

        An exact name match wins over a match on the base name (Strapi may
        append a hash to stored names).  Among several matches the newest
        file is returned.
        """
        try:
            files = self.client.list_upload_files()
        except (StrapiAPIError, requests.RequestException, ValueError) as e:
            logger.warning("Could not list media library while verifying %s: %s", filename, e)
            return None

        stem = os.path.splitext(filename)[0]

        def newest(matches: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            return max(matches, key=lambda f: f.get("id") or 0) if matches else None

        exact = newest([f for f in files if entry_field(f, "name") == filename])
        if exact is None and stem:
            exact = newest([f for f in files if str(entry_field(f, "name") or "").startswith(stem)])
        if exact is None:
            return None
        try:
            return _asset_from_file(exact)
        except ValidationError as e:
            logger.warning("Media library entry for %s is unusable: %s", filename, e)
            return None

    def upload(self, url: str, content: bytes, content_type: str) -> Optional[UploadedAsset]:
        filename = image_filename(url)
        try:
            resp = self.client.upload_file(filename, content, content_type)
        except requests.RequestException as e:
            report_error("MEDIA_UPLOAD", None, e, url=url)
            return None

        if 200 <= resp.status_code < 300:
            try:
                body = resp.json() if resp.content else []
                if isinstance(body, dict) and "data" in body:
                    body = body["data"]
                files = body if isinstance(body, list) else [body]
                if not files or not files[0]:
                    raise ValueError("empty upload response")
                return _asset_from_file(files[0])
            except (ValueError, ValidationError) as e:
                report_error("MEDIA_UPLOAD", None, e, url=url, status=resp.status_code,
                             body=(resp.text or "")[:300])
                return None

        if resp.status_code >= 500:
            logger.warning("Upload of %s answered %s, checking the media library", filename, resp.status_code)
            found = self.find_uploaded_file(filename)
            if found is not None:
                report_ok("MEDIA_RECOVERED", None, {"url": url, "file": found.name, "id": found.id})
                return found

        report_error("MEDIA_UPLOAD", None, url=url, status=resp.status_code, body=(resp.text or "")[:300])
        return None

    def download_and_upload(self, url: str) -> Optional[UploadedAsset]:
        """Return the uploaded asset for ``url`` or ``None`` if it cannot be obtained."""
        if not url:
            return None
        key = base_image_url(url)
        cached = self.context.uploaded_images.get(key)
        if cached is not None:
            return cached
        if self.dry_run:
            logger.info("Dry-run: would upload %s", url)
            return None

        try:
            content, content_type = self.download(url)
        except DownloadError as e:
            report_error("DOWNLOAD", None, e, url=url)
            return None

        asset = self.upload(url, content, content_type)
        if asset is not None:
            self.context.uploaded_images[key] = asset
            logger.info("Uploaded %s as %s (id %s)", url, asset.name, asset.id)
        return asset

    def upload_content_images(self, html: str) -> Tuple[str, List[UploadedAsset]]:
        """Upload the main images of ``html`` and point every variant at the upload.

        Returns the rewritten HTML and the uploaded assets in document order.
        """
        main = resolve_main_images(extract_image_urls(html))
        assets: List[UploadedAsset] = []
        for url in main:
            asset = self.download_and_upload(url)
            if asset is not None:
                assets.append(asset)
        if not assets:
            return html, assets

        def lookup(url: str) -> Optional[str]:
            asset = self.context.uploaded_images.get(base_image_url(url))
            return asset.url if asset is not None and asset.url else None

        return rewrite_image_urls(html, lookup), assets


def cover_candidates(post: PostRecord, attachments: Dict[str, List[AttachmentRecord]]) -> Iterator[Tuple[str, str]]:
    """Yield ``(source, url)`` cover candidates in priority order.

    1. the first WordPress attachment of the post,
    2. the main images of the post body,
    3. the first background image in the Elementor data.

    Sources are evaluated lazily so the Elementor JSON is only parsed when
    the earlier sources did not produce a cover.
    """
    post_attachments = attachments.get(post.post_id) or []
    if post_attachments:
        yield "attachment", post_attachments[0].url

    for url in resolve_main_images(extract_image_urls(post.content)):
        yield "content", url

    raw = post.meta.get("_elementor_data", "")
    if raw:
        try:
            url = elementor_cover_url(raw)
        except ValueError as e:
            report_error("ELEMENTOR_DATA", post, e)
            url = None
        if url:
            yield "elementor", url


def resolve_cover_image(
    post: PostRecord,
    attachments: Dict[str, List[AttachmentRecord]],
    pipeline: ImagePipeline,
) -> Optional[UploadedAsset]:
    """Upload and return the first cover candidate that can be obtained."""
    for source, url in cover_candidates(post, attachments):
        asset = pipeline.download_and_upload(url)
        if asset is not None:
            logger.info("Cover for '%s' from %s: %s", post.slug, source, url)
            return asset
    logger.info("No cover image found for '%s'", post.slug)
    return None
