"""
Strapi REST API helpers for the WordPress → Strapi migration.

This module implements the low-level interactions with the Strapi content
API: slug lookups, entry creation and deletion, paginated listing, and the
media library (``/api/upload`` and ``/api/upload/files``).  A simple rate
limiter keeps the importer from flooding the instance, and a generic retry
wrapper handles transient network errors and server-side rate limiting
responses (429 or 5xx).

Retries are only applied to idempotent calls (GET and DELETE).  Creating an
entry or uploading a file is sent exactly once: a blind retry could create
the same entry or file twice, so callers verify ambiguous failures
themselves.

Usage example::

    from src.migrators.strapi_migrator import StrapiClient

    cfg = {"base_url": "http://localhost:1337", "api_token": "..."}
    client = StrapiClient(cfg)
    existing = client.find_by_slug("articles", "my-post")
    if not existing:
        client.create_entry("articles", {"data": {"title": "My post", "slug": "my-post"}})
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from src.utils.errors import DuplicateSlugError, StrapiAPIError

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)

###############################################################################
# Rate limiting and retry utilities
###############################################################################

class RateLimiter:
    """
    Simple time-based rate limiter.  Ensures that no more than ``rpm``
    requests are dispatched per minute.  ``rpm`` of 0 disables the limiter.
    """

    def __init__(self, rpm: int = 300) -> None:
        self.rpm = max(0, rpm)
        self.interval = 60.0 / float(self.rpm) if self.rpm else 0.0
        self._last = 0.0

    def wait(self, time_fn: Callable[[], float] = time.time, sleep_fn: Callable[[float], None] = time.sleep) -> None:
        if not self.interval:
            return
        now = time_fn()
        dt = now - self._last
        if dt < self.interval:
            sleep_fn(self.interval - dt)
        self._last = time_fn()


def strapi_headers(cfg: Dict[str, Any]) -> Dict[str, str]:
    """
    Construct the default headers required for Strapi API requests.

    :param cfg: A configuration dictionary with the ``api_token``.
    :return: A dictionary of headers including Authorization.
    """
    return {
        "Authorization": f"Bearer {cfg['api_token']}",
    }


def with_retries(
    fn: Callable[[], requests.Response],
    *,
    max_attempts: int = 5,
    base_delay: float = 0.7,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Execute a function returning a ``requests.Response``, retrying on
    transient HTTP errors.  Retries are attempted on status codes 429
    (too many requests) and 5xx server errors.  Backoff is exponential.

    :param fn: A zero-argument callable that performs the HTTP request.
    :param max_attempts: Maximum number of attempts before giving up.
    :param base_delay: Base delay in seconds for exponential backoff.
    :return: The last ``requests.Response`` (possibly a non-2xx one).
    :raises requests.RequestException: if every attempt failed at the
        network level.
    """
    attempt = 0
    while True:
        try:
            resp = fn()
        except requests.RequestException:
            if attempt >= max_attempts - 1:
                raise
            sleep_fn(base_delay * (2 ** attempt))
            attempt += 1
            continue
        if resp.status_code not in RETRY_STATUSES or attempt >= max_attempts - 1:
            return resp
        # Use Retry-After header if provided, otherwise exponential backoff
        retry_after = resp.headers.get("Retry-After")
        try:
            wait = float(retry_after) if retry_after else base_delay * (2 ** attempt)
        except ValueError:
            wait = base_delay * (2 ** attempt)
        sleep_fn(wait)
        attempt += 1


def entry_field(entry: Dict[str, Any], name: str) -> Any:
    """Read a field from a Strapi v5 (flat) or v4 (``attributes``) entry."""
    if name in entry:
        return entry[name]
    return (entry.get("attributes") or {}).get(name)


def _is_unique_violation(body: str) -> bool:
    text = body.lower()
    return "unique" in text or "already taken" in text


###############################################################################
# Client
###############################################################################

class StrapiClient:
    """
    Thin wrapper around one Strapi instance.

    ``cfg`` is the ``strapi`` section of the migration configuration:
    ``base_url`` and ``api_token`` are required, ``timeout``,
    ``requests_per_minute``, ``max_attempts`` and ``retry_base_delay`` are
    optional.  A ``requests.Session`` (or any object with the same
    ``request`` method) can be injected.
    """

    def __init__(self, cfg: Dict[str, Any], session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base_url = str(cfg.get("base_url") or "http://localhost:1337").rstrip("/")
        self.timeout = float(cfg.get("timeout") or 30)
        self.session = session or requests.Session()
        self._limiter = RateLimiter(int(cfg.get("requests_per_minute", 300)))
        self._max_attempts = int(cfg.get("max_attempts", 5))
        self._base_delay = float(cfg.get("retry_base_delay", 0.7))

    # -- transport -----------------------------------------------------------

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> requests.Response:
        self._limiter.wait()
        headers = {**strapi_headers(self.cfg), **kwargs.pop("headers", {})}
        return self.session.request(
            method,
            f"{self.base_url}{endpoint}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Any:
        """
        Perform a JSON request and return the decoded body (``{}`` when empty).

        :raises StrapiAPIError: on a non-2xx answer.
        :raises DuplicateSlugError: on a 400 caused by a unique constraint.
        :raises requests.RequestException: on network failure.
        """
        def do_request() -> requests.Response:
            return self._send(method, endpoint, params=params, json=json)

        if retry:
            resp = with_retries(do_request, max_attempts=self._max_attempts, base_delay=self._base_delay)
        else:
            resp = do_request()

        if not 200 <= resp.status_code < 300:
            body = resp.text or ""
            if resp.status_code == 400 and _is_unique_violation(body):
                raise DuplicateSlugError(method, endpoint, resp.status_code, body)
            raise StrapiAPIError(method, endpoint, resp.status_code, body)
        if not resp.content:
            return {}
        return resp.json()

    # -- content entries -----------------------------------------------------

    def find_by_slug(self, collection: str, slug: str) -> List[Dict[str, Any]]:
        """Return every entry of ``collection`` whose slug equals ``slug``."""
        body = self.request("GET", f"/api/{collection}", params={"filters[slug][$eq]": slug})
        return list(body.get("data") or [])

    def find_by_field(self, collection: str, field: str, value: str) -> List[Dict[str, Any]]:
        body = self.request("GET", f"/api/{collection}", params={f"filters[{field}][$eq]": value})
        return list(body.get("data") or [])

    def create_entry(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` (already wrapped in ``{"data": ...}``) once."""
        body = self.request("POST", f"/api/{collection}", json=payload, retry=False)
        return body.get("data") or {}

    def delete_entry(self, collection: str, identifier: Union[int, str]) -> None:
        self.request("DELETE", f"/api/{collection}/{identifier}")

    def list_entries(self, collection: str, page_size: int = 100) -> List[Dict[str, Any]]:
        """Return every entry of ``collection``, following pagination."""
        entries: List[Dict[str, Any]] = []
        page = 1
        while True:
            body = self.request(
                "GET",
                f"/api/{collection}",
                params={"pagination[page]": page, "pagination[pageSize]": page_size},
            )
            data = list(body.get("data") or [])
            entries.extend(data)
            page_count = ((body.get("meta") or {}).get("pagination") or {}).get("pageCount") or 1
            if page >= page_count or not data:
                return entries
            page += 1

    # -- media library -------------------------------------------------------

    def upload_file(self, filename: str, content: bytes, content_type: str) -> requests.Response:
        """
        Send one multipart upload to ``/api/upload``.

        The raw response is returned: a 5xx answer does not necessarily mean
        the file was lost, so the caller decides how to interpret it.
        """
        return self._send("POST", "/api/upload", files={"files": (filename, content, content_type)})

    def list_upload_files(self) -> List[Dict[str, Any]]:
        body = self.request("GET", "/api/upload/files")
        if isinstance(body, dict):
            return list(body.get("data") or body.get("results") or [])
        return list(body or [])
