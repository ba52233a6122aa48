import json
import os
import sys
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import pytest

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

BASE_URL = "http://strapi.test"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, *, content: Optional[bytes] = None,
                 headers: Optional[Dict[str, str]] = None) -> None:
        self.status_code = status_code
        if content is None:
            content = b"" if body is None else json.dumps(body).encode("utf-8")
        self.content = content
        self.headers = headers or {}

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))


class FakeStrapi:
    """In-memory Strapi instance plus a tiny image host, usable as a session."""

    def __init__(self) -> None:
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.files: List[Dict[str, Any]] = []
        self.images: Dict[str, bytes] = {}
        self.calls: List[tuple] = []
        self._next_id = 1
        # behaviour switches
        self.upload_status = 200
        self.persist_on_error = False
        self.unique_slugs = False
        self.double_insert_slugs: set = set()
        self.failing_numeric_deletes = False
        self.failing_gets: set = set()

    # -- helpers -------------------------------------------------------------

    def _new_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_entry(self, collection: str, **data: Any) -> Dict[str, Any]:
        entry = {"id": self._new_id(), "documentId": uuid.uuid4().hex[:12], **data}
        self.collections.setdefault(collection, []).append(entry)
        return entry

    def entries(self, collection: str) -> List[Dict[str, Any]]:
        return self.collections.get(collection, [])

    def slugs(self, collection: str) -> List[str]:
        return [e.get("slug") for e in self.entries(collection)]

    def count(self, method: str, path_prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(path_prefix))

    # -- session interface ---------------------------------------------------

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        if not url.startswith(BASE_URL):
            self.calls.append(("GET", url))
            if url in self.images:
                return FakeResponse(200, content=self.images[url], headers={"Content-Type": "image/jpeg"})
            return FakeResponse(404, content=b"not found")
        return self.request("GET", url, **kwargs)

    def request(self, method: str, url: str, headers=None, timeout=None, params=None, json=None,
                files=None) -> FakeResponse:
        path = urlsplit(url).path
        self.calls.append((method, path))
        params = params or {}
        parts = path.strip("/").split("/")
        if parts[:2] == ["api", "upload"]:
            if method == "POST":
                return self._upload(files)
            return FakeResponse(200, list(self.files))

        collection = parts[1]
        if method == "GET":
            if collection in self.failing_gets:
                return FakeResponse(400, {"error": {"message": "boom"}})
            data = list(self.entries(collection))
            for key, value in params.items():
                if key.startswith("filters["):
                    field = key[len("filters["):].split("]", 1)[0]
                    data = [e for e in data if e.get(field) == value]
            return FakeResponse(200, {"data": [dict(e) for e in data],
                                      "meta": {"pagination": {"page": 1, "pageCount": 1}}})
        if method == "POST":
            payload = dict(json["data"])
            slug = payload.get("slug")
            if self.unique_slugs and slug and slug in self.slugs(collection):
                return FakeResponse(400, {"error": {"name": "ValidationError",
                                                    "message": "This attribute must be unique"}})
            entry = self.add_entry(collection, **payload)
            if slug in self.double_insert_slugs:
                self.add_entry(collection, **payload)
            return FakeResponse(200, {"data": dict(entry)})
        if method == "DELETE":
            identifier = parts[2]
            if self.failing_numeric_deletes and identifier.isdigit():
                return FakeResponse(404, {"error": {"message": "Not Found"}})
            before = len(self.entries(collection))
            self.collections[collection] = [
                e for e in self.entries(collection)
                if str(e["id"]) != identifier and e["documentId"] != identifier
            ]
            if len(self.entries(collection)) == before:
                return FakeResponse(404, {"error": {"message": "Not Found"}})
            return FakeResponse(200, {})
        return FakeResponse(405)

    def _upload(self, files) -> FakeResponse:
        filename, content, content_type = files["files"]
        stored = None
        if self.upload_status < 300 or self.persist_on_error:
            stored = {
                "id": self._new_id(),
                "name": filename,
                "url": f"https://cdn.test/uploads/{filename}",
                "mime": content_type,
            }
            self.files.append(stored)
        if self.upload_status < 300:
            return FakeResponse(self.upload_status, [stored])
        return FakeResponse(self.upload_status, {"error": {"message": "Internal Server Error"}})


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    """Reports and redirect files land in a temporary directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STRAPI_API_TOKEN", raising=False)
    yield


@pytest.fixture
def strapi():
    return FakeStrapi()


@pytest.fixture
def strapi_cfg():
    return {
        "base_url": BASE_URL,
        "api_token": "test-token",
        "timeout": 5,
        "requests_per_minute": 0,
        "max_attempts": 1,
        "retry_base_delay": 0,
    }


WXR_HEADER = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
    xmlns:excerpt="http://wordpress.org/export/1.2/excerpt/"
    xmlns:content="http://purl.org/rss/1.0/modules/content/"
    xmlns:dc="http://purl.org/dc/elements/1.1/"
    xmlns:wp="http://wordpress.org/export/1.2/">
<channel>
<title>Example</title>
<wp:wxr_version>1.2</wp:wxr_version>
"""
WXR_FOOTER = "</channel>\n</rss>\n"


def wxr_item(post_id, title, slug, *, post_type="post", status="publish", category=None, content="",
             excerpt="", parent="0", attachment_url="", link=None, post_date="2024-07-05 10:00:00",
             modified="2024-07-06 11:30:00", post_date_gmt="", modified_gmt="", meta=None, tags=()):
    cats = ""
    if category:
        cats += f'<category domain="category" nicename="{category}"><![CDATA[{category.title()}]]></category>\n'
    for tag in tags:
        cats += f'<category domain="post_tag" nicename="{tag}"><![CDATA[{tag}]]></category>\n'
    metas = ""
    for key, value in (meta or {}).items():
        metas += (f"<wp:postmeta><wp:meta_key><![CDATA[{key}]]></wp:meta_key>"
                  f"<wp:meta_value><![CDATA[{value}]]></wp:meta_value></wp:postmeta>\n")
    link = link if link is not None else f"https://example.com/2024/07/05/{slug}/"
    return f"""<item>
<title><![CDATA[{title}]]></title>
<link>{link}</link>
<pubDate>Fri, 05 Jul 2024 10:00:00 +0000</pubDate>
<dc:creator><![CDATA[admin]]></dc:creator>
<content:encoded><![CDATA[{content}]]></content:encoded>
<excerpt:encoded><![CDATA[{excerpt}]]></excerpt:encoded>
<wp:post_id>{post_id}</wp:post_id>
<wp:post_date><![CDATA[{post_date}]]></wp:post_date>
<wp:post_modified><![CDATA[{modified}]]></wp:post_modified>
{f"<wp:post_date_gmt><![CDATA[{post_date_gmt}]]></wp:post_date_gmt>" if post_date_gmt else ""}
{f"<wp:post_modified_gmt><![CDATA[{modified_gmt}]]></wp:post_modified_gmt>" if modified_gmt else ""}
<wp:post_name><![CDATA[{slug}]]></wp:post_name>
<wp:status><![CDATA[{status}]]></wp:status>
<wp:post_parent>{parent}</wp:post_parent>
<wp:post_type><![CDATA[{post_type}]]></wp:post_type>
{f"<wp:attachment_url><![CDATA[{attachment_url}]]></wp:attachment_url>" if attachment_url else ""}
{cats}{metas}</item>
"""


def build_wxr(*items: str) -> str:
    return WXR_HEADER + "".join(items) + WXR_FOOTER


@pytest.fixture
def scenario_wxr(tmp_path):
    """Three published posts (two news, one insights) and one attachment."""
    xml = build_wxr(
        wxr_item(10, "First news", "first-news", category="news",
                 content='<p>Hello</p><img src="https://example.com/wp-content/uploads/body-1024x768.jpg" width="1024">'),
        wxr_item(11, "Second news", "second-news", category="news", content="<p>No images here</p>"),
        wxr_item(12, "An insight", "an-insight", category="insights", content="<p>Insight</p>",
                 excerpt="Short insight summary"),
        wxr_item(20, "hero", "hero", post_type="attachment", status="inherit", parent="10",
                 attachment_url="https://example.com/wp-content/uploads/hero.jpg"),
    )
    path = tmp_path / "export.xml"
    path.write_text(xml, encoding="utf-8")
    return str(path)
