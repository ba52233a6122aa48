from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def slugify(value: str) -> str:
    """Lowercase ASCII slug: runs of anything but ``a-z0-9`` become one dash."""
    text = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return text.strip("-")[:200]


class Category(BaseModel):
    domain: str = ""
    nicename: str = ""
    name: str = ""


class AttachmentRecord(BaseModel):
    post_id: str
    parent_id: str
    url: str
    title: str = "Attachment"


class PostRecord(BaseModel):
    """One ``<item>`` of a WXR export, normalized at parse time."""

    model_config = ConfigDict(str_strip_whitespace=True)

    post_id: str = ""
    title: str = ""
    slug: str = ""
    content: str = ""
    excerpt: str = ""
    link: str = ""
    pub_date: str = ""
    post_date: str = ""
    post_date_gmt: str = ""
    modified_date: str = ""
    modified_date_gmt: str = ""
    creator: str = ""
    post_type: str = ""
    status: str = ""
    parent_id: str = ""
    attachment_url: str = ""
    categories: List[Category] = Field(default_factory=list)
    meta: Dict[str, str] = Field(default_factory=dict)

    @property
    def primary_category(self) -> Optional[Category]:
        return next((c for c in self.categories if c.domain == "category"), None)

    @property
    def is_published_post(self) -> bool:
        return self.post_type == "post" and self.status == "publish"


class UploadedAsset(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int
    url: str = ""
    name: str = ""
    document_id: Optional[str] = Field(None, alias="documentId")


class SeoData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meta_title: str = Field(..., alias="metaTitle")
    meta_description: str = Field("", alias="metaDescription")

    @field_validator("meta_description", mode="before")
    @classmethod
    def _limit_description(cls, v: Optional[str]):
        return (v or "")[:160]


class RichTextBlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    component: str = Field("shared.rich-text", alias="__component")
    body: str = ""


class TargetEntry(BaseModel):
    """Payload for an article or knowledgebase entry."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    title: str = Field(..., min_length=1)
    description: str = ""
    slug: Optional[str] = None
    cover: Optional[int] = None
    author: Optional[int] = None
    blocks: List[RichTextBlock] = Field(default_factory=list)
    published_at: Optional[datetime] = Field(None, alias="publishedAt")
    custom_created_at: Optional[str] = None
    custom_published_at: Optional[str] = None
    seo: Optional[SeoData] = None

    @field_validator("description", mode="before")
    @classmethod
    def _short_description(cls, v: Optional[str]):
        text = re.sub(r"<[^>]+>", "", v or "")
        return re.sub(r"\s+", " ", text).strip()[:80]

    @field_validator("slug", mode="before")
    @classmethod
    def _ensure_slug(cls, v: Optional[str], info):  # type: ignore[override]
        if v is not None and v.strip():
            return v
        title = info.data.get("title")
        if isinstance(title, str) and title.strip():
            return slugify(title)
        return v

    def to_strapi_payload(self, relation_field: str, category_id: Optional[int]) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="json")
        data[relation_field] = category_id
        return {"data": data}


class RedirectEntry(BaseModel):
    from_path: str
    to_path: str
    type: str = "permanent"

    def to_line(self) -> str:
        return f"{self.from_path} {self.to_path} 301"
