from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class ContentType(str, Enum):
    ARTICLE = "article"
    KNOWLEDGEBASE = "knowledgebase"


@dataclass(frozen=True)
class Target:
    """Where posts of one content type end up in Strapi."""

    collection: str
    path_prefix: str
    category_collection: str
    category_field: str
    category_name: str
    category_slug: str
    table: str

    def public_path(self, slug: str) -> str:
        return f"{self.path_prefix}/{slug}"


TARGETS: Dict[ContentType, Target] = {
    ContentType.ARTICLE: Target(
        collection="articles",
        path_prefix="/blog",
        category_collection="categories",
        category_field="category",
        category_name="News",
        category_slug="news",
        table="articles",
    ),
    ContentType.KNOWLEDGEBASE: Target(
        collection="knowledgebases",
        path_prefix="/knowledgebase",
        category_collection="knowledgebase-categories",
        category_field="knowledgebase_category",
        category_name="Insights",
        category_slug="insights",
        table="knowledgebases",
    ),
}

# WordPress category nice names that land in the article collection.
ARTICLE_CATEGORIES = frozenset({"news"})
# Known knowledgebase categories; anything else is logged as unsupported.
KNOWLEDGEBASE_CATEGORIES = frozenset({"insights"})


def classify(nicename: Optional[str]) -> ContentType:
    """
    Map a primary category nice name to a content type.

    Only an exact ``news`` becomes an article.  Every other value, including
    a missing category, goes to the knowledgebase so no post is dropped.
    """
    if isinstance(nicename, str) and nicename in ARTICLE_CATEGORIES:
        return ContentType.ARTICLE
    return ContentType.KNOWLEDGEBASE


def is_known_category(nicename: Optional[str]) -> bool:
    return nicename in ARTICLE_CATEGORIES or nicename in KNOWLEDGEBASE_CATEGORIES


def target_for(content_type: ContentType) -> Target:
    return TARGETS[content_type]
