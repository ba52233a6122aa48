import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from src.utils.categories import TARGETS, ContentType, classify, is_known_category, target_for


def test_news_is_an_article():
    assert classify("news") is ContentType.ARTICLE


@pytest.mark.parametrize("nicename", ["insights", "News", " news", "events", "", None, 42])
def test_everything_else_goes_to_the_knowledgebase(nicename):
    assert classify(nicename) is ContentType.KNOWLEDGEBASE


def test_known_categories():
    assert is_known_category("news")
    assert is_known_category("insights")
    assert not is_known_category("events")
    assert not is_known_category(None)


def test_targets_cover_every_content_type():
    assert set(TARGETS) == set(ContentType)
    article = target_for(ContentType.ARTICLE)
    assert article.collection == "articles"
    assert article.public_path("hello") == "/blog/hello"
    kb = target_for(ContentType.KNOWLEDGEBASE)
    assert kb.collection == "knowledgebases"
    assert kb.category_field == "knowledgebase_category"
    assert kb.public_path("hello") == "/knowledgebase/hello"
