import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json

import pytest

import main as cli
from conftest import build_wxr, wxr_item
from src import migration_tool
from src.migration_tool import StrapiMigrationTool, load_config
from src.utils.errors import ConfigurationError, MalformedExportError, StrapiAPIError

HERO = "https://example.com/wp-content/uploads/hero.jpg"
BODY = "https://example.com/wp-content/uploads/body-1024x768.jpg"


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch):
    monkeypatch.setattr(migration_tool, "load_dotenv", lambda *a, **k: False)


@pytest.fixture
def tool(strapi, strapi_cfg):
    strapi.images[HERO] = b"hero"
    strapi.images[BODY] = b"body"

    def make(**migration):
        config = {"strapi": dict(strapi_cfg), "migration": dict(migration)}
        return StrapiMigrationTool(config, session=strapi)

    return make


def _redirect_lines(path="_redirects"):
    with open(path, encoding="utf-8") as f:
        return f.read().splitlines()


def test_end_to_end_scenario(strapi, tool, scenario_wxr):
    stats = tool().migrate_file(scenario_wxr)

    assert stats.as_dict() == {"processed": 3, "skipped": 0, "failed": 0, "redirects": 3}
    assert strapi.slugs("articles") == ["first-news", "second-news"]
    assert strapi.slugs("knowledgebases") == ["an-insight"]

    first, second = strapi.entries("articles")
    hero = next(f for f in strapi.files if f["name"] == "hero.jpg")
    assert first["cover"] == hero["id"]
    assert second["cover"] is None
    assert "https://cdn.test/uploads/body-1024x768.jpg" in first["blocks"][0]["body"]
    assert 'width="1024"' not in first["blocks"][0]["body"]

    assert _redirect_lines() == [
        "/2024/07/05/first-news/ /blog/first-news 301",
        "/2024/07/05/second-news/ /blog/second-news 301",
        "/2024/07/05/an-insight/ /knowledgebase/an-insight 301",
    ]


def test_second_run_creates_nothing(strapi, tool, scenario_wxr):
    tool().migrate_file(scenario_wxr)
    uploads = strapi.count("POST", "/api/upload")
    snapshot = {name: list(entries) for name, entries in strapi.collections.items()}

    stats = tool().migrate_file(scenario_wxr)

    assert stats.processed == 0
    assert stats.skipped == 3
    assert strapi.collections == snapshot
    assert strapi.count("POST", "/api/upload") == uploads
    assert len(_redirect_lines()) == 3


def test_rerun_with_the_same_tool_starts_a_fresh_context(strapi, tool, scenario_wxr):
    migrator = tool()
    migrator.migrate_file(scenario_wxr)
    first_context = migrator.context

    stats = migrator.migrate_file(scenario_wxr)

    assert migrator.context is not first_context
    assert stats.skipped == 3
    assert len(strapi.entries("articles")) == 2


def test_limit_stops_after_n_posts(strapi, tool, scenario_wxr):
    stats = tool(limit=1).migrate_file(scenario_wxr)

    assert stats.processed == 1
    assert strapi.slugs("articles") == ["first-news"]
    assert strapi.entries("knowledgebases") == []


def test_post_without_title_is_skipped(strapi, tool, tmp_path):
    path = tmp_path / "untitled.xml"
    path.write_text(build_wxr(wxr_item(1, "", "untitled"), wxr_item(2, "Titled", "titled", category="news")),
                    encoding="utf-8")

    stats = tool().migrate_file(str(path))

    assert stats.skipped == 1
    assert stats.processed == 1
    assert strapi.slugs("articles") == ["titled"]


def test_posts_without_usable_slug_are_skipped(strapi, tool, tmp_path):
    path = tmp_path / "unslugged.xml"
    path.write_text(
        build_wxr(
            wxr_item(1, "日本語", "", category="news"),
            wxr_item(2, "Русский", "", category="news"),
            wxr_item(3, "Titled", "titled", category="news"),
        ),
        encoding="utf-8",
    )

    stats = tool().migrate_file(str(path))

    assert stats.skipped == 2
    assert stats.processed == 1
    assert stats.redirects == 1
    assert strapi.slugs("articles") == ["titled"]
    assert _redirect_lines() == ["/2024/07/05/titled/ /blog/titled 301"]


def test_one_failing_post_does_not_stop_the_run(strapi, tool, scenario_wxr, monkeypatch):
    migrator = tool()
    create = migrator.client.create_entry

    def flaky(collection, payload):
        if payload["data"].get("slug") == "second-news":
            raise StrapiAPIError("POST", f"/api/{collection}", 500, "Internal Server Error")
        return create(collection, payload)

    monkeypatch.setattr(migrator.client, "create_entry", flaky)

    stats = migrator.migrate_file(scenario_wxr)

    assert stats.failed == 1
    assert stats.processed == 2
    assert strapi.slugs("articles") == ["first-news"]
    errors = [json.loads(line) for line in open(os.path.join("reports", "migration", "errors.jsonl"), encoding="utf-8")]
    assert any(e["slug"] == "second-news" for e in errors)


def test_dry_run_makes_no_calls(strapi, tool, scenario_wxr):
    stats = tool(dry_run=True).migrate_file(scenario_wxr)

    assert strapi.calls == []
    assert stats.processed == 3
    assert len(_redirect_lines()) == 3


def test_redirect_csv_written_when_new_site_is_configured(tool, scenario_wxr):
    tool(new_site_url="https://new.example.com", wordpress_domain="https://example.com").migrate_file(scenario_wxr)

    with open(os.path.join("reports", "redirect_map.csv"), encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert lines[0] == "OldURL,NewURL"
    assert lines[1] == "https://example.com/2024/07/05/first-news/,https://new.example.com/blog/first-news"


def test_malformed_export_aborts_before_any_call(strapi, tool, tmp_path):
    path = tmp_path / "bad.xml"
    path.write_text("<rss><channel><item></rss>", encoding="utf-8")

    with pytest.raises(MalformedExportError):
        tool().migrate_file(str(path))
    assert strapi.calls == []


def test_missing_token_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        StrapiMigrationTool({"strapi": {"api_token": ""}})


def test_token_from_environment_fills_empty_config_value(monkeypatch):
    monkeypatch.setenv("STRAPI_API_TOKEN", " from-env ")
    config = load_config({"strapi": {"api_token": ""}})
    assert config["strapi"]["api_token"] == "from-env"
    assert config["migration"]["redirects_path"] == "_redirects"


def test_load_config_reads_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"strapi": {"base_url": "http://cms", "api_token": "t"},
                                "migration": {"limit": 5}}), encoding="utf-8")

    config = load_config(config_file=str(path))

    assert config["strapi"]["base_url"] == "http://cms"
    assert config["migration"]["limit"] == 5
    assert config["migration"]["dry_run"] is False


def test_main_missing_file_exits_1():
    assert cli.main(["does-not-exist.xml"]) == 1


def test_main_without_token_exits_1(scenario_wxr):
    assert cli.main([scenario_wxr]) == 1


def test_main_dry_run_succeeds_without_token(scenario_wxr):
    assert cli.main([scenario_wxr, "--dry-run", "--limit", "2"]) == 0
    assert len(_redirect_lines()) == 2
