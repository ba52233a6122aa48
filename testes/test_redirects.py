import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import csv

import pytest

from src.utils.redirects import RedirectLedger, generate_redirects_csv, wordpress_path


@pytest.mark.parametrize(
    "permalink, expected",
    [
        ("https://example.com/2024/07/05/hello/", "/2024/07/05/hello/"),
        ("http://example.com/?p=123", "/"),
        ("https://example.com", "/"),
        ("/relative/path/", "/"),
        ("not a url", "/"),
        ("", "/"),
    ],
)
def test_wordpress_path(permalink, expected):
    assert wordpress_path(permalink) == expected


def test_ledger_writes_one_line_per_redirect(tmp_path):
    ledger = RedirectLedger()
    ledger.record("/2024/07/05/a/", "/blog/a")
    ledger.record("/2024/07/05/b/", "/knowledgebase/b")
    out = tmp_path / "_redirects"

    ledger.flush(str(out))

    assert out.read_text(encoding="utf-8") == (
        "/2024/07/05/a/ /blog/a 301\n"
        "/2024/07/05/b/ /knowledgebase/b 301\n"
    )
    assert len(ledger) == 2


def test_flush_replaces_previous_file(tmp_path):
    out = tmp_path / "_redirects"
    out.write_text("/old /new 301\n", encoding="utf-8")

    RedirectLedger().flush(str(out))

    assert out.read_text(encoding="utf-8") == ""


def test_csv_uses_absolute_urls(tmp_path):
    ledger = RedirectLedger()
    ledger.record("/2024/07/05/a/", "/blog/a")
    out = tmp_path / "map.csv"

    generate_redirects_csv(ledger.entries, old_domain="https://old.example.com/", new_base="https://new.example.com",
                           out_path=str(out))

    with open(out, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows == [["OldURL", "NewURL"], ["https://old.example.com/2024/07/05/a/", "https://new.example.com/blog/a"]]
