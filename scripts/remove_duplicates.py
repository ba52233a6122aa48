#!/usr/bin/env python3
"""
Remove entries that share a slug in the article and knowledgebase
collections.

For every slug with more than one entry the oldest (lowest id) is kept and
the others are deleted, by numeric id first and by documentId if that fails.
"""

import argparse
import os
import sys
from collections import defaultdict
from typing import Any, Dict, List

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.migration_tool import configure_logging, load_config  # noqa: E402
from src.migrators.strapi_migrator import StrapiClient, entry_field  # noqa: E402
from src.migrators.upsert import delete_with_fallback  # noqa: E402
from src.utils.categories import TARGETS  # noqa: E402
from src.utils.errors import ConfigurationError  # noqa: E402


def find_duplicates(entries: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group ``entries`` by slug, keeping only slugs with more than one entry.

    Each group is sorted by id, oldest first.
    """
    groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for entry in entries:
        groups[str(entry_field(entry, "slug") or "")].append(entry)
    return {
        slug: sorted(group, key=lambda e: entry_field(e, "id") or 0)
        for slug, group in groups.items()
        if slug and len(group) > 1
    }


def remove_duplicates(client: StrapiClient, collection: str, dry_run: bool = False) -> int:
    entries = client.list_entries(collection)
    print(f"   Found {len(entries)} entries in {collection}")
    duplicates = find_duplicates(entries)
    if not duplicates:
        print(f"   No duplicates in {collection}")
        return 0

    removed = 0
    for slug, group in duplicates.items():
        keep, extra = group[0], group[1:]
        print(f"   Slug {slug}: keeping ID {entry_field(keep, 'id')}, removing {len(extra)}")
        for entry in extra:
            if dry_run:
                print(f"     Dry-run: would remove ID {entry_field(entry, 'id')}")
                continue
            if delete_with_fallback(client, collection, entry):
                removed += 1
                print(f"     Removed ID {entry_field(entry, 'id')}")
            else:
                print(f"     Failed to remove ID {entry_field(entry, 'id')}")
    return removed


def main() -> int:
    parser = argparse.ArgumentParser(description="Remove duplicate slugs from Strapi collections.")
    parser.add_argument("--config", default=os.path.join("config", "migration_config.json"))
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    configure_logging()
    config = load_config(config_file=args.config)
    if not config["strapi"].get("api_token"):
        print(ConfigurationError("STRAPI_API_TOKEN is required."), file=sys.stderr)
        return 1

    client = StrapiClient(config["strapi"])
    total = 0
    for target in TARGETS.values():
        print(f"\nChecking {target.collection}...")
        total += remove_duplicates(client, target.collection, dry_run=args.dry_run)
    print(f"\nRemoved {total} duplicate entries")
    return 0


if __name__ == "__main__":
    sys.exit(main())
