#!/usr/bin/env python3
"""
Restore the original WordPress dates of imported articles and knowledgebase
entries directly in the Strapi database.

Reads the same WXR export used for the import, matches entries by slug and
rewrites ``created_at``, ``updated_at`` and ``published_at``.  Connection
settings come from ``DATABASE_URL`` or the ``DATABASE_*`` variables.
"""

import argparse
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import psycopg2  # noqa: E402

from src.migration_tool import configure_logging, load_config  # noqa: E402
from src.extractors.wordpress_extractor import extract_posts_from_xml  # noqa: E402
from src.migrators.timestamps import PostgresEntryStore, TimestampBackfill  # noqa: E402
from src.utils.errors import MalformedExportError  # noqa: E402

DEFAULT_XML = "wordpress/export.xml"


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("xml_path", nargs="?", default=os.getenv("WXR_FILE", DEFAULT_XML))
    parser.add_argument("--config", default=os.path.join("config", "migration_config.json"))
    args = parser.parse_args()

    configure_logging()
    if not os.path.exists(args.xml_path):
        print(f"XML file not found: {args.xml_path}", file=sys.stderr)
        return 1

    config = load_config(config_file=args.config)
    store = PostgresEntryStore(config["database"])
    try:
        print(f"Database connected at {store.check_connection()}")
        records = extract_posts_from_xml(args.xml_path)
        updated = TimestampBackfill(store).run(records)
    except psycopg2.Error as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1
    except MalformedExportError as e:
        print(f"Invalid export: {e}", file=sys.stderr)
        return 1

    print("\n=== Summary ===")
    for table, count in updated.items():
        print(f"Updated {count} rows in {table}")
    print(f"Total records updated: {sum(updated.values())}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
