"""
Entry point for the WordPress to Strapi migration tool.
"""

import argparse
import os
import sys

import psycopg2

from src.migration_tool import StrapiMigrationTool, configure_logging, load_config
from src.utils.errors import MigrationError
from src.utils.pre_flight_checks import PreFlightCheckError, run_strapi_pre_flight_checks

CONFIG_FILE = "config/migration_config.json"
DEFAULT_XML = "wordpress/export.xml"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Import a WordPress WXR export into Strapi.")
    parser.add_argument("xml_path", nargs="?", default=os.getenv("WXR_FILE", DEFAULT_XML),
                        help=f"WordPress export file (default: {DEFAULT_XML})")
    parser.add_argument("--config", default=CONFIG_FILE, help="JSON configuration file")
    parser.add_argument("--dry-run", action="store_true", help="Parse and log without calling Strapi")
    parser.add_argument("--limit", type=int, default=None, help="Only import the first N published posts")
    parser.add_argument("--with-timestamps", action="store_true",
                        help="Restore original WordPress dates in the database after the import")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main function to run the WordPress to Strapi migration tool.
    Returns the process exit code.
    """
    args = parse_args(argv)
    configure_logging()

    if not os.path.exists(args.xml_path):
        print(f"[ERROR] XML file not found: {args.xml_path}", file=sys.stderr)
        return 1

    overrides = {}
    if args.dry_run:
        overrides["dry_run"] = True
    if args.limit is not None:
        overrides["limit"] = args.limit

    try:
        config = load_config(config_file=args.config)
        config["migration"].update(overrides)
        tool = StrapiMigrationTool(config)
        tool.log_message("Starting WordPress to Strapi migration.")
        tool.log_message(f"Target URL: {tool.client.base_url}", level="DEBUG")

        if not tool.dry_run:
            run_strapi_pre_flight_checks(tool.config)

        records = tool.extract_posts(args.xml_path)
        tool.migrate_posts(records)

        if args.with_timestamps and not tool.dry_run:
            tool.log_message("Updating original WordPress timestamps.")
            tool.backfill_timestamps(args.xml_path)
    except (MigrationError, PreFlightCheckError, psycopg2.Error) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    tool.log_message("Migration process finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
