"""
Utility helpers used by the migration tool.

This subpackage exposes convenience functions for structured logging,
content classification and redirect map generation.
"""

from .errors import ERRORS, report_error, report_ok
from .redirects import RedirectLedger, generate_redirects_csv, wordpress_path

__all__ = ["ERRORS", "report_error", "report_ok", "RedirectLedger", "generate_redirects_csv", "wordpress_path"]
