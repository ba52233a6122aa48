"""
Generation of redirect maps.

Every migrated (or already existing) post contributes one line mapping the
path of its WordPress permalink to its new location.  :class:`RedirectLedger`
collects the lines for one run and writes them to a ``_redirects`` file
(``<from> <to> 301``, the format understood by Netlify/Cloudflare-style
hosts).  :func:`generate_redirects_csv` writes the same mapping with absolute
URLs for tools that expect a spreadsheet.
"""

from __future__ import annotations

import csv
import os
from typing import Iterable, List
from urllib.parse import urlsplit

from models.strapi_entry import RedirectEntry


def wordpress_path(permalink: str) -> str:
    """Return the path component of a WordPress permalink.

    Scheme and host are discarded.  Anything that is not an absolute URL
    yields ``/``.
    """
    if not permalink or not permalink.strip():
        return "/"
    try:
        parts = urlsplit(permalink.strip())
    except ValueError:
        return "/"
    if not parts.scheme or not parts.netloc:
        return "/"
    return parts.path or "/"


class RedirectLedger:
    """Append-only list of redirects for one import run."""

    def __init__(self) -> None:
        self._entries: List[RedirectEntry] = []

    def record(self, from_path: str, to_path: str) -> RedirectEntry:
        entry = RedirectEntry(from_path=from_path, to_path=to_path)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> List[RedirectEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def flush(self, out_path: str = "_redirects") -> str:
        """Write all redirects to ``out_path``, replacing any previous file."""
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            f.write("\n".join(entry.to_line() for entry in self._entries))
            if self._entries:
                f.write("\n")
        return out_path


def generate_redirects_csv(
    entries: Iterable[RedirectEntry], *, old_domain: str, new_base: str, out_path: str = "reports/redirect_map.csv"
) -> str:
    """Generate a CSV mapping old WordPress URLs to new site URLs.

    Parameters
    ----------
    entries:
        Redirect entries collected during the run.
    old_domain:
        Base URL of the legacy WordPress site, prefixed to each source path.
        May be empty, in which case the bare path is written.
    new_base:
        Base URL of the new site, prefixed to each target path.
    out_path:
        Location of the CSV file to be written.  The parent directory is
        created automatically.

    Returns
    -------
    str
        The path of the generated CSV file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["OldURL", "NewURL"])
        for entry in entries:
            old_url = f"{old_domain.rstrip('/')}{entry.from_path}" if old_domain else entry.from_path
            new_url = f"{new_base.rstrip('/')}{entry.to_path}"
            writer.writerow([old_url, new_url])
    return out_path
