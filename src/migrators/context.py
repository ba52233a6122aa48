"""
Working state of one import run.

Everything the importer remembers between posts lives on a
:class:`MigrationContext`; a new context is created for every run, so two
runs (or two tests) never share caches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple

from models.strapi_entry import UploadedAsset
from src.utils.redirects import RedirectLedger


@dataclass
class MigrationStats:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    redirects: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "redirects": self.redirects,
        }


@dataclass
class MigrationContext:
    # (collection, slug) pairs created or found during this run
    handled_slugs: Set[Tuple[str, str]] = field(default_factory=set)
    category_ids: Dict[str, Optional[int]] = field(default_factory=dict)
    author_id: Optional[int] = None
    author_resolved: bool = False
    uploaded_images: Dict[str, UploadedAsset] = field(default_factory=dict)
    redirects: RedirectLedger = field(default_factory=RedirectLedger)
    stats: MigrationStats = field(default_factory=MigrationStats)
