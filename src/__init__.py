"""
Top-level package for the WordPress → Strapi migration utility.

This package bundles all components required to read a WordPress WXR
export, upload media to the Strapi media library, create article and
knowledgebase entries without duplicates, generate redirect maps and
restore the original publication dates.  Modules are split into
subpackages:

* :mod:`src.extractors` – WXR parsing and the attachment map
* :mod:`src.parsers` – HTML clean-up and Elementor data search
* :mod:`src.migrators` – Strapi API interactions, images, upserts and the
  timestamp backfill
* :mod:`src.utils` – error logging, categories and redirect generation

Each layer has no direct knowledge of configuration or execution
strategy; orchestration is handled in the migration_tool.
"""
