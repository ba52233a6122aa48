"""
Strapi migrators and helpers.

This subpackage provides the Strapi REST client, the image pipeline, the
idempotent upsert engine and the timestamp backfill.  It encapsulates rate
limiting, automatic retries for idempotent calls, header injection and the
verification of ambiguous upload failures.
"""
