"""
Extractors for WordPress export files.

This subpackage parses WXR (WordPress eXtended RSS) exports into typed
records used by the Strapi migrator.  Field normalization happens once,
at parse time, so the rest of the pipeline works with plain attributes.
"""
