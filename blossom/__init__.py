"""Blossom static site generator.

This package turns a directory of markdown notes into a deployable blog:
HTML pages, feeds, a sitemap, fingerprinted assets and responsive images.

Builds are incremental. A manifest kept outside the output directory records
each document's content hash and a fingerprint of the generator itself, so
unchanged pages are reused verbatim on the next run.

The main entry point is the CLI module (``blossom build``).
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
