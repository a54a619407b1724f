"""
Tools for fetching rustdoc JSON from the Rust distribution server.

This package provides tools for:
- Resolving and verifying channel manifests
- Locating a package archive for a target
- Verifying and selectively extracting tar archives
- Searching the extracted docs by item name

Main modules:
- download_docs_json: Complete fetch-verify-extract pipeline
- channel_manifest: Manifest URLs, checksum sidecars and package lookup
- expand_archive: Archive checksums and wildcard extraction
- doc_seeker: Load, merge and search rustdoc JSON
"""

from .download_docs_json import main as download_docs_json_main

__all__ = ["download_docs_json_main"]
