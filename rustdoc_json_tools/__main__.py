"""
Entry point for running the package as a script.

Usage:
    python -m rustdoc_json_tools [TOOLCHAIN_VERSION] --output-dir doc-json
"""

from .download_docs_json import main

if __name__ == "__main__":
    main()
