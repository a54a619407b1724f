#!/usr/bin/env python3
"""
Download rustdoc JSON for the Rust standard library.

This script automates the whole fetch:
1. Picks the channel manifest (latest nightly, or a dated toolchain)
2. Downloads the manifest and its .sha256 sidecar
3. Verifies the manifest checksum
4. Locates [pkg.rust-docs-json-preview.target.x86_64-unknown-linux-gnu]
5. Reads the archive URL and hash from that section
6. Downloads the archive
7. Verifies the archive checksum
8. Extracts share/doc/rust/json/* into the output directory

Every step is fatal on error. The output directory must already exist.

Usage:
    python -m rustdoc_json_tools                    # latest nightly
    python -m rustdoc_json_tools 2024-06-01         # dated nightly
    python -m rustdoc_json_tools --output-dir docs

Requirements:
    - Python 3.12+ (tomllib, tarfile extraction filters)
    - zstandard module: pip install zstandard
"""

import argparse
import os
import sys
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from .channel_manifest import (
    ARCHIVE_FIELDS,
    DEFAULT_CHANNEL,
    DEFAULT_DIST_SERVER,
    PackageArchive,
    find_package_archive,
    load_manifest,
    manifest_filename,
    manifest_url,
    verify_manifest_checksum,
)
from .expand_archive import extract_members, verify_sha256

# ============================================================================
# Configuration
# ============================================================================

DEFAULT_OUTPUT_DIR = "doc-json"
DEFAULT_PACKAGE = "rust-docs-json-preview"
DEFAULT_TARGET = "x86_64-unknown-linux-gnu"
DEFAULT_COMPRESSION = "xz"
DEFAULT_STRIP_COMPONENTS = 6

# Layout inside the dist tarball: <component>-<channel>-<target>/<package>/share/doc/rust/json/
MEMBER_PATTERN_TEMPLATE = "rust-docs-json-{channel}-{target}/{package}/share/doc/rust/json/*"

# Crates doc_seeker loads by default
EXPECTED_CRATES = ["core.json", "alloc.json", "std.json"]


@dataclass
class DocsJsonConfig:
    """Settings for one fetch; every field has the stock default."""

    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    dist_server: str = DEFAULT_DIST_SERVER
    channel: str = DEFAULT_CHANNEL
    package: str = DEFAULT_PACKAGE
    target: str = DEFAULT_TARGET
    compression: str = DEFAULT_COMPRESSION
    strip_components: int = DEFAULT_STRIP_COMPONENTS
    member_pattern: str | None = None
    show_progress: bool = True

    def resolved_member_pattern(self) -> str:
        if self.member_pattern:
            return self.member_pattern
        return MEMBER_PATTERN_TEMPLATE.format(channel=self.channel, target=self.target, package=self.package)


# ============================================================================
# Utility Functions
# ============================================================================


def print_section(title: str) -> None:
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def download_file(url: str, output_path: Path | str, show_progress: bool = True) -> None:
    """Download a file with progress indication."""
    print(f"Downloading from: {url}")
    print(f"Saving to: {output_path}")

    output_path = Path(output_path)
    breadcrumb_path = Path(str(output_path) + ".downloading")

    # A marker left by an interrupted run means the file on disk is truncated
    if breadcrumb_path.exists():
        print(f"⚠️  Found incomplete download marker: {breadcrumb_path.name}")
        if output_path.exists():
            print(f"Removing partial download: {output_path}")
            output_path.unlink()
        breadcrumb_path.unlink()

    breadcrumb_path.touch()

    def report_progress(block_num: int, block_size: int, total_size: int) -> None:
        if show_progress and total_size > 0:
            downloaded = block_num * block_size
            percent = min(100, (downloaded / total_size) * 100)
            mb_downloaded = min(downloaded, total_size) / (1024 * 1024)
            mb_total = total_size / (1024 * 1024)
            print(f"\rProgress: {percent:5.1f}% ({mb_downloaded:6.1f} MB / {mb_total:6.1f} MB)", end="", flush=True)

    try:
        urllib.request.urlretrieve(url, output_path, reporthook=report_progress)
        if show_progress:
            print()  # New line after progress
        breadcrumb_path.unlink(missing_ok=True)
    except (KeyboardInterrupt, Exception):
        # Partial file and breadcrumb go; the error still propagates
        if output_path.exists():
            output_path.unlink()
        breadcrumb_path.unlink(missing_ok=True)
        raise


# ============================================================================
# Manifest
# ============================================================================


def fetch_manifest(
    out_dir: Path,
    toolchain_version: str | None = None,
    dist_server: str = DEFAULT_DIST_SERVER,
    channel: str = DEFAULT_CHANNEL,
) -> Path:
    """Download the channel manifest and its sidecar, then verify it."""
    print_section("STEP 1: DOWNLOAD CHANNEL MANIFEST")

    if toolchain_version:
        print(f"using {channel} toolchain version {toolchain_version}")
    else:
        print(f"using latest {channel}")

    url = manifest_url(toolchain_version, dist_server, channel)
    manifest_path = out_dir / manifest_filename(channel)
    checksum_path = Path(str(manifest_path) + ".sha256")

    download_file(url, manifest_path, show_progress=False)
    download_file(url + ".sha256", checksum_path, show_progress=False)

    print_section("STEP 2: VERIFY MANIFEST")
    verify_manifest_checksum(manifest_path, checksum_path)

    return manifest_path


# ============================================================================
# Archive
# ============================================================================


def fetch_archive(out_dir: Path, archive: PackageArchive, show_progress: bool = True) -> Path:
    """Download the package archive and verify it against the manifest hash."""
    print_section("STEP 4: DOWNLOAD ARCHIVE")

    archive_path = out_dir / archive.filename
    download_file(archive.url, archive_path, show_progress=show_progress)

    print(f"\nDownloaded: {archive_path}")
    print(f"Size: {archive_path.stat().st_size / (1024*1024):.2f} MB")

    print_section("STEP 5: VERIFY ARCHIVE")
    verify_sha256(archive_path, archive.sha256)

    return archive_path


def summarize_docs(paths: list[Path]) -> None:
    """Print the extracted doc files and flag missing core crates."""
    print(f"Extracted {len(paths)} files:")
    for path in paths:
        size_mb = path.stat().st_size / (1024 * 1024)
        print(f"  {path.name:<30} {size_mb:6.1f} MB")

    names = {path.name for path in paths}
    missing = [crate for crate in EXPECTED_CRATES if crate not in names]
    if missing:
        print(f"⚠️  WARNING: Missing expected crate docs: {', '.join(missing)}")


# ============================================================================
# Pipeline
# ============================================================================


def run_pipeline(config: DocsJsonConfig, toolchain_version: str | None = None) -> list[Path]:
    """
    Fetch, verify and extract rustdoc JSON.

    Args:
        config: Fetch settings
        toolchain_version: Dated toolchain, or None for the latest

    Returns:
        Sorted paths of the extracted files

    Raises:
        FileNotFoundError: If the output directory does not exist
    """
    out_dir = Path(config.output_dir)
    if not out_dir.is_dir():
        raise FileNotFoundError(f"Output directory not found: {out_dir} (create it first)")

    manifest_path = fetch_manifest(out_dir, toolchain_version, config.dist_server, config.channel)

    print_section("STEP 3: LOCATE PACKAGE")
    archive = find_package_archive(load_manifest(manifest_path), config.package, config.target, config.compression)
    print(f"Manifest date: {archive.manifest_date or 'unknown'}")
    print(f"Section: [pkg.{archive.package}.target.{archive.target}]")
    print(f"URL:     {archive.url}")
    print(f"SHA256:  {archive.sha256}")

    archive_path = fetch_archive(out_dir, archive, show_progress=config.show_progress)

    print_section("STEP 6: EXTRACT DOCS")
    extracted = extract_members(
        archive_path,
        out_dir,
        config.resolved_member_pattern(),
        strip=config.strip_components,
        compression=config.compression,
    )
    summarize_docs(extracted)

    print(f"\nFiles successfully unarchived to {config.output_dir}")
    return extracted


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the download script."""
    parser = argparse.ArgumentParser(description="Download and extract rustdoc JSON for the standard library")
    parser.add_argument(
        "toolchain_version",
        nargs="?",
        default=None,
        help="Dated toolchain (e.g. 2024-06-01); default: latest nightly",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(DEFAULT_OUTPUT_DIR),
        help=f"Existing output directory (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--dist-server",
        default=os.environ.get("RUSTUP_DIST_SERVER", DEFAULT_DIST_SERVER),
        help=f"Distribution server (default: $RUSTUP_DIST_SERVER or {DEFAULT_DIST_SERVER})",
    )
    parser.add_argument("--channel", default=DEFAULT_CHANNEL, help=f"Release channel (default: {DEFAULT_CHANNEL})")
    parser.add_argument("--package", default=DEFAULT_PACKAGE, help=f"Manifest package (default: {DEFAULT_PACKAGE})")
    parser.add_argument("--target", default=DEFAULT_TARGET, help=f"Target triple (default: {DEFAULT_TARGET})")
    parser.add_argument(
        "--compression",
        choices=list(ARCHIVE_FIELDS),
        default=DEFAULT_COMPRESSION,
        help=f"Archive flavour to fetch (default: {DEFAULT_COMPRESSION})",
    )
    parser.add_argument(
        "--strip-components",
        type=int,
        default=DEFAULT_STRIP_COMPONENTS,
        help=f"Leading path components to strip (default: {DEFAULT_STRIP_COMPONENTS})",
    )
    parser.add_argument("--pattern", default=None, help="Override the wildcard selecting archive members")
    parser.add_argument("--no-progress", action="store_true", help="Do not print download progress")

    args = parser.parse_args(argv)

    config = DocsJsonConfig(
        output_dir=args.output_dir,
        dist_server=args.dist_server,
        channel=args.channel,
        package=args.package,
        target=args.target,
        compression=args.compression,
        strip_components=args.strip_components,
        member_pattern=args.pattern,
        show_progress=not args.no_progress,
    )

    try:
        run_pipeline(config, args.toolchain_version)
    except KeyboardInterrupt:
        print("\n\n❌ OPERATION CANCELLED BY USER", file=sys.stderr)
        sys.exit(130)  # Standard exit code for SIGINT
    except Exception as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
