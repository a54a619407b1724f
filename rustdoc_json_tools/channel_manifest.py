#!/usr/bin/env python3
"""
Rust channel manifest helpers.

This module:
1. Builds channel manifest URLs (latest or a dated toolchain)
2. Verifies a downloaded manifest against its .sha256 sidecar
3. Parses the manifest (TOML) and locates a package archive for a target

Usage:
    python -m rustdoc_json_tools.channel_manifest channel-rust-nightly.toml \
        --package rust-docs-json-preview --target x86_64-unknown-linux-gnu
"""

import argparse
import hashlib
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_DIST_SERVER = "https://static.rust-lang.org"
DEFAULT_CHANNEL = "nightly"

# Manifest field names holding the archive URL and hash, per compression
ARCHIVE_FIELDS: dict[str, tuple[str, str]] = {
    "xz": ("xz_url", "xz_hash"),
    "gz": ("url", "hash"),
    "zst": ("zst_url", "zst_hash"),
}


@dataclass
class PackageArchive:
    """Download metadata for one package/target entry of a channel manifest."""

    package: str
    target: str
    url: str
    sha256: str
    compression: str = "xz"
    manifest_date: str | None = None

    @property
    def filename(self) -> str:
        return f"{self.package}.tar.{self.compression}"


def manifest_filename(channel: str = DEFAULT_CHANNEL) -> str:
    return f"channel-rust-{channel}.toml"


def manifest_url(
    toolchain_version: str | None = None,
    dist_server: str = DEFAULT_DIST_SERVER,
    channel: str = DEFAULT_CHANNEL,
) -> str:
    """
    Build the channel manifest URL.

    Args:
        toolchain_version: Dated toolchain (e.g. "2024-06-01"), or None for the latest
        dist_server: Distribution server root
        channel: Release channel name

    Returns:
        The manifest URL. The version is inserted verbatim as a path segment.
    """
    base = f"{dist_server.rstrip('/')}/dist"
    if toolchain_version:
        base = f"{base}/{toolchain_version}"
    return f"{base}/{manifest_filename(channel)}"


def parse_checksum_file(checksum_path: Path | str) -> dict[str, str]:
    """Parse a sha256sum-style file into {filename: digest}."""
    checksums = {}
    with open(checksum_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            parts = line.split(maxsplit=1)
            if len(parts) == 2:
                digest = parts[0].lower()
                # "*" marks binary mode in sha256sum output
                filename = parts[1].strip().lstrip("*")
                checksums[filename] = digest
    return checksums


def verify_manifest_checksum(manifest_path: Path | str, checksum_path: Path | str) -> str:
    """
    Verify a manifest against its detached checksum file.

    Args:
        manifest_path: Downloaded manifest
        checksum_path: Downloaded <manifest>.sha256 sidecar

    Returns:
        The verified SHA256 digest

    Raises:
        ValueError: If the sidecar has no entry for the manifest
        RuntimeError: If the digest does not match
    """
    manifest_path = Path(manifest_path)
    checksums = parse_checksum_file(checksum_path)

    if manifest_path.name not in checksums:
        raise ValueError(f"No checksum for {manifest_path.name} in {Path(checksum_path).name}")

    expected = checksums[manifest_path.name]
    sha256 = hashlib.sha256()
    with open(manifest_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    actual = sha256.hexdigest()

    print(f"Expected SHA256: {expected}")
    print(f"Actual SHA256:   {actual}")

    if actual != expected:
        print("✗ Manifest checksum verification FAILED")
        raise RuntimeError(
            f"Checksum mismatch for {manifest_path.name}!\n" f"Expected: {expected}\n" f"Actual:   {actual}"
        )

    print(f"✓ {manifest_path.name}: OK")
    return actual


def load_manifest(manifest_path: Path | str) -> dict[str, Any]:
    """Parse a channel manifest."""
    with open(manifest_path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Malformed manifest {Path(manifest_path).name}: {e}") from e


def find_package_archive(
    manifest: dict[str, Any], package: str, target: str, compression: str = "xz"
) -> PackageArchive:
    """
    Locate the archive URL and hash for [pkg.<package>.target.<target>].

    Raises:
        ValueError: If the package, target or either field is missing or empty,
            or the target is marked unavailable
    """
    if compression not in ARCHIVE_FIELDS:
        raise ValueError(f"Unsupported compression: {compression} (expected one of {', '.join(ARCHIVE_FIELDS)})")

    section = f"pkg.{package}.target.{target}"

    packages = manifest.get("pkg", {})
    if package not in packages:
        raise ValueError(f"Package not found in manifest: {package}")

    targets = packages[package].get("target", {})
    if target not in targets:
        available = ", ".join(sorted(targets)) or "none"
        raise ValueError(f"Target {target} not found for {package} (available: {available})")

    entry = targets[target]
    if entry.get("available") is False:
        raise ValueError(f"[{section}] is marked unavailable in this manifest")

    url_field, hash_field = ARCHIVE_FIELDS[compression]
    url = entry.get(url_field)
    sha256 = entry.get(hash_field)
    for field_name, value in ((url_field, url), (hash_field, sha256)):
        if not isinstance(value, str) or not value:
            raise ValueError(f"[{section}] has no {field_name}")

    return PackageArchive(
        package=package,
        target=target,
        url=url,
        sha256=sha256,
        compression=compression,
        manifest_date=manifest.get("date"),
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Show the archive entry for a package in a channel manifest")
    parser.add_argument("manifest", type=Path, help="Path to channel-rust-*.toml")
    parser.add_argument("--package", default="rust-docs-json-preview", help="Package name")
    parser.add_argument("--target", default="x86_64-unknown-linux-gnu", help="Target triple")
    parser.add_argument("--compression", choices=list(ARCHIVE_FIELDS), default="xz", help="Archive compression")
    args = parser.parse_args(argv)

    try:
        archive = find_package_archive(load_manifest(args.manifest), args.package, args.target, args.compression)
    except (OSError, ValueError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Manifest date: {archive.manifest_date or 'unknown'}")
    print(f"URL:    {archive.url}")
    print(f"SHA256: {archive.sha256}")


if __name__ == "__main__":
    main()
