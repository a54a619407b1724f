#!/usr/bin/env python3
"""
Verify and selectively expand a downloaded tar archive.

This script:
1. Checks the archive's SHA256 against an expected digest
2. Streams the tar (xz, gz or zstd compressed)
3. Extracts only members matching a wildcard, stripping leading path components

Members are matched with shell-style wildcards where "*" also matches "/",
the same as `tar --wildcards`. Members left with no path after stripping are
skipped.

Usage:
    python -m rustdoc_json_tools.expand_archive rust-docs-json-preview.tar.xz doc-json \
        --pattern "rust-docs-json-nightly-x86_64-unknown-linux-gnu/rust-docs-json-preview/share/doc/rust/json/*" \
        --strip-components 6 --sha256 <digest>
"""

import argparse
import contextlib
import fnmatch
import hashlib
import sys
import tarfile
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

import zstandard as zstd

# Streaming tarfile modes per compression; zst goes through zstandard
TAR_MODES = {
    "xz": "r|xz",
    "gz": "r|gz",
}


def compute_sha256(file_path: Path | str) -> str:
    """
    Compute SHA256 checksum of a file.

    Args:
        file_path: Path to the file

    Returns:
        SHA256 checksum as hex string
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        # Read file in chunks to handle large files
        for byte_block in iter(lambda: f.read(4096 * 1024), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def verify_sha256(file_path: Path | str, expected_checksum: str) -> str:
    """
    Verify a file against an expected SHA256 digest.

    Raises:
        RuntimeError: On mismatch
    """
    file_path = Path(file_path)
    expected = expected_checksum.strip().lower()

    print(f"Verifying checksum for {file_path.name}...")
    actual = compute_sha256(file_path)

    if actual != expected:
        print("✗ Checksum mismatch!")
        print(f"  Expected: {expected}")
        print(f"  Actual:   {actual}")
        raise RuntimeError(f"Checksum mismatch for {file_path.name}: expected {expected}, got {actual}")

    print(f"✓ Checksum verified: {actual[:16]}...")
    return actual


def strip_components(name: str, count: int) -> str | None:
    """Drop `count` leading path segments; None when nothing is left."""
    parts = [p for p in PurePosixPath(name).parts if p not in ("/", ".")]
    if len(parts) <= count:
        return None
    return str(PurePosixPath(*parts[count:]))


@contextlib.contextmanager
def open_tar(archive_path: Path | str, compression: str = "xz") -> Iterator[tarfile.TarFile]:
    """Open a compressed tar for a single streaming pass."""
    archive_path = Path(archive_path)

    if compression == "zst":
        with open(archive_path, "rb") as compressed:
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(compressed) as reader, tarfile.open(fileobj=reader, mode="r|") as tar:
                yield tar
    elif compression in TAR_MODES:
        with tarfile.open(archive_path, TAR_MODES[compression]) as tar:
            yield tar
    else:
        raise ValueError(f"Unknown archive compression: {compression}")


def extract_members(
    archive_path: Path | str,
    output_dir: Path | str,
    pattern: str,
    strip: int = 6,
    compression: str = "xz",
) -> list[Path]:
    """
    Extract the members matching `pattern` into `output_dir`.

    Args:
        archive_path: Path to the tar archive
        output_dir: Existing directory to extract into
        pattern: Wildcard matched against full member names
        strip: Number of leading path components removed from each member
        compression: "xz", "gz" or "zst"

    Returns:
        Sorted paths of the extracted regular files and hard links

    Raises:
        RuntimeError: If no member matches the pattern, or a matched hard link
            points at a member that was not extracted
    """
    archive_path = Path(archive_path)
    output_dir = Path(output_dir)

    print(f"Archive: {archive_path}")
    print(f"Pattern: {pattern}")
    print(f"Strip:   {strip} components")
    print(f"Output:  {output_dir}")
    print()

    matched = 0
    extracted = []
    # Original names of members already written, for resolving hard links
    written = set()

    with open_tar(archive_path, compression) as tar:
        for member in tar:
            if not fnmatch.fnmatchcase(member.name, pattern):
                continue
            matched += 1

            original_name = member.name
            new_name = strip_components(original_name, strip)
            if new_name is None:
                continue

            if member.islnk():
                # A streamed archive cannot seek back to a target that was left behind
                link_name = strip_components(member.linkname, strip)
                if link_name is None or member.linkname not in written:
                    raise RuntimeError(
                        f"{original_name}: hard link target {member.linkname} was not extracted "
                        f"(outside {pattern} or stripped away)"
                    )
                member.linkname = link_name

            member.name = new_name
            tar.extract(member, path=output_dir, filter="data")
            written.add(original_name)

            if member.isfile() or member.islnk():
                extracted.append(output_dir / new_name)

    if matched == 0:
        raise RuntimeError(f"{pattern}: Not found in archive {archive_path.name}")

    print(f"✓ Extracted {len(extracted)} files to {output_dir}")
    return sorted(extracted)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Verify and selectively expand a tar archive")
    parser.add_argument("archive", type=Path, help="Path to the tar archive")
    parser.add_argument("output_dir", type=Path, help="Existing output directory")
    parser.add_argument("--pattern", required=True, help="Wildcard selecting members to extract")
    parser.add_argument("--strip-components", type=int, default=0, help="Leading path components to strip")
    parser.add_argument("--compression", choices=["xz", "gz", "zst"], default="xz", help="Archive compression")
    parser.add_argument("--sha256", help="Expected SHA256; extraction is skipped on mismatch")

    args = parser.parse_args(argv)

    try:
        if args.sha256:
            verify_sha256(args.archive, args.sha256)
        extract_members(args.archive, args.output_dir, args.pattern, args.strip_components, args.compression)
    except (OSError, RuntimeError, ValueError, tarfile.TarError) as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n✅ Extraction complete!")


if __name__ == "__main__":
    main()
