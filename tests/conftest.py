"""
Shared fixtures: a fake Rust dist server on disk, served through file:// URLs.
"""

import hashlib
import io
import json
import tarfile
from pathlib import Path

import pytest
import zstandard as zstd

TARGET = "x86_64-unknown-linux-gnu"
PACKAGE = "rust-docs-json-preview"
DOCS_PREFIX = f"rust-docs-json-nightly-{TARGET}/{PACKAGE}/share/doc/rust/json/"


class RustdocBuilder:
    """Builds a small rustdoc JSON document, one item at a time."""

    def __init__(self, crate: str, format_version: int = 30):
        self.crate = crate
        self.format_version = format_version
        self.index = {}
        self._next_id = 0

    def add(self, name, inner, docs=None, visibility="public") -> int:
        item_id = self._next_id
        self._next_id += 1
        self.index[str(item_id)] = {
            "id": item_id,
            "crate_id": 0,
            "name": name,
            "visibility": visibility,
            "docs": docs,
            "attrs": [],
            "inner": inner,
        }
        return item_id

    def module(self, name, items, is_crate=False) -> int:
        return self.add(name, {"module": {"is_crate": is_crate, "items": list(items), "is_stripped": False}})

    def function(self, name, has_body=True, **kwargs) -> int:
        return self.add(name, {"function": {"has_body": has_body, "generics": {}, "sig": {}}}, **kwargs)

    def field(self, name) -> int:
        return self.add(name, {"struct_field": {"primitive": "u8"}})

    def impl(self, items) -> int:
        return self.add(None, {"impl": {"items": list(items), "trait": None, "for": {}}})

    def struct(self, name, kind, impls=(), **kwargs) -> int:
        return self.add(name, {"struct": {"kind": kind, "generics": {}, "impls": list(impls)}}, **kwargs)

    def variant(self, name, kind="plain") -> int:
        return self.add(name, {"variant": {"kind": kind, "discriminant": None}})

    def enum(self, name, variants, impls=()) -> int:
        return self.add(name, {"enum": {"variants": list(variants), "generics": {}, "impls": list(impls)}})

    def reexport(self, name, target_id, source, is_glob=False) -> int:
        return self.add(None, {"use": {"source": source, "name": name, "id": target_id, "is_glob": is_glob}})

    def finish(self, items) -> dict:
        root = self.module(self.crate, items, is_crate=True)
        return {
            "root": root,
            "crate_version": None,
            "includes_private": False,
            "index": self.index,
            "paths": {},
            "external_crates": {},
            "format_version": self.format_version,
        }


def alloc_doc() -> dict:
    b = RustdocBuilder("alloc")
    dedup = b.function("dedup", docs="Removes consecutive repeated elements in the vector.")
    dedup_by = b.function("dedup_by")
    dedup_by_key = b.function("dedup_by_key")
    hidden = b.function("as_inner", visibility={"restricted": {"parent": 0, "path": "::vec"}})
    vec_impl = b.impl([dedup, dedup_by, dedup_by_key, hidden])
    vec_struct = b.struct("Vec", {"plain": {"fields": [], "has_stripped_fields": True}}, [vec_impl])
    vec_mod = b.module("vec", [vec_struct])
    vec_macro = b.add("vec", {"macro": "macro_rules! vec { ... }"})
    return b.finish([vec_mod, vec_macro])


def core_doc() -> dict:
    b = RustdocBuilder("core")
    cmp_fn = b.function("cmp", has_body=False)
    max_fn = b.function("max")
    ord_trait = b.add("Ord", {"trait": {"items": [cmp_fn, max_fn], "is_auto": False, "is_unsafe": False}})
    less = b.variant("Less")
    greater = b.variant("Greater")
    ordering = b.enum("Ordering", [less, greater])
    cmp_mod = b.module("cmp", [ord_trait, ordering])
    inner_field = b.field("0")
    wrapping = b.struct("Wrapping", {"tuple": [inner_field]})
    num_mod = b.module("num", [wrapping])
    return b.finish([cmp_mod, num_mod])


def std_doc() -> dict:
    b = RustdocBuilder("std")
    red = b.field("r")
    green = b.field("g")
    rgb = b.variant("Rgb", {"struct": {"fields": [red, green], "has_stripped_fields": False}})
    reset = b.variant("Reset")
    color = b.enum("Color", [reset, rgb])
    term_mod = b.module("term", [color])
    insert = b.function("insert")
    map_impl = b.impl([insert])
    hash_map = b.struct("HashMap", {"plain": {"fields": [], "has_stripped_fields": True}}, [map_impl])
    hash_map_mod = b.module("hash_map", [hash_map])
    map_reexport = b.reexport("HashMap", hash_map, "self::hash_map::HashMap")
    collections = b.module("collections", [hash_map_mod, map_reexport])
    prelude_use = b.reexport("HashMap", hash_map, "crate::collections::HashMap")
    prelude = b.module("prelude", [prelude_use])
    # Lives in alloc, so it is not in this index
    vec_reexport = b.reexport("vec", 9999, "alloc::vec")
    return b.finish([term_mod, collections, prelude, vec_reexport])


def rustdoc_bytes(doc: dict) -> bytes:
    return json.dumps(doc).encode()


DOC_FILES = {
    DOCS_PREFIX + "core.json": rustdoc_bytes(core_doc()),
    DOCS_PREFIX + "alloc.json": rustdoc_bytes(alloc_doc()),
    DOCS_PREFIX + "std.json": rustdoc_bytes(std_doc()),
}

OTHER_FILES = {
    f"rust-docs-json-nightly-{TARGET}/components": b"rust-docs-json-preview\n",
    f"rust-docs-json-nightly-{TARGET}/{PACKAGE}/manifest.in": b"file:share/doc/rust/json/std.json\n",
}


def sha256_of(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def build_tar(files: dict[str, bytes], compression: str = "xz", hard_links: dict[str, str] | None = None) -> bytes:
    """Build an in-memory tar archive with the given members, then any hard links (name -> target)."""
    raw = io.BytesIO()
    mode = {"xz": "w:xz", "gz": "w:gz", "zst": "w"}[compression]
    with tarfile.open(fileobj=raw, mode=mode) as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
        for name, target in (hard_links or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.LNKTYPE
            info.linkname = target
            info.mode = 0o644
            tar.addfile(info)

    if compression == "zst":
        return zstd.ZstdCompressor().compress(raw.getvalue())
    return raw.getvalue()


def render_manifest(archive_url: str, archive_hash: str, date: str = "2024-06-01") -> str:
    return f"""manifest-version = "2"
date = "{date}"

[pkg.rust-docs-json-preview]
version = "1.81.0-nightly (abcdef123 {date})"

[pkg.rust-docs-json-preview.target.x86_64-unknown-linux-gnu]
available = true
url = "{archive_url}.gz"
hash = "0000"
xz_url = "{archive_url}"
xz_hash = "{archive_hash}"

[pkg.rust-docs-json-preview.target.aarch64-apple-darwin]
available = false

[pkg.rustc.target.x86_64-unknown-linux-gnu]
available = true
xz_url = "https://example.org/rustc.tar.xz"
xz_hash = "ffff"
"""


class FakeDistServer:
    """A dist/ tree on disk addressed with file:// URLs."""

    def __init__(self, root: Path):
        self.root = root
        (root / "dist").mkdir(parents=True, exist_ok=True)

    @property
    def url(self) -> str:
        return self.root.as_uri()

    def publish(
        self,
        toolchain_version: str | None = None,
        files: dict[str, bytes] | None = None,
        archive_hash: str | None = None,
        manifest_checksum: str | None = None,
    ) -> dict[str, Path]:
        """Publish a manifest, its sidecar and a docs archive under dist/[version/]."""
        dist_dir = self.root / "dist"
        if toolchain_version:
            dist_dir = dist_dir / toolchain_version
        dist_dir.mkdir(parents=True, exist_ok=True)

        archive_bytes = build_tar(files if files is not None else {**DOC_FILES, **OTHER_FILES})
        archive_path = dist_dir / f"rust-docs-json-nightly-{TARGET}.tar.xz"
        archive_path.write_bytes(archive_bytes)

        manifest_text = render_manifest(
            archive_path.as_uri(),
            archive_hash if archive_hash is not None else sha256_of(archive_bytes),
            date=toolchain_version or "2024-06-01",
        )
        manifest_path = dist_dir / "channel-rust-nightly.toml"
        manifest_path.write_text(manifest_text)

        digest = manifest_checksum or sha256_of(manifest_text.encode())
        checksum_path = dist_dir / "channel-rust-nightly.toml.sha256"
        checksum_path.write_text(f"{digest}  channel-rust-nightly.toml\n")

        return {"archive": archive_path, "manifest": manifest_path, "checksum": checksum_path}


@pytest.fixture
def dist_server(tmp_path):
    """Empty fake distribution server."""
    return FakeDistServer(tmp_path / "server")


@pytest.fixture
def out_dir(tmp_path):
    """Pre-existing output directory."""
    path = tmp_path / "doc-json"
    path.mkdir()
    return path
