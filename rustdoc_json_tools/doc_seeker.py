#!/usr/bin/env python3
"""
Search rustdoc JSON by item name.

This script:
1. Loads the rustdoc JSON files fetched by download_docs_json (core, alloc, std)
2. Resolves every public item to the documentation page it lives on
3. Merges the crates into one name index
4. Searches the index (substring, subsequence, regex or edit distance)

Each hit prints as the relative URL of its rustdoc page, for example
`alloc/vec/struct.Vec.html#method.dedup`.

Usage:
    python -m rustdoc_json_tools.doc_seeker dedup
    python -m rustdoc_json_tools.doc_seeker ".*dedup.*" --mode regex
    python -m rustdoc_json_tools.doc_seeker dedXp --mode levenshtein --distance 1
    python -m rustdoc_json_tools.doc_seeker HashMap --doc-dir doc-json --crate std --naive
"""

import argparse
import json
import re
import sys
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from Levenshtein import distance as levenshtein_distance

DEFAULT_DOC_DIR = "doc-json"
DEFAULT_CRATES = ["core", "alloc", "std"]

Matcher = Callable[[str], bool]


class DocItemKind(Enum):
    """Item kinds, valued by the prefix rustdoc uses in page names and anchors."""

    MODULE = "module"
    EXTERN_CRATE = "externcrate"
    IMPORT = "import"
    STRUCT = "struct"
    ENUM = "enum"
    FUNCTION = "fn"
    TYPEDEF = "type"
    STATIC = "static"
    TRAIT = "trait"
    TRAIT_ALIAS = "traitalias"
    IMPL = "impl"
    TY_METHOD = "tymethod"
    METHOD = "method"
    STRUCT_FIELD = "structfield"
    VARIANT = "variant"
    MACRO = "macro"
    ATTRIBUTE_MACRO = "attr"
    DERIVE_MACRO = "derive"
    PRIMITIVE = "primitive"
    ASSOCIATED_TYPE = "associatedtype"
    CONSTANT = "constant"
    ASSOCIATED_CONST = "associatedconst"
    UNION = "union"
    FOREIGN_TYPE = "foreigntype"
    KEYWORD = "keyword"


# rustdoc "inner" tags; older format versions used import/typedef
INNER_KINDS = {
    "module": DocItemKind.MODULE,
    "extern_crate": DocItemKind.EXTERN_CRATE,
    "use": DocItemKind.IMPORT,
    "import": DocItemKind.IMPORT,
    "union": DocItemKind.UNION,
    "struct": DocItemKind.STRUCT,
    "struct_field": DocItemKind.STRUCT_FIELD,
    "enum": DocItemKind.ENUM,
    "variant": DocItemKind.VARIANT,
    "function": DocItemKind.FUNCTION,
    "trait": DocItemKind.TRAIT,
    "trait_alias": DocItemKind.TRAIT_ALIAS,
    "impl": DocItemKind.IMPL,
    "type_alias": DocItemKind.TYPEDEF,
    "typedef": DocItemKind.TYPEDEF,
    "constant": DocItemKind.CONSTANT,
    "static": DocItemKind.STATIC,
    "foreign_type": DocItemKind.FOREIGN_TYPE,
    "macro": DocItemKind.MACRO,
    "primitive": DocItemKind.PRIMITIVE,
    "assoc_const": DocItemKind.ASSOCIATED_CONST,
    "assoc_type": DocItemKind.ASSOCIATED_TYPE,
}

PROC_MACRO_KINDS = {
    "bang": DocItemKind.MACRO,
    "attr": DocItemKind.ATTRIBUTE_MACRO,
    "derive": DocItemKind.DERIVE_MACRO,
}

# Parent links: where an item's page or anchor hangs
ROOT = ("root",)
MODULE_ITEM = "module"
ASSOCIATE_ITEM = "associate"
SUB_ASSOCIATE_ITEM = "sub_associate"


@dataclass(frozen=True)
class TypeItem:
    """A kind and a name, displayed as `kind.name` (e.g. `struct.Vec`)."""

    kind: DocItemKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value}.{self.name}"


@dataclass(frozen=True)
class DocItem:
    """
    A searchable item.

    `page_item` is set for items shown as an anchor on another item's page
    (methods, variants, fields); `parent_item` is the variant owning a field of
    a struct-style variant.
    """

    item: TypeItem
    path: str
    page_item: TypeItem | None = None
    parent_item: TypeItem | None = None
    desc: str = field(default="", compare=False)

    @property
    def name(self) -> str:
        return self.item.name

    @property
    def kind(self) -> DocItemKind:
        return self.item.kind

    @property
    def url(self) -> str:
        """Relative URL of the item's documentation."""
        prefix = "".join(f"{part}/" for part in self.path.split("::") if part)
        if self.page_item is None:
            if self.kind is DocItemKind.MODULE:
                return f"{prefix}{self.name}/index.html"
            return f"{prefix}{self.item}.html"
        if self.parent_item is None:
            return f"{prefix}{self.page_item}.html#{self.item}"
        return f"{prefix}{self.page_item}.html#{self.parent_item}.{self.item}"

    @property
    def naive_path(self) -> str:
        """Rust-style path, e.g. `alloc::vec::Vec::dedup`."""
        parts = [part for part in self.path.split("::") if part]
        if self.page_item is not None:
            parts.append(self.page_item.name)
        if self.parent_item is not None:
            parts.append(self.parent_item.name)
        parts.append(self.name)
        return "::".join(parts)

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (
            self.name,
            self.path,
            self.page_item.name if self.page_item else "",
            self.kind.value,
            str(self.parent_item or ""),
        )

    def __str__(self) -> str:
        return self.url


# ============================================================================
# Parsing
# ============================================================================


def _ref(item_id: Any) -> str | None:
    # Item ids are strings in older format versions and integers in newer ones
    return None if item_id is None else str(item_id)


def _split_inner(item: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    inner = item.get("inner")
    if isinstance(inner, str):
        return inner, {}
    if isinstance(inner, dict) and len(inner) == 1:
        ((tag, body),) = inner.items()
        return tag, body if isinstance(body, dict) else {}
    return None, {}


def _is_restricted(item: dict[str, Any]) -> bool:
    visibility = item.get("visibility")
    return isinstance(visibility, dict) and "restricted" in visibility


def _item_kind(tag: str | None, body: dict[str, Any]) -> DocItemKind | None:
    if tag == "proc_macro":
        return PROC_MACRO_KINDS.get(body.get("kind"), DocItemKind.MACRO)
    return INNER_KINDS.get(tag)


def _variant_shape(kind: Any) -> tuple[str, Any]:
    """Split a struct/variant "kind" field into (shape, payload)."""
    if isinstance(kind, dict) and len(kind) == 1:
        ((shape, payload),) = kind.items()
        return shape, payload
    return str(kind), None


@dataclass
class _Node:
    id: str
    item: dict[str, Any]
    tag: str | None
    body: dict[str, Any]
    name: str
    kind: DocItemKind
    parent: tuple | None = None
    imported_by: list[str] = field(default_factory=list)

    def set_parent(self, parent: tuple) -> None:
        # The first owner found wins
        if self.parent is None:
            self.parent = parent

    def fix_associated_kind(self) -> None:
        if self.kind is DocItemKind.FUNCTION:
            self.kind = DocItemKind.METHOD if self.body.get("has_body") else DocItemKind.TY_METHOD

    def is_tuple_like(self) -> bool:
        if self.kind not in (DocItemKind.STRUCT, DocItemKind.VARIANT):
            return False
        shape, _ = _variant_shape(self.body.get("kind"))
        return shape == "tuple"

    def is_glob_import(self) -> bool:
        return self.kind is DocItemKind.IMPORT and bool(self.body.get("is_glob", self.body.get("glob", False)))

    def type_item(self) -> TypeItem:
        return TypeItem(self.kind, self.name)


class _CrateParser:
    """Turns one rustdoc JSON document into DocItems."""

    def __init__(self, doc: dict[str, Any]):
        self.nodes: dict[str, _Node] = {}
        self._path_cache: dict[str, list[str]] = {}
        self._visiting: set[str] = set()

        for raw_id, item in doc["index"].items():
            tag, body = _split_inner(item)
            kind = _item_kind(tag, body)
            if kind is None:
                continue
            name = item.get("name") or (body.get("name") if kind is DocItemKind.IMPORT else None) or ""
            self.nodes[str(raw_id)] = _Node(id=str(raw_id), item=item, tag=tag, body=body, name=name, kind=kind)

        root = self.nodes.get(str(doc["root"]))
        if root is not None:
            root.set_parent(ROOT)

    def _children(self, ids: Iterable[Any]) -> Iterator[_Node]:
        for child_id in ids or []:
            child = self.nodes.get(_ref(child_id)) if child_id is not None else None
            if child is not None:
                yield child

    def _link_import(self, node: _Node) -> None:
        importee_id = _ref(node.body.get("id"))
        seen = {node.id}
        while importee_id is not None and importee_id not in seen:
            importee = self.nodes.get(importee_id)
            if importee is None:
                # Re-exports from other crates are not in this index
                return
            if importee.kind is not DocItemKind.IMPORT:
                importee.imported_by.append(node.id)
                return
            seen.add(importee_id)
            importee_id = _ref(importee.body.get("id"))

    def _assign_parents(self, node: _Node) -> None:
        body = node.body
        associate = (ASSOCIATE_ITEM, node.id)

        if node.kind is DocItemKind.IMPORT:
            self._link_import(node)

        if node.kind is DocItemKind.MODULE:
            # prelude items are re-exports without a page of their own
            if node.name != "prelude":
                for child in self._children(body.get("items")):
                    child.set_parent((MODULE_ITEM, node.id))
        elif node.kind in (DocItemKind.UNION, DocItemKind.ENUM, DocItemKind.TRAIT, DocItemKind.STRUCT):
            if node.kind is DocItemKind.UNION:
                members = body.get("fields")
            elif node.kind is DocItemKind.ENUM:
                members = body.get("variants")
            elif node.kind is DocItemKind.TRAIT:
                members = body.get("items")
            else:
                shape, payload = _variant_shape(body.get("kind"))
                if shape == "plain":
                    members = payload.get("fields")
                elif shape == "tuple":
                    members = payload
                else:
                    members = []
            for child in self._children(members):
                child.set_parent(associate)
                child.fix_associated_kind()
        elif node.kind is DocItemKind.VARIANT:
            shape, payload = _variant_shape(body.get("kind"))
            if shape == "tuple":
                for child in self._children(payload):
                    child.set_parent(associate)

        if node.kind is DocItemKind.ENUM:
            for variant in self._children(body.get("variants")):
                shape, payload = _variant_shape(variant.body.get("kind"))
                if shape != "struct":
                    continue
                for field_node in self._children(payload.get("fields")):
                    field_node.set_parent((SUB_ASSOCIATE_ITEM, node.id, variant.id))

        if node.kind in (DocItemKind.UNION, DocItemKind.STRUCT, DocItemKind.ENUM, DocItemKind.PRIMITIVE):
            for impl in self._children(body.get("impls")):
                impl.set_parent(associate)
                impl.fix_associated_kind()
                if impl.kind is not DocItemKind.IMPL:
                    continue
                for child in self._children(impl.body.get("items")):
                    child.set_parent(associate)
                    child.fix_associated_kind()

    def _paths(self, node: _Node, omit_self: bool) -> list[str]:
        """All module paths reaching `node`, through its parents and re-exports."""
        if not omit_self and node.id in self._path_cache:
            return list(self._path_cache[node.id])
        if _is_restricted(node.item) or node.id in self._visiting:
            return []

        self._visiting.add(node.id)
        try:
            tail = "" if omit_self or node.is_glob_import() else f"::{node.name}"
            paths = []
            if node.parent == ROOT:
                paths.append(tail.lstrip(":"))
            elif node.parent is not None and node.parent[0] == MODULE_ITEM:
                module = self.nodes.get(node.parent[1])
                if module is not None:
                    paths.extend(path + tail for path in self._paths(module, False))

            for import_id in node.imported_by:
                import_node = self.nodes.get(import_id)
                if import_node is not None:
                    paths.extend(self._paths(import_node, omit_self))
        finally:
            self._visiting.discard(node.id)

        if not omit_self:
            self._path_cache[node.id] = paths
        return list(paths)

    def _associate_items(
        self, node: _Node, type_parent_id: str, parent_item: TypeItem | None = None
    ) -> Iterator[DocItem]:
        type_parent = self.nodes.get(type_parent_id)
        if type_parent is None:
            return
        desc = node.item.get("docs") or ""
        # A type re-exported elsewhere shows its members on every page it has
        owners = [self.nodes[i] for i in type_parent.imported_by if i in self.nodes] + [type_parent]
        for owner in owners:
            page_item = TypeItem(type_parent.kind, owner.name)
            for path in self._paths(owner, True):
                yield DocItem(node.type_item(), path, page_item, parent_item, desc)

    def items(self) -> Iterator[DocItem]:
        for node in list(self.nodes.values()):
            self._assign_parents(node)

        for node in self.nodes.values():
            if _is_restricted(node.item) or node.kind in (DocItemKind.IMPORT, DocItemKind.IMPL):
                continue
            parent = node.parent
            if parent is None:
                continue

            if parent[0] == ASSOCIATE_ITEM:
                type_parent = self.nodes.get(parent[1])
                # Tuple fields have no anchor of their own
                if type_parent is None or type_parent.is_tuple_like():
                    continue
                yield from self._associate_items(node, parent[1])
            elif parent[0] == SUB_ASSOCIATE_ITEM:
                variant = self.nodes.get(parent[2])
                if variant is None:
                    continue
                yield from self._associate_items(node, parent[1], variant.type_item())
            else:
                desc = node.item.get("docs") or ""
                for path in self._paths(node, True):
                    yield DocItem(node.type_item(), path, desc=desc)


# ============================================================================
# Documents and search
# ============================================================================


class RustDoc:
    """A set of DocItems from one or more crates."""

    def __init__(self, items: Iterable[DocItem] = ()):
        self.items: set[DocItem] = set(items)

    @classmethod
    def from_json(cls, doc: dict[str, Any], format_version: int | None = None) -> "RustDoc":
        """
        Build from a parsed rustdoc JSON document.

        Args:
            doc: The decoded JSON
            format_version: Required `format_version`, or None to accept any

        Raises:
            ValueError: If the document is not rustdoc JSON or has another format version
        """
        if not isinstance(doc, dict) or "index" not in doc or "root" not in doc:
            raise ValueError("not a rustdoc JSON document (missing index/root)")
        if format_version is not None and doc.get("format_version") != format_version:
            raise ValueError(f"unsupported rustdoc format version: {doc.get('format_version')}")
        return cls(_CrateParser(doc).items())

    @classmethod
    def load(cls, json_path: Path | str, format_version: int | None = None) -> "RustDoc":
        json_path = Path(json_path)
        with open(json_path, "r", encoding="utf-8") as f:
            try:
                doc = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"invalid rustdoc JSON in {json_path.name}: {e}") from e
        try:
            return cls.from_json(doc, format_version)
        except ValueError as e:
            raise ValueError(f"{json_path.name}: {e}") from e

    def extend(self, items: Iterable[DocItem]) -> None:
        self.items.update(items)

    def __iter__(self) -> Iterator[DocItem]:
        return iter(sorted(self.items, key=DocItem.sort_key))

    def __len__(self) -> int:
        return len(self.items)

    def build(self) -> "DocSeeker":
        """Build the name index for searching."""
        return DocSeeker(self.items)


class DocSeeker:
    """Items grouped by name, names kept in sorted order."""

    def __init__(self, items: Iterable[DocItem]):
        self._index: dict[str, list[DocItem]] = {}
        for item in sorted(items, key=DocItem.sort_key):
            self._index.setdefault(item.name, []).append(item)
        self._names = sorted(self._index)

    def __len__(self) -> int:
        return sum(len(items) for items in self._index.values())

    def search(self, matcher: Matcher) -> Iterator[DocItem]:
        """Yield items whose name satisfies `matcher`, ordered by name."""
        for name in self._names:
            if matcher(name):
                yield from self._index[name]


def substring(query: str) -> Matcher:
    return lambda name: query in name


def subsequence(query: str) -> Matcher:
    """Names containing the characters of `query` in order."""

    def match(name: str) -> bool:
        chars = iter(name)
        return all(c in chars for c in query)

    return match


def regex(pattern: str) -> Matcher:
    """Names fully matching `pattern`."""
    compiled = re.compile(pattern)
    return lambda name: compiled.fullmatch(name) is not None


def levenshtein(query: str, distance: int = 1) -> Matcher:
    """Names within `distance` edits of `query`."""
    return lambda name: levenshtein_distance(query, name, score_cutoff=distance) <= distance


def starts_with(matcher: Matcher) -> Matcher:
    """Names having some prefix accepted by `matcher`."""
    return lambda name: any(matcher(name[:end]) for end in range(len(name) + 1))


def union(*matchers: Matcher) -> Matcher:
    return lambda name: any(matcher(name) for matcher in matchers)


MATCHERS: dict[str, Callable[..., Matcher]] = {
    "substring": substring,
    "subsequence": subsequence,
    "regex": regex,
    "levenshtein": levenshtein,
}


def load_docs(doc_dir: Path | str, crates: Iterable[str] = DEFAULT_CRATES) -> RustDoc:
    """Load `<crate>.json` for each crate from `doc_dir` and merge them."""
    doc_dir = Path(doc_dir)
    rustdoc = RustDoc()
    for crate in crates:
        json_path = doc_dir / f"{crate}.json"
        if not json_path.exists():
            raise FileNotFoundError(f"Failed to read file {json_path}")
        rustdoc.extend(RustDoc.load(json_path))
    return rustdoc


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Search rustdoc JSON by item name")
    parser.add_argument("query", help="Name, substring, pattern or misspelling to look for")
    parser.add_argument(
        "--doc-dir",
        type=Path,
        default=Path(DEFAULT_DOC_DIR),
        help=f"Directory holding <crate>.json files (default: {DEFAULT_DOC_DIR})",
    )
    parser.add_argument(
        "--crate",
        action="append",
        dest="crates",
        help=f"Crate to load (can specify multiple times, default: {', '.join(DEFAULT_CRATES)})",
    )
    parser.add_argument("--mode", choices=list(MATCHERS), default="substring", help="How to match names")
    parser.add_argument("--distance", type=int, default=1, help="Edit distance for --mode levenshtein")
    parser.add_argument("--prefix", action="store_true", help="Match any prefix of the name instead of all of it")
    parser.add_argument("--naive", action="store_true", help="Print Rust paths instead of page URLs")

    args = parser.parse_args(argv)

    try:
        seeker = load_docs(args.doc_dir, args.crates or DEFAULT_CRATES).build()
        if args.mode == "levenshtein":
            matcher = levenshtein(args.query, args.distance)
        else:
            matcher = MATCHERS[args.mode](args.query)
        if args.prefix:
            matcher = starts_with(matcher)
        results = list(seeker.search(matcher))
    except (OSError, ValueError, re.error) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not results:
        print(f"No items matching {args.query!r}", file=sys.stderr)
        sys.exit(1)

    for item in results:
        print(item.naive_path if args.naive else item.url)


if __name__ == "__main__":
    main()
