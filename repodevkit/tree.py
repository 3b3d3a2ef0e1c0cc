# repodevkit/tree.py
# -*- coding: utf-8 -*-
"""
tree.py - reader for recipe trees (luet-style package definitions)

Features:
- Recursive scan for definition.yaml (one package) and collection.yaml (packages: list)
- Sibling build.yaml provides the build-time requires of the definitions next to it
- Two catalogs per tree: runtime (requires/conflicts/provides) and build (build requires)
- Slot-sanitized categories ("<category>-<slot-major>" for non-zero slots)
- Accumulative load(): several trees merge, last writer wins on duplicates
- Queries: find_exact(), find_all() (newest version first), world()
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from .errors import DecodeError, VersionError
from .logging import get_logger
from .version import parse_version, sanitize_category

logger = get_logger("tree")

DEFINITION_FILE = "definition.yaml"
COLLECTION_FILE = "collection.yaml"
BUILD_FILE = "build.yaml"


# -----------------------
# Data models
# -----------------------
@dataclass(frozen=True)
class PackageRef:
    """A (category, name, version-selector) triple as found in requires/conflicts."""
    category: str
    name: str
    version: str = ">=0"

    @property
    def key(self) -> str:
        return f"{self.category}/{self.name}"

    @classmethod
    def from_dict(cls, data: Any) -> "PackageRef":
        if not isinstance(data, dict) or not data.get("name"):
            raise DecodeError(f"invalid package reference: {data!r}")
        return cls(
            category=str(data.get("category") or ""),
            name=str(data["name"]),
            version=str(data.get("version") or ">=0"),
        )

    def __str__(self):
        return f"{self.key}{'' if self.version == '>=0' else ' ' + self.version}"


@dataclass
class PackageDefinition:
    category: str
    name: str
    version: str
    slot: str = "0"
    path: str = ""
    requires: List[PackageRef] = field(default_factory=list)
    conflicts: List[PackageRef] = field(default_factory=list)
    provides: List[PackageRef] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    uses: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.category}/{self.name}"

    @property
    def fingerprint(self) -> str:
        return f"{self.category}/{self.name}-{self.version}"


def parse_refs(raw: Any, where: str) -> List[PackageRef]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DecodeError(f"{where}: expected a list of packages")
    return [PackageRef.from_dict(r) for r in raw]


def definition_from_dict(data: Dict[str, Any], path: str = "", requires_key: str = "requires") -> PackageDefinition:
    if not isinstance(data, dict):
        raise DecodeError(f"{path or '<definition>'}: package definition must be a mapping")
    for k in ("category", "name", "version"):
        if data.get(k) in (None, ""):
            raise DecodeError(f"{path or '<definition>'}: missing '{k}'")
    slot = str(data.get("slot") or (data.get("labels") or {}).get("original.package.slot") or "0")
    labels = data.get("labels") or {}
    return PackageDefinition(
        category=sanitize_category(str(data["category"]), slot),
        name=str(data["name"]),
        version=str(data["version"]),
        slot=slot,
        path=path,
        requires=parse_refs(data.get(requires_key), path),
        conflicts=parse_refs(data.get("conflicts"), path),
        provides=parse_refs(data.get("provides"), path),
        labels={str(k): str(v) for k, v in labels.items()} if isinstance(labels, dict) else {},
        uses=[str(u) for u in (data.get("uses") or data.get("use_flags") or [])],
    )


# -----------------------
# Catalog
# -----------------------
def _newest_first(defs: List[PackageDefinition]) -> List[PackageDefinition]:
    """Parsable versions newest first, unparsable ones after them by text."""
    parsed: List[Tuple[Any, PackageDefinition]] = []
    others: List[PackageDefinition] = []
    for d in defs:
        try:
            parsed.append((parse_version(d.version), d))
        except VersionError:
            others.append(d)
    parsed.sort(key=lambda t: t[0], reverse=True)
    others.sort(key=lambda d: d.version)
    return [d for _, d in parsed] + others


class Catalog:
    """Definitions indexed by (category, name) and (category, name, version)."""

    def __init__(self):
        self._by_key: Dict[str, Dict[str, PackageDefinition]] = {}

    def add(self, d: PackageDefinition):
        versions = self._by_key.setdefault(d.key, {})
        if d.version in versions:
            logger.debug("tree: %s redefined by %s", d.fingerprint, d.path)
        versions[d.version] = d

    def find_exact(self, category: str, name: str, version: str) -> Optional[PackageDefinition]:
        return self._by_key.get(f"{category}/{name}", {}).get(version)

    def find_all(self, category: str, name: str) -> List[PackageDefinition]:
        return _newest_first(list(self._by_key.get(f"{category}/{name}", {}).values()))

    def world(self) -> Iterator[PackageDefinition]:
        for key in sorted(self._by_key):
            for d in _newest_first(list(self._by_key[key].values())):
                yield d

    def __len__(self):
        return sum(len(v) for v in self._by_key.values())

    def __contains__(self, key: str):
        return key in self._by_key


# -----------------------
# Tree
# -----------------------
class RecipeTree:
    """
    One or more recipe trees loaded into a runtime and a build catalog.
    """

    def __init__(self):
        self.runtime = Catalog()
        self.build = Catalog()
        self.paths: List[str] = []

    def load(self, path: str) -> int:
        """Load every definition below path. Returns the number of definitions read."""
        root = os.path.abspath(os.path.expanduser(path))
        if not os.path.isdir(root):
            raise DecodeError(f"tree path {path} is not a directory")
        count = 0
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            if DEFINITION_FILE in filenames:
                docs = [_read_yaml(os.path.join(dirpath, DEFINITION_FILE))]
            elif COLLECTION_FILE in filenames:
                coll = _read_yaml(os.path.join(dirpath, COLLECTION_FILE))
                docs = coll.get("packages") if isinstance(coll, dict) else None
                if not isinstance(docs, list):
                    raise DecodeError(f"{dirpath}/{COLLECTION_FILE}: 'packages' must be a list")
            else:
                continue

            build_doc: Dict[str, Any] = {}
            if BUILD_FILE in filenames:
                build_doc = _read_yaml(os.path.join(dirpath, BUILD_FILE)) or {}
                if not isinstance(build_doc, dict):
                    raise DecodeError(f"{dirpath}/{BUILD_FILE}: must be a mapping")

            for doc in docs:
                d = definition_from_dict(doc, path=dirpath)
                self.runtime.add(d)
                bd = definition_from_dict(doc, path=dirpath)
                bd.requires = parse_refs(build_doc.get("requires"), f"{dirpath}/{BUILD_FILE}")
                self.build.add(bd)
                count += 1
        self.paths.append(root)
        logger.info("tree: loaded %d definitions from %s", count, root)
        return count

    def add(self, runtime: PackageDefinition, build_requires: Optional[List[PackageRef]] = None):
        """Register a definition directly (used by tools building trees in memory)."""
        self.runtime.add(runtime)
        bd = PackageDefinition(**{**runtime.__dict__, "requires": list(build_requires or [])})
        self.build.add(bd)

    def find_exact(self, category: str, name: str, version: str) -> Optional[PackageDefinition]:
        return self.runtime.find_exact(category, name, version)

    def find_all(self, category: str, name: str) -> List[PackageDefinition]:
        return self.runtime.find_all(category, name)

    def world(self) -> Iterator[PackageDefinition]:
        return self.runtime.world()


def _read_yaml(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DecodeError(f"{path}: invalid YAML: {e}") from e
    except OSError as e:
        raise DecodeError(f"{path}: {e}") from e


def load_trees(paths: List[str]) -> RecipeTree:
    tree = RecipeTree()
    for p in paths:
        tree.load(p)
    return tree
