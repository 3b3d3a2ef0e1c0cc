"""Helpers writing recipe trees and artifact stores for the tests."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml


@dataclass
class Pkg:
    """A recipe to write on disk: runtime requires and build requires as cat/name strings."""

    category: str
    name: str
    version: str = "1.0"
    requires: List[str] = field(default_factory=list)
    build_requires: List[str] = field(default_factory=list)
    slot: Optional[str] = None


def _ref(key: str) -> Dict[str, str]:
    cat, name = key.split("/", 1)
    return {"category": cat, "name": name, "version": ">=0"}


def write_tree(root: Path, pkgs: List[Pkg]) -> Path:
    """Write a luet-style tree: <root>/<cat>/<name>/<version>/{definition,build}.yaml"""
    root.mkdir(parents=True, exist_ok=True)
    for p in pkgs:
        d = root / p.category / p.name / p.version
        d.mkdir(parents=True, exist_ok=True)
        doc = {"category": p.category, "name": p.name, "version": p.version}
        if p.requires:
            doc["requires"] = [_ref(r) for r in p.requires]
        if p.slot:
            doc["slot"] = p.slot
        (d / "definition.yaml").write_text(yaml.safe_dump(doc))
        build = {"requires": [_ref(r) for r in p.build_requires]} if p.build_requires else {}
        (d / "build.yaml").write_text(yaml.safe_dump(build))
    return root


def metadata_doc(category: str, name: str, version: str, path: Optional[str] = None, **extra) -> str:
    doc = {
        "path": path or f"{name}-{version}.package.tar",
        "compilespec": {
            "package": {
                "category": category,
                "name": name,
                "version": version,
                "labels": {"original.package.name": f"{category}/{name}"},
            },
        },
        "checksums": {"sha256": "0" * 64},
        "compressiontype": "none",
    }
    doc.update(extra)
    return yaml.safe_dump(doc)


def write_artifact(store: Path, category: str, name: str, version: str,
                   payload: bool = True, metadata: bool = True, suffix: str = ".package.tar") -> None:
    base = f"{name}-{version}"
    if payload:
        (store / f"{base}{suffix}").write_bytes(b"payload")
    if metadata:
        (store / f"{base}.metadata.yaml").write_text(
            metadata_doc(category, name, version, path=f"/packages/{base}{suffix}")
        )


