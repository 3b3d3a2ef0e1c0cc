# repodevkit/artifact.py
# -*- coding: utf-8 -*-
"""
Decoder for the *.metadata.yaml sidecar stored next to every package payload.

Only the fields needed for reconciliation are typed; unknown keys are ignored
and the whole document stays available in PackageArtifact.raw.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import DecodeError
from .tree import PackageRef, parse_refs
from .version import sanitize_category


@dataclass
class CompileSpec:
    requires: List[PackageRef] = field(default_factory=list)
    conflicts: List[PackageRef] = field(default_factory=list)
    image: str = ""
    steps: List[str] = field(default_factory=list)


@dataclass
class PackageArtifact:
    category: str
    name: str
    version: str
    path: str
    slot: str = "0"
    labels: Dict[str, str] = field(default_factory=dict)
    compilespec: CompileSpec = field(default_factory=CompileSpec)
    checksums: Dict[str, str] = field(default_factory=dict)
    compression: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def payload(self) -> str:
        """Base name of the payload this sidecar describes."""
        return os.path.basename(self.path)

    @property
    def key(self) -> str:
        return f"{self.category}/{self.name}"

    @property
    def fingerprint(self) -> str:
        return f"{self.category}/{self.name}-{self.version}"

    @property
    def search_category(self) -> str:
        return sanitize_category(self.category, self.slot)

    @property
    def search_fingerprint(self) -> str:
        """Fingerprint as the trees spell it (slot-sanitized category)."""
        return f"{self.search_category}/{self.name}-{self.version}"


def decode_metadata(data: Union[bytes, str], source: Optional[str] = None) -> PackageArtifact:
    """Decode a metadata sidecar. Raises DecodeError on anything malformed."""
    where = source or "<metadata>"
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        doc = yaml.safe_load(data)
    except (UnicodeDecodeError, yaml.YAMLError) as e:
        raise DecodeError(f"{where}: cannot decode metadata: {e}") from e

    if not isinstance(doc, dict):
        raise DecodeError(f"{where}: metadata must be a mapping")
    spec = doc.get("compilespec")
    if not isinstance(spec, dict) or not isinstance(spec.get("package"), dict):
        raise DecodeError(f"{where}: missing compilespec.package")
    pkg = spec["package"]
    for k in ("category", "name", "version"):
        if pkg.get(k) in (None, ""):
            raise DecodeError(f"{where}: compilespec.package.{k} is missing")
    path = doc.get("path")
    if not isinstance(path, str) or not path:
        raise DecodeError(f"{where}: missing payload 'path'")

    labels = pkg.get("labels") or {}
    if not isinstance(labels, dict):
        raise DecodeError(f"{where}: compilespec.package.labels must be a mapping")
    steps = spec.get("steps") or []
    if not isinstance(steps, list):
        raise DecodeError(f"{where}: compilespec.steps must be a list")
    checksums = doc.get("checksums") or {}
    if not isinstance(checksums, dict):
        raise DecodeError(f"{where}: checksums must be a mapping")

    return PackageArtifact(
        category=str(pkg["category"]),
        name=str(pkg["name"]),
        version=str(pkg["version"]),
        path=path,
        slot=str(pkg.get("slot") or "0"),
        labels={str(k): str(v) for k, v in labels.items()},
        compilespec=CompileSpec(
            requires=parse_refs(spec.get("requires", pkg.get("requires")), where),
            conflicts=parse_refs(spec.get("conflicts", pkg.get("conflicts")), where),
            image=str(spec.get("image") or ""),
            steps=[str(s) for s in steps],
        ),
        checksums={str(k): str(v) for k, v in checksums.items()},
        compression=str(doc.get("compressiontype") or ""),
        raw=doc,
    )
