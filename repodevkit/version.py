# repodevkit/version.py
# -*- coding: utf-8 -*-
"""
Ebuild-style versions and selectors

Features:
- parse_version(): <base>[<suffix>...][-r<rev>][+build], leading comparator tolerated
- parse_selector(): comparator + version, ">=0" / "" as wildcard, "=1.2*" prefix match
- Portage ordering: numeric base components (with trailing letter), suffix rank
  _alpha < _beta < _pre < _rc < (none) < _p, revision, then build (ASCII)
- package_admit() on parsed values, admit() on strings (parse failure -> not admitted + warning)
- sanitize_category(): slot-sanitized category used by catalogs and lookups
"""

from __future__ import annotations
import re
import functools
from dataclasses import dataclass
from typing import Optional, Tuple, Any

from .errors import VersionError
from .logging import get_logger

logger = get_logger("version")

SUFFIX_RANK = {"alpha": 0, "beta": 1, "pre": 2, "rc": 3, "p": 5}
_NO_SUFFIX = (4, 0)

COMPARATORS = (">=", "<=", "~=", ">", "<", "=", "~")

_VERSION_RE = re.compile(
    r"^(?P<base>[0-9A-Za-z]+(?:\.[0-9A-Za-z]+)*)"
    r"(?P<glob>\*)?"
    r"(?P<suffixes>(?:_(?:alpha|beta|pre|rc|p)\d*)*)"
    r"(?:-r(?P<rev>\d+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.+_-]+))?$"
)
_SUFFIX_RE = re.compile(r"_(alpha|beta|pre|rc|p)(\d*)")
_LETTER_COMPONENT = re.compile(r"(\d+)([a-z])")


def _component_key(comp: str) -> Tuple[int, Any]:
    if comp.isdigit():
        return (0, int(comp))
    return (1, comp)


def _split_letter(base: Tuple[str, ...]) -> Tuple[Tuple[str, ...], str]:
    # only the last component may carry a letter ("1.2b")
    if base:
        m = _LETTER_COMPONENT.fullmatch(base[-1])
        if m:
            return base[:-1] + (m.group(1),), m.group(2)
    return base, ""


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


@functools.total_ordering
class Version:
    """A parsed, comparable ebuild version."""

    __slots__ = ("text", "base", "letter", "suffixes", "revision", "build", "glob")

    def __init__(self, text: str, base: Tuple[str, ...], suffixes: Tuple[Tuple[int, int], ...] = (),
                 revision: int = 0, build: str = "", glob: bool = False):
        self.text = text
        self.base, self.letter = _split_letter(tuple(base))
        self.suffixes = suffixes
        self.revision = revision
        self.build = build
        self.glob = glob

    def __repr__(self):
        return f"Version({self.text!r})"

    def __str__(self):
        return self.text

    def base_key(self) -> Tuple[Tuple[int, Any], ...]:
        return tuple(_component_key(c) for c in self.base)

    def compare(self, other: "Version") -> int:
        ka, kb = self.base_key(), other.base_key()
        for ca, cb in zip(ka, kb):
            c = _cmp(ca, cb)
            if c:
                return c
        c = _cmp(len(ka), len(kb))
        if c:
            return c
        c = _cmp(self.letter, other.letter)
        if c:
            return c

        n = max(len(self.suffixes), len(other.suffixes))
        sa = list(self.suffixes) + [_NO_SUFFIX] * (n - len(self.suffixes))
        sb = list(other.suffixes) + [_NO_SUFFIX] * (n - len(other.suffixes))
        for xa, xb in zip(sa, sb):
            c = _cmp(xa, xb)
            if c:
                return c

        c = _cmp(self.revision, other.revision)
        if c:
            return c
        return _cmp(self.build, other.build)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self):
        return hash((self.base_key(), self.letter, self.suffixes, self.revision, self.build))


@dataclass(frozen=True)
class Selector:
    op: str
    version: Optional[Version]
    text: str = ""

    @property
    def wildcard(self) -> bool:
        return self.version is None

    def __str__(self):
        return self.text or f"{self.op}{self.version}"


# ----------------------
# Parsing
# ----------------------
def split_comparator(text: str) -> Tuple[str, str]:
    s = (text or "").strip()
    for op in COMPARATORS:
        if s.startswith(op):
            return op, s[len(op):].strip()
    return "", s


def _parse_plain(text: str, allow_glob: bool = False) -> Version:
    m = _VERSION_RE.match(text)
    if not m:
        raise VersionError(f"invalid version '{text}'")
    if m.group("glob") and not allow_glob:
        raise VersionError(f"wildcard not allowed in version '{text}'")
    suffixes = tuple(
        (SUFFIX_RANK[name], int(num) if num else 0)
        for name, num in _SUFFIX_RE.findall(m.group("suffixes") or "")
    )
    return Version(
        text=text,
        base=tuple(m.group("base").split(".")),
        suffixes=suffixes,
        revision=int(m.group("rev")) if m.group("rev") else 0,
        build=m.group("build") or "",
        glob=bool(m.group("glob")),
    )


def parse_version(text: str) -> Version:
    """Parse a candidate version. A leading comparator is tolerated and dropped."""
    if text is None:
        raise VersionError("empty version")
    _, rest = split_comparator(str(text))
    if not rest:
        raise VersionError(f"empty version in '{text}'")
    return _parse_plain(rest)


def parse_selector(text: Optional[str]) -> Selector:
    """Parse a selector; empty text, '*' and '>=0' are wildcards."""
    raw = "" if text is None else str(text).strip()
    if raw in ("", "*", ">=0"):
        return Selector(op=">=", version=None, text=raw or ">=0")
    op, rest = split_comparator(raw)
    if not rest:
        raise VersionError(f"selector '{raw}' has no version")
    ver = _parse_plain(rest, allow_glob=(op in ("", "=")))
    return Selector(op=op or "=", version=ver, text=raw)


# ----------------------
# Admission
# ----------------------
def package_admit(selector: Selector, candidate: Version) -> bool:
    if selector.wildcard:
        return True
    ref = selector.version
    op = selector.op
    if op == "=":
        if ref.glob:
            return candidate.base_key()[:len(ref.base)] == ref.base_key()
        return candidate == ref
    if op in ("~", "~="):
        return (candidate.base_key() == ref.base_key() and candidate.letter == ref.letter
                and candidate.suffixes == ref.suffixes)
    c = candidate.compare(ref)
    if op == ">=":
        return c >= 0
    if op == ">":
        return c > 0
    if op == "<=":
        return c <= 0
    if op == "<":
        return c < 0
    raise VersionError(f"unknown comparator '{op}'")


def admit(selector: str, candidate: str) -> bool:
    """String form of package_admit. Unparsable input is never admitted."""
    try:
        return package_admit(parse_selector(selector), parse_version(candidate))
    except VersionError as e:
        logger.warning("version: cannot evaluate '%s' against '%s': %s", candidate, selector, e)
        return False


# ----------------------
# Slots
# ----------------------
def slot_major(slot: Optional[str]) -> str:
    if slot is None:
        return "0"
    return str(slot).split("/", 1)[0].strip() or "0"


def sanitize_category(category: str, slot: Optional[str]) -> str:
    """Return "<category>-<slot-major>" for non-zero slots; idempotent."""
    major = slot_major(slot)
    if major == "0":
        return category
    suffix = f"-{major}"
    if category.endswith(suffix):
        return category
    return category + suffix
