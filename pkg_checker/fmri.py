"""
Package identifiers (FMRIs) and their version ordering.

The canonical text form is::

    [pkg://publisher/]name[@release[,build][-branch][:timestamp]]

``pkg:/name`` (no publisher) and a bare ``name`` are accepted as well.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional, Tuple, Union

from .errors import ParseError


_SEGMENT_RE = re.compile(r"[0-9]+")
_NAME_FORBIDDEN = re.compile(r"[\s@,:]")

Segments = Tuple[int, ...]


def _optional_key(value) -> tuple:
    # a missing field sorts before any present value
    if value is None:
        return (0,)
    return (1, value)


def _parse_segments(text: str, field_name: str, source: str) -> Segments:
    if not text:
        raise ParseError(f"empty {field_name} in {source!r}")
    segments = []
    for segment in text.split("."):
        if not _SEGMENT_RE.fullmatch(segment):
            raise ParseError(f"malformed {field_name} segment {segment!r} in {source!r}")
        segments.append(int(segment))
    return tuple(segments)


def _format_segments(segments: Segments) -> str:
    return ".".join(str(s) for s in segments)


@total_ordering
@dataclass(frozen=True)
class Version:
    """A package version: release, build, branch and timestamp."""

    release: Segments
    build: Optional[Segments] = None
    branch: Optional[Segments] = None
    timestamp: Optional[str] = None

    @property
    def sort_key(self) -> tuple:
        return (
            self.release,
            _optional_key(self.build),
            _optional_key(self.branch),
            _optional_key(self.timestamp),
        )

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        text = _format_segments(self.release)
        if self.build is not None:
            text += "," + _format_segments(self.build)
        if self.branch is not None:
            text += "-" + _format_segments(self.branch)
        if self.timestamp is not None:
            text += ":" + self.timestamp
        return text


@total_ordering
@dataclass(frozen=True)
class FMRI:
    """Fault Managed Resource Identifier.

    Without a version this is a stem reference (used by dependency
    declarations); with one it is a fully qualified catalog key.
    """

    name: str
    publisher: Optional[str] = None
    version: Optional[Version] = None

    @property
    def sort_key(self) -> tuple:
        version_key = None if self.version is None else self.version.sort_key
        return (self.name, _optional_key(self.publisher), _optional_key(version_key))

    def __lt__(self, other: "FMRI") -> bool:
        if not isinstance(other, FMRI):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        return format_fmri(self)

    def is_stem(self) -> bool:
        return self.version is None

    def stem(self) -> "FMRI":
        """Return the same FMRI without its version."""
        if self.version is None:
            return self
        return FMRI(name=self.name, publisher=self.publisher)

    def stem_equal(self, other: "FMRI") -> bool:
        if self.name != other.name:
            return False
        if self.publisher is not None and other.publisher is not None:
            return self.publisher == other.publisher
        return True


def parse_version(text: str) -> Version:
    """Parse ``release[,build][-branch][:timestamp]``."""
    source = text
    timestamp = None
    if ":" in text:
        text, timestamp = text.split(":", 1)
        if not timestamp or ":" in timestamp:
            raise ParseError(f"malformed timestamp in version {source!r}")

    branch = None
    if "-" in text:
        text, branch_text = text.split("-", 1)
        branch = _parse_segments(branch_text, "branch", source)

    build = None
    if "," in text:
        text, build_text = text.split(",", 1)
        build = _parse_segments(build_text, "build", source)

    release = _parse_segments(text, "release", source)
    return Version(release=release, build=build, branch=branch, timestamp=timestamp)


def _validate_name(name: str, source: str) -> str:
    if not name:
        raise ParseError(f"empty package name in {source!r}")
    if _NAME_FORBIDDEN.search(name):
        raise ParseError(f"invalid character in package name {name!r}")
    if any(not part for part in name.split("/")):
        raise ParseError(f"empty name segment in {source!r}")
    return name


def parse(text: str) -> FMRI:
    """Parse an FMRI from its textual form.

    Raises:
        ParseError: on an empty name, a malformed version or a doubled
            separator.
    """
    if text is None:
        raise ParseError("missing FMRI")
    source = text
    text = text.strip()
    if not text:
        raise ParseError("empty FMRI")

    publisher = None
    if text.startswith("pkg://"):
        rest = text[len("pkg://"):]
        publisher, sep, text = rest.partition("/")
        if not publisher or not sep:
            raise ParseError(f"missing publisher or name in {source!r}")
        if _NAME_FORBIDDEN.search(publisher):
            raise ParseError(f"invalid publisher {publisher!r}")
    elif text.startswith("pkg:/"):
        text = text[len("pkg:/"):]

    if text.count("@") > 1:
        raise ParseError(f"doubled version separator in {source!r}")
    name, sep, version_text = text.partition("@")
    version = None
    if sep:
        version = parse_version(version_text)
    return FMRI(name=_validate_name(name, source), publisher=publisher, version=version)


def format_fmri(fmri: FMRI) -> str:
    prefix = f"pkg://{fmri.publisher}/" if fmri.publisher else "pkg:/"
    text = prefix + fmri.name
    if fmri.version is not None:
        text += "@" + str(fmri.version)
    return text


def compare(a: Union[FMRI, Version], b: Union[FMRI, Version]) -> int:
    """Three-way comparison: -1, 0 or 1."""
    if a == b:
        return 0
    return -1 if a < b else 1


def is_stem(fmri: FMRI) -> bool:
    return fmri.version is None


def _publisher_matches(constraint: FMRI, candidate: FMRI) -> bool:
    return constraint.publisher is None or constraint.publisher == candidate.publisher


def matches(constraint: FMRI, candidate: FMRI) -> bool:
    """A stem matches any version of its name, a versioned FMRI only itself."""
    if constraint.name != candidate.name:
        return False
    if not _publisher_matches(constraint, candidate):
        return False
    if constraint.version is None:
        return True
    return constraint.version == candidate.version


def satisfies(constraint: FMRI, candidate: FMRI) -> bool:
    """Whether ``candidate`` fulfils a dependency declared on ``constraint``.

    Dependencies name a minimum version, so anything at or above it does.
    """
    if not constraint.stem_equal(candidate):
        return False
    if constraint.version is None:
        return True
    if candidate.version is None:
        return False
    return candidate.version >= constraint.version
