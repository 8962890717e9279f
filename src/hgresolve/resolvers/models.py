"""Data models for targets, resolutions and parsed refs."""

import re
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type, Union

FULL_COMMIT_RE = re.compile(r"^[a-f0-9]{40}$")
COMMIT_ID_RE = re.compile(r"^([0-9]+:)?([a-f0-9]{12,40})$")
REF_LINE_RE = re.compile(r"^(\S+)\s+((?:[0-9]+:)?[a-f0-9]{12})$")
REF_STATUS_RE = re.compile(r"\s+\((?:inactive|closed)\)$")
DEREF_MARKER = "^{}"


@dataclass(frozen=True)
class CommitResolution:
    """Target resolved to a raw commit."""

    type: ClassVar[str] = "commit"
    commit: str

    @property
    def ref(self) -> str:
        return self.commit


@dataclass(frozen=True)
class VersionResolution:
    """Target resolved to a tag whose name is a semantic version."""

    type: ClassVar[str] = "version"
    tag: str
    commit: str

    @property
    def ref(self) -> str:
        return self.tag


@dataclass(frozen=True)
class TagResolution:
    """Target resolved to a tag that is not a semantic version."""

    type: ClassVar[str] = "tag"
    tag: str
    commit: str

    @property
    def ref(self) -> str:
        return self.tag


@dataclass(frozen=True)
class BranchResolution:
    """Target resolved to the head of a branch."""

    type: ClassVar[str] = "branch"
    branch: str
    commit: str

    @property
    def ref(self) -> str:
        return self.branch


Resolution = Union[CommitResolution, VersionResolution, TagResolution, BranchResolution]

_RESOLUTION_TYPES: Dict[str, Type[Any]] = {
    cls.type: cls
    for cls in (CommitResolution, VersionResolution, TagResolution, BranchResolution)
}


def resolution_to_dict(resolution: Resolution) -> Dict[str, str]:
    """Serialize a resolution the way it is persisted in package metadata."""
    data = {"type": resolution.type}
    data.update(asdict(resolution))
    return data


def resolution_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[Resolution]:
    """Rebuild a resolution from persisted metadata; None if absent or unknown."""
    if not data:
        return None
    cls = _RESOLUTION_TYPES.get(data.get("type", ""))
    if cls is None:
        return None
    try:
        if cls is CommitResolution:
            return CommitResolution(commit=data["commit"])
        if cls is BranchResolution:
            return BranchResolution(branch=data["branch"], commit=data["commit"])
        return cls(tag=data["tag"], commit=data["commit"])
    except KeyError:
        return None


@dataclass(frozen=True)
class VersionEntry:
    """A tag that cleans to a valid semantic version."""

    version: str
    tag: str
    commit: str


@dataclass
class DecEndpoint:
    """Dependency declaration handed to a resolver."""

    source: str
    target: Optional[str] = None
    name: Optional[str] = None


def parse_ref_line(line: str) -> Optional[Tuple[str, str]]:
    """Split one line of ref listing output into (name, commit id).

    A trailing ``(inactive)``/``(closed)`` status marker is ignored.
    """
    match = REF_LINE_RE.match(REF_STATUS_RE.sub("", line.strip()))
    if not match:
        return None
    return match.group(1), match.group(2)


def commit_hash(commit: str) -> str:
    """Hash part of a commit id, dropping any ``N:`` revision prefix."""
    return commit.split(":", 1)[1] if ":" in commit else commit
