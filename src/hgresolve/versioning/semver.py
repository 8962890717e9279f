"""npm-flavoured semantic version helpers built on ``semantic_version``."""

import functools
import re
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

import semantic_version

_CLEAN_PREFIX = re.compile(r"^[=v\s]+", re.IGNORECASE)

T = TypeVar("T")


def _parse(version: str) -> Optional[semantic_version.Version]:
    try:
        return semantic_version.Version(version)
    except (TypeError, ValueError):
        return None


def clean(version: str) -> Optional[str]:
    """Return the canonical form of a version string, or None if invalid.

    Leading ``v``/``=`` markers and surrounding whitespace are ignored, so
    ``"v1.2.3"`` cleans to ``"1.2.3"``.
    """
    if not isinstance(version, str):
        return None
    parsed = _parse(_CLEAN_PREFIX.sub("", version.strip()))
    return str(parsed) if parsed is not None else None


def valid_range(range_: str) -> bool:
    """Whether ``range_`` is a valid npm range expression."""
    if not isinstance(range_, str):
        return False
    try:
        semantic_version.NpmSpec(range_.strip())
    except ValueError:
        return False
    return True


def max_satisfying(versions: Sequence[str], range_: str, strict: bool = False) -> Optional[str]:
    """Return the highest version in ``versions`` satisfying ``range_``.

    An exact version present in the list always wins. With ``strict``
    enabled, releases are preferred and pre-releases are only considered when
    no release satisfies the range.
    """
    range_ = range_.strip()
    if _parse(range_) is not None and range_ in versions:
        return range_

    try:
        spec = semantic_version.NpmSpec(range_)
    except ValueError:
        return None

    parsed = [(v, p) for v, p in ((v, _parse(v)) for v in versions) if p is not None]

    if strict:
        releases = [(v, p) for v, p in parsed if not p.prerelease and spec.match(p)]
        if releases:
            return max(releases, key=lambda item: item[1])[0]

    matching = [(v, p) for v, p in parsed if spec.match(p)]
    if not matching:
        return None
    return max(matching, key=lambda item: item[1])[0]


def max_satisfying_index(versions: Sequence[str], range_: str, strict: bool = False) -> int:
    """Index of ``max_satisfying`` in ``versions``, or -1 when nothing matches."""
    version = max_satisfying(versions, range_, strict)
    if version is None:
        return -1
    return list(versions).index(version)


def compare(a: str, b: str) -> int:
    left, right = semantic_version.Version(a), semantic_version.Version(b)
    return (left > right) - (left < right)


def rcompare(a: str, b: str) -> int:
    """Reverse comparison, for sorting in descending order."""
    return compare(b, a)


def sort_desc(items: Iterable[T], key: Optional[Callable[[T], str]] = None) -> List[T]:
    """Sort highest version first; ``key`` extracts the version string from an item."""
    key = key or (lambda item: item)
    return sorted(items, key=functools.cmp_to_key(lambda a, b: rcompare(key(a), key(b))))


def neq(a: str, b: str) -> bool:
    """Whether two versions differ; loose forms such as ``v1.0.0`` are cleaned first."""
    left, right = clean(a), clean(b)
    if left is None or right is None:
        return a != b
    return semantic_version.Version(left) != semantic_version.Version(right)
