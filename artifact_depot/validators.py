"""
Coordinate and version string validators.

These are pure predicates used as guards before any store mutation.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from packaging import version as pkg_version


SNAPSHOT_SUFFIX = "-SNAPSHOT"
MASTER_BRANCH = "master"
VERSION_ALIASES = ("latest", "head")

_RELEASE_VERSION = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")
_GROUP_SEGMENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_ARTIFACT_ID = re.compile(r"^[a-z][a-z0-9_]*(-[a-z][a-z0-9_]*)*$")

# Group ids follow java package naming, so reserved words are rejected.
_RESERVED_WORDS = frozenset(
    {
        "_", "abstract", "assert", "boolean", "break", "byte", "case", "catch",
        "char", "class", "const", "continue", "default", "do", "double", "else",
        "enum", "extends", "false", "final", "finally", "float", "for", "goto",
        "if", "implements", "import", "instanceof", "int", "interface", "long",
        "native", "new", "null", "package", "private", "protected", "public",
        "return", "short", "static", "strictfp", "super", "switch",
        "synchronized", "this", "throw", "throws", "transient", "true", "try",
        "void", "volatile", "while",
    }
)


def branch_snapshot(branch: Optional[str]) -> str:
    """Version id of the snapshot built from ``branch``."""
    return f"{branch}{SNAPSHOT_SUFFIX}"


MASTER_SNAPSHOT = branch_snapshot(MASTER_BRANCH)


def is_valid_group_id(group_id: Optional[str]) -> bool:
    if not group_id:
        return False
    segments = group_id.split(".")
    return all(
        _GROUP_SEGMENT.fullmatch(segment) is not None and segment not in _RESERVED_WORDS
        for segment in segments
    )


def is_valid_artifact_id(artifact_id: Optional[str]) -> bool:
    return artifact_id is not None and _ARTIFACT_ID.fullmatch(artifact_id) is not None


def is_valid_release_version(version_id: Optional[str]) -> bool:
    """Strict ``N.N.N`` check, no qualifiers or surrounding whitespace."""
    return version_id is not None and _RELEASE_VERSION.fullmatch(version_id) is not None


def is_snapshot_version(version_id: str) -> bool:
    if version_id is None:
        raise TypeError("version_id must not be None")
    return version_id.endswith(SNAPSHOT_SUFFIX)


def is_valid(version_id: Optional[str]) -> bool:
    """Release versions and snapshot versions (including branch snapshots)."""
    if version_id is None:
        return False
    return is_valid_release_version(version_id) or is_snapshot_version(version_id)


def is_version_alias(version_id: Optional[str]) -> bool:
    return version_id is not None and version_id.lower() in VERSION_ALIASES


def release_key(version_id: str) -> pkg_version.Version:
    """Sort key giving semantic ordering of release versions."""
    return pkg_version.parse(version_id)


def sort_release_versions(version_ids: Iterable[str]) -> List[str]:
    """Release versions from ``version_ids`` in ascending semantic order."""
    releases = [v for v in version_ids if is_valid_release_version(v)]
    return sorted(set(releases), key=release_key)


def is_newer_release(candidate: str, current: Optional[str]) -> bool:
    """Whether ``candidate`` should replace ``current`` as latest release."""
    if not is_valid_release_version(candidate):
        return False
    if current is None or not is_valid_release_version(current):
        return True
    return release_key(candidate) > release_key(current)
