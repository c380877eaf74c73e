"""
Core data models for the artifact depot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from .time_utils import format_timestamp, parse_timestamp, utcnow
from .validators import is_newer_release


SEPARATOR = "-"


class ArtifactType(Enum):
    """Kinds of published artifact content, in processing order."""

    ENTITIES = "entities"
    VERSIONED_ENTITIES = "versioned-entities"
    FILE_GENERATIONS = "file-generation"

    @property
    def module_name(self) -> str:
        return self.value


class ParentEvent(Enum):
    """Origins of refresh work, used as lineage for fan-out events."""

    UPDATE_PROJECT_VERSION = "UPDATE_PROJECT_VERSION"
    UPDATE_PROJECT_ALL_VERSIONS = "UPDATE_PROJECT_ALL_VERSIONS"
    UPDATE_ALL_PROJECT_ALL_VERSIONS = "UPDATE_ALL_PROJECT_ALL_VERSIONS"
    UPDATE_ALL_PROJECT_ALL_SNAPSHOTS = "UPDATE_ALL_PROJECT_ALL_SNAPSHOTS"
    UPDATE_DEPENDENCIES = "UPDATE_DEPENDENCIES"

    @staticmethod
    def build(
        group_id: str, artifact_id: str, version_id: str, parent_event_id: Optional[str]
    ) -> str:
        if parent_event_id is not None:
            return parent_event_id
        return f"{group_id}_{artifact_id}_{version_id}"


@dataclass(frozen=True, order=True)
class Coordinate:
    """Group/artifact pair identifying a project."""

    group_id: str
    artifact_id: str

    def __str__(self) -> str:
        return f"{self.group_id}{SEPARATOR}{self.artifact_id}"


@dataclass(frozen=True, order=True)
class ProjectVersion:
    """Reference to one published version of a project."""

    group_id: str
    artifact_id: str
    version_id: str

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.group_id, self.artifact_id)

    @property
    def gav(self) -> str:
        return f"{self.group_id}{SEPARATOR}{self.artifact_id}{SEPARATOR}{self.version_id}"

    def __str__(self) -> str:
        return self.gav

    def to_dict(self) -> Dict[str, str]:
        return {
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "versionId": self.version_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ProjectVersion":
        return cls(data["groupId"], data["artifactId"], data["versionId"])


@dataclass(frozen=True)
class Property:
    """Name/value pair read from project metadata."""

    name: str
    value: str


@dataclass
class VersionData:
    """Dependency and property payload of a stored version."""

    dependencies: List[ProjectVersion] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "dependencies": [d.to_dict() for d in self.dependencies],
            "properties": [{"name": p.name, "value": p.value} for p in self.properties],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "VersionData":
        return cls(
            dependencies=[ProjectVersion.from_dict(d) for d in data.get("dependencies", [])],
            properties=[Property(p["name"], p["value"]) for p in data.get("properties", [])],
        )


@dataclass(frozen=True)
class TransitiveDependencyReport:
    """Versions reachable from a version, tagged with validity."""

    transitive_dependencies: FrozenSet[ProjectVersion] = frozenset()
    valid: bool = True

    @classmethod
    def invalid(cls) -> "TransitiveDependencyReport":
        return cls(frozenset(), False)

    def to_dict(self) -> Dict:
        return {
            "transitiveDependencies": [d.to_dict() for d in sorted(self.transitive_dependencies)],
            "valid": self.valid,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TransitiveDependencyReport":
        return cls(
            frozenset(ProjectVersion.from_dict(d) for d in data.get("transitiveDependencies", [])),
            data.get("valid", True),
        )


@dataclass
class ProjectRecord:
    """A project known to the depot, one per coordinate."""

    project_id: str
    group_id: str
    artifact_id: str
    default_branch: str = "master"
    latest_version: Optional[str] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.group_id, self.artifact_id)

    def evaluate_latest_version_and_update(self, version_id: str) -> bool:
        """Record ``version_id`` as latest if it is a newer release.

        Snapshot candidates never replace the recorded latest version.

        Returns:
            True when the latest version changed
        """
        if is_newer_release(version_id, self.latest_version):
            self.latest_version = version_id
            return True
        return False

    def to_dict(self) -> Dict:
        return {
            "projectId": self.project_id,
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "defaultBranch": self.default_branch,
            "latestVersion": self.latest_version,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ProjectRecord":
        return cls(
            project_id=data["projectId"],
            group_id=data["groupId"],
            artifact_id=data["artifactId"],
            default_branch=data.get("defaultBranch", "master"),
            latest_version=data.get("latestVersion"),
        )


@dataclass
class ProjectVersionRecord:
    """Stored state of one published version."""

    group_id: str
    artifact_id: str
    version_id: str
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)
    evicted: bool = False
    excluded: bool = False
    exclusion_reason: Optional[str] = None
    version_data: VersionData = field(default_factory=VersionData)
    transitive_report: TransitiveDependencyReport = field(default_factory=TransitiveDependencyReport)

    @property
    def project_version(self) -> ProjectVersion:
        return ProjectVersion(self.group_id, self.artifact_id, self.version_id)

    @property
    def gav(self) -> str:
        return self.project_version.gav

    @property
    def dependencies(self) -> List[ProjectVersion]:
        return self.version_data.dependencies

    def exclude(self, reason: str) -> None:
        self.excluded = True
        self.exclusion_reason = reason

    def to_dict(self) -> Dict:
        return {
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "versionId": self.version_id,
            "created": format_timestamp(self.created),
            "updated": format_timestamp(self.updated),
            "evicted": self.evicted,
            "excluded": self.excluded,
            "exclusionReason": self.exclusion_reason,
            "versionData": self.version_data.to_dict(),
            "transitiveDependenciesReport": self.transitive_report.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ProjectVersionRecord":
        return cls(
            group_id=data["groupId"],
            artifact_id=data["artifactId"],
            version_id=data["versionId"],
            created=parse_timestamp(data.get("created")) or utcnow(),
            updated=parse_timestamp(data.get("updated")) or utcnow(),
            evicted=data.get("evicted", False),
            excluded=data.get("excluded", False),
            exclusion_reason=data.get("exclusionReason"),
            version_data=VersionData.from_dict(data.get("versionData", {})),
            transitive_report=TransitiveDependencyReport.from_dict(
                data.get("transitiveDependenciesReport", {})
            ),
        )


@dataclass(frozen=True)
class RefreshLease:
    """Time-bounded claim on refreshing one version."""

    group_id: str
    artifact_id: str
    version_id: str
    created: datetime
    ttl: timedelta
    event_id: Optional[str] = None

    @property
    def project_version(self) -> ProjectVersion:
        return ProjectVersion(self.group_id, self.artifact_id, self.version_id)

    @property
    def expires_at(self) -> datetime:
        return self.created + self.ttl

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


@dataclass(frozen=True)
class ArtifactFileRecord:
    """Checksum of the last processed content of an artifact file."""

    path: str
    checksum: str


class RefreshResponse:
    """Messages and errors accumulated by a depot operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    def __init__(
        self,
        messages: Optional[Iterable[str]] = None,
        errors: Optional[Iterable[str]] = None,
    ) -> None:
        self.messages: List[str] = list(messages or [])
        self.errors: List[str] = list(errors or [])

    def add_message(self, message: str) -> "RefreshResponse":
        self.messages.append(message)
        return self

    def add_error(self, error: str) -> "RefreshResponse":
        self.errors.append(error)
        return self

    def combine(self, other: Optional["RefreshResponse"]) -> "RefreshResponse":
        if other is not None and other is not self:
            self.messages.extend(other.messages)
            self.errors.extend(other.errors)
        return self

    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def status(self) -> str:
        return self.FAILED if self.has_errors() else self.SUCCESS

    def to_dict(self) -> Dict:
        return {"status": self.status, "messages": list(self.messages), "errors": list(self.errors)}

    def __repr__(self) -> str:
        return f"RefreshResponse(messages={len(self.messages)}, errors={self.errors!r})"


DEFAULT_MAX_ATTEMPTS = 2


@dataclass
class RefreshRequest:
    """Queued request to refresh one version."""

    group_id: str
    artifact_id: str
    version_id: str
    project_id: Optional[str] = None
    full_update: bool = False
    transitive: bool = False
    parent_event_id: Optional[str] = None
    attempt: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created: datetime = field(default_factory=utcnow)
    completed: Optional[datetime] = None
    responses: Dict[int, RefreshResponse] = field(default_factory=dict)

    @property
    def project_version(self) -> ProjectVersion:
        return ProjectVersion(self.group_id, self.artifact_id, self.version_id)

    @property
    def gav(self) -> str:
        return self.project_version.gav

    def increase_attempts(self) -> None:
        self.attempt += 1

    def retries_exceeded(self) -> bool:
        return self.attempt >= self.max_attempts

    def combine_response(self, response: RefreshResponse) -> "RefreshRequest":
        self.responses.setdefault(self.attempt, RefreshResponse()).combine(response)
        return self

    def complete(self) -> "RefreshRequest":
        self.completed = utcnow()
        return self

    @property
    def status(self) -> str:
        return self.responses.get(self.attempt, RefreshResponse()).status

    def describe(self) -> str:
        return (
            f"[{self.gav}], eventId: [{self.event_id}], parentEventId: [{self.parent_event_id}], "
            f"full/transitive: [{self.full_update}/{self.transitive}], attempts: [{self.attempt}]"
        )
