"""
Interfaces for the repository client, stores, queue and artifact handlers.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Set, Tuple

from .models import (
    ArtifactFileRecord,
    ArtifactType,
    ProjectRecord,
    ProjectVersion,
    ProjectVersionRecord,
    RefreshLease,
    RefreshRequest,
    RefreshResponse,
)


class ArtifactRepository(Protocol):
    """Read-only view of the upstream artifact repository.

    Lookups that find nothing return ``None`` or an empty collection;
    access failures raise ``ArtifactRepositoryError``.
    """

    def are_valid_coordinates(self, group_id: str, artifact_id: str) -> bool:
        ...

    def find_versions(self, group_id: str, artifact_id: str) -> List[str]:
        ...

    def find_version(self, group_id: str, artifact_id: str, version_id: str) -> Optional[str]:
        ...

    def find_dependencies(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Set[ProjectVersion]:
        ...

    def find_files(
        self, artifact_type: ArtifactType, group_id: str, artifact_id: str, version_id: str
    ) -> List[Path]:
        ...

    def get_project_metadata(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Optional[Dict[str, str]]:
        ...


class ProjectStore(Protocol):
    """Project and project-version records."""

    def find_project(self, group_id: str, artifact_id: str) -> Optional[ProjectRecord]:
        ...

    def create_project_if_absent(self, project: ProjectRecord) -> Tuple[ProjectRecord, bool]:
        ...

    def save_project(self, project: ProjectRecord) -> ProjectRecord:
        ...

    def update_latest_version(self, group_id: str, artifact_id: str, version_id: str) -> bool:
        ...

    def all_projects(self) -> List[ProjectRecord]:
        ...

    def find_version(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Optional[ProjectVersionRecord]:
        ...

    def find_versions(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        ...

    def find_snapshot_versions(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        ...

    def find_dependents(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> List[ProjectVersionRecord]:
        ...

    def save_version(self, record: ProjectVersionRecord) -> ProjectVersionRecord:
        ...


class LeaseStore(Protocol):
    """Refresh leases keyed by version coordinates."""

    def try_acquire(self, lease: RefreshLease, now: datetime) -> bool:
        ...

    def release(self, group_id: str, artifact_id: str, version_id: str) -> None:
        ...

    def find(self, group_id: str, artifact_id: str, version_id: str) -> Optional[RefreshLease]:
        ...

    def all_leases(self) -> List[RefreshLease]:
        ...

    def delete_if_expired(self, project_version: ProjectVersion, now: datetime) -> bool:
        ...


class ArtifactFileStore(Protocol):
    """Content checksums of processed artifact files."""

    def find_file(self, path: str) -> Optional[ArtifactFileRecord]:
        ...

    def save_file(self, record: ArtifactFileRecord) -> None:
        ...


class WorkQueue(Protocol):
    """FIFO of refresh requests."""

    def push(self, request: RefreshRequest) -> str:
        ...

    def pop(self) -> Optional[RefreshRequest]:
        ...

    def size(self) -> int:
        ...


class ArtifactHandler(Protocol):
    """Extracts and persists the content of one artifact type."""

    artifact_type: ArtifactType

    def matches(self, file: Path) -> bool:
        ...

    def refresh(
        self, group_id: str, artifact_id: str, version_id: str, files: List[Path]
    ) -> RefreshResponse:
        ...

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> None:
        ...
