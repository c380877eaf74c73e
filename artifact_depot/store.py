"""
Thread-safe in-memory stores with JSON persistence.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .interfaces import ArtifactFileStore, LeaseStore, ProjectStore
from .models import (
    ArtifactFileRecord,
    Coordinate,
    ProjectRecord,
    ProjectVersion,
    ProjectVersionRecord,
    RefreshLease,
)
from .time_utils import format_timestamp, parse_timestamp, utcnow
from .validators import is_snapshot_version


logger = logging.getLogger(__name__)


class InMemoryProjectStore(ProjectStore, ArtifactFileStore):
    """Projects, versions and artifact file checksums held in memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._projects: Dict[Coordinate, ProjectRecord] = {}
        self._versions: Dict[ProjectVersion, ProjectVersionRecord] = {}
        self._files: Dict[str, ArtifactFileRecord] = {}

    def find_project(self, group_id: str, artifact_id: str) -> Optional[ProjectRecord]:
        with self._lock:
            return self._projects.get(Coordinate(group_id, artifact_id))

    def create_project_if_absent(self, project: ProjectRecord) -> Tuple[ProjectRecord, bool]:
        """Insert ``project`` unless its coordinates are taken.

        Returns:
            The stored project and whether it was created by this call
        """
        with self._lock:
            existing = self._projects.get(project.coordinate)
            if existing is not None:
                return existing, False
            self._projects[project.coordinate] = project
            return project, True

    def save_project(self, project: ProjectRecord) -> ProjectRecord:
        with self._lock:
            self._projects[project.coordinate] = project
        return project

    def update_latest_version(self, group_id: str, artifact_id: str, version_id: str) -> bool:
        """Record ``version_id`` as the project's latest release if it is newer."""
        with self._lock:
            project = self._projects.get(Coordinate(group_id, artifact_id))
            if project is None:
                return False
            return project.evaluate_latest_version_and_update(version_id)

    def all_projects(self) -> List[ProjectRecord]:
        with self._lock:
            return sorted(self._projects.values(), key=lambda p: p.coordinate)

    def find_version(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Optional[ProjectVersionRecord]:
        with self._lock:
            return self._versions.get(ProjectVersion(group_id, artifact_id, version_id))

    def find_versions(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        coordinate = Coordinate(group_id, artifact_id)
        with self._lock:
            return [r for pv, r in self._versions.items() if pv.coordinate == coordinate]

    def find_snapshot_versions(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        return [
            r for r in self.find_versions(group_id, artifact_id)
            if is_snapshot_version(r.version_id)
        ]

    def all_versions(self) -> List[ProjectVersionRecord]:
        with self._lock:
            return [self._versions[pv] for pv in sorted(self._versions)]

    def find_dependents(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> List[ProjectVersionRecord]:
        target = ProjectVersion(group_id, artifact_id, version_id)
        with self._lock:
            return [r for r in self._versions.values() if target in r.dependencies]

    def save_version(self, record: ProjectVersionRecord) -> ProjectVersionRecord:
        record.updated = utcnow()
        with self._lock:
            self._versions[record.project_version] = record
        return record

    def delete_version(self, group_id: str, artifact_id: str, version_id: str) -> bool:
        with self._lock:
            return self._versions.pop(ProjectVersion(group_id, artifact_id, version_id), None) is not None

    def find_file(self, path: str) -> Optional[ArtifactFileRecord]:
        with self._lock:
            return self._files.get(path)

    def save_file(self, record: ArtifactFileRecord) -> None:
        with self._lock:
            self._files[record.path] = record

    def to_dict(self) -> Dict:
        with self._lock:
            return {
                "projects": [p.to_dict() for p in self.all_projects()],
                "versions": [r.to_dict() for r in self.all_versions()],
                "artifactFiles": [
                    {"path": f.path, "checksum": f.checksum}
                    for f in sorted(self._files.values(), key=lambda f: f.path)
                ],
            }

    def load_dict(self, data: Dict) -> None:
        with self._lock:
            for item in data.get("projects", []):
                project = ProjectRecord.from_dict(item)
                self._projects[project.coordinate] = project
            for item in data.get("versions", []):
                record = ProjectVersionRecord.from_dict(item)
                self._versions[record.project_version] = record
            for item in data.get("artifactFiles", []):
                self._files[item["path"]] = ArtifactFileRecord(item["path"], item["checksum"])


class InMemoryLeaseStore(LeaseStore):
    """Lease table with conditional insert-if-absent-or-expired."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._leases: Dict[ProjectVersion, RefreshLease] = {}

    def try_acquire(self, lease: RefreshLease, now: datetime) -> bool:
        key = lease.project_version
        with self._lock:
            current = self._leases.get(key)
            if current is not None and not current.is_expired(now):
                return False
            self._leases[key] = lease
            return True

    def release(self, group_id: str, artifact_id: str, version_id: str) -> None:
        with self._lock:
            self._leases.pop(ProjectVersion(group_id, artifact_id, version_id), None)

    def find(self, group_id: str, artifact_id: str, version_id: str) -> Optional[RefreshLease]:
        with self._lock:
            return self._leases.get(ProjectVersion(group_id, artifact_id, version_id))

    def all_leases(self) -> List[RefreshLease]:
        with self._lock:
            return list(self._leases.values())

    def delete_if_expired(self, project_version: ProjectVersion, now: datetime) -> bool:
        with self._lock:
            current = self._leases.get(project_version)
            if current is None or not current.is_expired(now):
                return False
            del self._leases[project_version]
            return True

    def to_dict(self) -> Dict:
        return {
            "leases": [
                {
                    **lease.project_version.to_dict(),
                    "created": format_timestamp(lease.created),
                    "ttlSeconds": lease.ttl.total_seconds(),
                    "eventId": lease.event_id,
                }
                for lease in self.all_leases()
            ]
        }

    def load_dict(self, data: Dict) -> None:
        with self._lock:
            for item in data.get("leases", []):
                lease = RefreshLease(
                    group_id=item["groupId"],
                    artifact_id=item["artifactId"],
                    version_id=item["versionId"],
                    created=parse_timestamp(item.get("created")) or utcnow(),
                    ttl=timedelta(seconds=item.get("ttlSeconds", 0)),
                    event_id=item.get("eventId"),
                )
                self._leases[lease.project_version] = lease


def save_state(
    state_file: Path, projects: InMemoryProjectStore, leases: InMemoryLeaseStore
) -> Path:
    state_file.parent.mkdir(parents=True, exist_ok=True)
    payload = {**projects.to_dict(), **leases.to_dict()}
    with open(state_file, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    logger.info("Saved depot state to %s", state_file)
    return state_file


def load_state(state_file: Path) -> Tuple[InMemoryProjectStore, InMemoryLeaseStore]:
    """Stores populated from ``state_file``; empty stores if it does not exist."""
    projects = InMemoryProjectStore()
    leases = InMemoryLeaseStore()
    if not state_file.exists():
        logger.info("No depot state at %s, starting empty", state_file)
        return projects, leases
    with open(state_file, "r", encoding="utf-8") as f:
        data = json.load(f)
    projects.load_dict(data)
    leases.load_dict(data)
    logger.info(
        "Loaded %s projects and %s versions from %s",
        len(data.get("projects", [])),
        len(data.get("versions", [])),
        state_file,
    )
    return projects, leases
