from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from artifact_depot.config import DepotConfiguration
from artifact_depot.depot import Depot
from artifact_depot.errors import ArtifactRepositoryError
from artifact_depot.handlers import ArtifactHandlerRegistry
from artifact_depot.models import ArtifactType, ProjectVersion, RefreshResponse
from artifact_depot.validators import is_valid_release_version, sort_release_versions


GROUP = "examples.metadata"


class FakeRepository:
    """In-memory stand-in for the Maven repository."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.published: Set[ProjectVersion] = set()
        self.dependencies: Dict[ProjectVersion, Set[ProjectVersion]] = {}
        self.files: Dict[Tuple[ArtifactType, ProjectVersion], List[Path]] = {}
        self.metadata: Dict[ProjectVersion, Dict[str, str]] = {}
        self.failing: Dict[Tuple[str, str], Exception] = {}
        self.dependency_calls: List[ProjectVersion] = []

    def publish(
        self,
        group_id: str,
        artifact_id: str,
        version_id: str,
        dependencies=(),
        files: Optional[Dict[ArtifactType, List[str]]] = None,
    ) -> ProjectVersion:
        pv = ProjectVersion(group_id, artifact_id, version_id)
        self.published.add(pv)
        self.dependencies[pv] = set(dependencies)
        for artifact_type, contents in (files or {}).items():
            paths = []
            for i, content in enumerate(contents):
                path = self.root / group_id / artifact_id / version_id / f"{artifact_type.value}-{i}.jar"
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content)
                paths.append(path)
            self.files[(artifact_type, pv)] = paths
        return pv

    def are_valid_coordinates(self, group_id, artifact_id):
        return ":" not in group_id and ":" not in artifact_id

    def find_versions(self, group_id, artifact_id):
        if (group_id, artifact_id) in self.failing:
            raise self.failing[(group_id, artifact_id)]
        return sort_release_versions(
            pv.version_id for pv in self.published
            if pv.group_id == group_id and pv.artifact_id == artifact_id
            and is_valid_release_version(pv.version_id)
        )

    def find_version(self, group_id, artifact_id, version_id):
        if (group_id, artifact_id) in self.failing:
            raise self.failing[(group_id, artifact_id)]
        pv = ProjectVersion(group_id, artifact_id, version_id)
        return version_id if pv in self.published else None

    def find_dependencies(self, group_id, artifact_id, version_id):
        if (group_id, artifact_id) in self.failing:
            raise self.failing[(group_id, artifact_id)]
        pv = ProjectVersion(group_id, artifact_id, version_id)
        self.dependency_calls.append(pv)
        return set(self.dependencies.get(pv, set()))

    def find_files(self, artifact_type, group_id, artifact_id, version_id):
        return list(self.files.get((artifact_type, ProjectVersion(group_id, artifact_id, version_id)), []))

    def get_project_metadata(self, group_id, artifact_id, version_id):
        return self.metadata.get(ProjectVersion(group_id, artifact_id, version_id))


class RecordingHandler:
    """Artifact handler that records calls and can be told to fail."""

    def __init__(self, artifact_type: ArtifactType, fail: bool = False) -> None:
        self.artifact_type = artifact_type
        self.fail = fail
        self.calls: List[Tuple[str, List[Path]]] = []
        self.deleted: List[str] = []

    def matches(self, file):
        return Path(file).suffix == ".jar"

    def refresh(self, group_id, artifact_id, version_id, files):
        gav = f"{group_id}-{artifact_id}-{version_id}"
        self.calls.append((gav, list(files)))
        if self.fail:
            return RefreshResponse(errors=[f"{self.artifact_type.value} failed for {gav}"])
        return RefreshResponse(messages=[f"{self.artifact_type.value} processed {gav}"])

    def delete(self, group_id, artifact_id, version_id):
        self.deleted.append(f"{group_id}-{artifact_id}-{version_id}")


class Clock:
    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def repository(tmp_path):
    return FakeRepository(tmp_path / "repo")


@pytest.fixture
def handlers():
    return {t: RecordingHandler(t) for t in ArtifactType}


@pytest.fixture
def config(tmp_path):
    return DepotConfiguration(cache_dir=tmp_path / "cache", workers=2, maximum_snapshots_allowed=3)


@pytest.fixture
def depot(config, repository, handlers):
    return Depot.create(
        config,
        repository=repository,
        registry=ArtifactHandlerRegistry(handlers.values()),
    )
