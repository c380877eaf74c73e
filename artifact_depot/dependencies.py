"""
Direct and transitive dependency resolution for project versions.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from typing import Deque, Dict, Iterable, List, Set, Tuple

from .errors import VersionNotFoundError
from .interfaces import ArtifactRepository, ProjectStore
from .models import ProjectVersion, ProjectVersionRecord, TransitiveDependencyReport
from .validators import is_snapshot_version, is_valid_release_version


logger = logging.getLogger(__name__)


class DependencyManager:
    """Compute and maintain the dependency closure of stored versions."""

    def __init__(
        self,
        projects: ProjectStore,
        repository: ArtifactRepository,
        max_depth: int = 64,
    ) -> None:
        self.projects = projects
        self.repository = repository
        self.max_depth = max_depth

    def direct_dependencies(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> List[ProjectVersion]:
        logger.info("Finding dependencies for [%s-%s-%s]", group_id, artifact_id, version_id)
        dependencies = sorted(self.repository.find_dependencies(group_id, artifact_id, version_id))
        logger.info(
            "Found [%s] dependencies for [%s-%s-%s]",
            len(dependencies), group_id, artifact_id, version_id,
        )
        return dependencies

    def transitive_closure(self, dependencies: Iterable[ProjectVersion]) -> TransitiveDependencyReport:
        """Every version reachable from ``dependencies``.

        Stored versions contribute their recorded dependencies and closure
        without being walked again; versions missing from the store are
        expanded from the repository. The report is invalid as soon as an
        excluded or invalid stored version is reached, or the walk goes
        deeper than ``max_depth``.

        Args:
            dependencies: Direct dependencies of the version being resolved

        Returns:
            TransitiveDependencyReport for the whole set
        """
        closure: Set[ProjectVersion] = set()
        visited: Set[ProjectVersion] = set()
        frontier: Deque[Tuple[ProjectVersion, int]] = deque((d, 1) for d in dependencies)

        while frontier:
            dependency, depth = frontier.popleft()
            if dependency in visited:
                continue
            visited.add(dependency)
            closure.add(dependency)

            record = self.projects.find_version(
                dependency.group_id, dependency.artifact_id, dependency.version_id
            )
            if record is not None:
                if record.excluded:
                    logger.error("Project Version depending on an excluded version: %s", dependency.gav)
                    return TransitiveDependencyReport.invalid()
                if not record.transitive_report.valid:
                    logger.error("Cannot calculate dependencies for project version: %s", dependency.gav)
                    return TransitiveDependencyReport.invalid()
                closure.update(record.dependencies)
                closure.update(record.transitive_report.transitive_dependencies)
                continue

            if depth >= self.max_depth:
                logger.error(
                    "Dependency depth limit [%s] reached resolving %s", self.max_depth, dependency.gav
                )
                return TransitiveDependencyReport.invalid()
            logger.info("Finding dependencies for %s as no data is present in the store", dependency.gav)
            for child in self.direct_dependencies(
                dependency.group_id, dependency.artifact_id, dependency.version_id
            ):
                frontier.append((child, depth + 1))

        logger.info("Completed finding dependencies, %s found", len(closure))
        return TransitiveDependencyReport(frozenset(closure), True)

    def update_transitive_dependencies(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> ProjectVersionRecord:
        """Recompute and store the closure of a version.

        Snapshot versions also refresh every stored version that depends on
        them, repeating for dependents that are snapshots themselves. A
        dependent is recomputed only after every affected version it
        depends on has been.

        Raises:
            VersionNotFoundError: the version is not stored or is excluded
        """
        record = self.projects.find_version(group_id, artifact_id, version_id)
        if record is None or record.excluded:
            raise VersionNotFoundError(group_id, artifact_id, version_id)

        updated = record
        for current in self._cascade_order(record):
            logger.info("Finding dependencies for %s", current.gav)
            saved = self.projects.save_version(
                replace(current, transitive_report=self.transitive_closure(current.dependencies))
            )
            if saved.project_version == record.project_version:
                updated = saved
            logger.info("Completed finding dependencies for %s", current.gav)
        return updated

    def _cascade_order(self, root: ProjectVersionRecord) -> List[ProjectVersionRecord]:
        """``root`` and its snapshot-reachable dependents, dependencies first.

        Versions on a dependency cycle are appended in discovery order.
        """
        affected: Dict[ProjectVersion, ProjectVersionRecord] = {root.project_version: root}
        frontier: Deque[ProjectVersionRecord] = deque([root])
        while frontier:
            current = frontier.popleft()
            if not is_snapshot_version(current.version_id):
                continue
            for dependent in self.projects.find_dependents(
                current.group_id, current.artifact_id, current.version_id
            ):
                if dependent.excluded:
                    logger.warning("Skipping excluded dependent %s of %s", dependent.gav, current.gav)
                    continue
                if dependent.project_version not in affected:
                    affected[dependent.project_version] = dependent
                    frontier.append(dependent)

        waiting = {
            pv: {d for d in record.dependencies if d in affected and d != pv}
            for pv, record in affected.items()
        }
        waiting[root.project_version] = set()
        order: List[ProjectVersionRecord] = []
        done: Set[ProjectVersion] = set()
        progressed = True
        while progressed:
            progressed = False
            for pv, record in affected.items():
                if pv not in done and waiting[pv] <= done:
                    order.append(record)
                    done.add(pv)
                    progressed = True
        order.extend(record for pv, record in affected.items() if pv not in done)
        return order

    def validate_dependencies(
        self, dependencies: Iterable[ProjectVersion], version_id: str
    ) -> List[str]:
        """One error per snapshot dependency of a release version."""
        errors = []
        if not is_valid_release_version(version_id):
            return errors
        for dependency in dependencies:
            if is_snapshot_version(dependency.version_id):
                error = (
                    f"Snapshot dependency {dependency.group_id}-{dependency.artifact_id}-"
                    f"{dependency.version_id} not allowed in versions"
                )
                logger.error(error)
                errors.append(error)
        return errors
