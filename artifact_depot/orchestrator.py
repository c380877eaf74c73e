"""
Bulk refresh entry points that decide which versions to queue.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from tqdm import tqdm

from .errors import ArtifactRepositoryError, ProjectNotFoundError
from .interfaces import ArtifactRepository, ProjectStore, WorkQueue
from .models import ParentEvent, ProjectRecord, RefreshRequest, RefreshResponse
from .validators import branch_snapshot, is_version_alias


logger = logging.getLogger(__name__)


class ArtifactsRefreshService:
    """Queue refresh requests for one version, one project, or every project."""

    def __init__(
        self,
        projects: ProjectStore,
        repository: ArtifactRepository,
        work_queue: WorkQueue,
        workers: int = 4,
        show_progress: bool = False,
    ) -> None:
        self.projects = projects
        self.repository = repository
        self.work_queue = work_queue
        self.workers = workers
        self.show_progress = show_progress

    def _get_project(self, group_id: str, artifact_id: str) -> ProjectRecord:
        project = self.projects.find_project(group_id, artifact_id)
        if project is None:
            raise ProjectNotFoundError(group_id, artifact_id)
        return project

    def _queue_version(
        self,
        project: ProjectRecord,
        version_id: str,
        full_update: bool,
        transitive: bool,
        parent_event_id: str,
    ) -> str:
        event_id = self.work_queue.push(
            RefreshRequest(
                project.group_id,
                project.artifact_id,
                version_id,
                project_id=project.project_id,
                full_update=full_update,
                transitive=transitive,
                parent_event_id=parent_event_id,
            )
        )
        message = (
            f"queued: [{project.group_id}-{project.artifact_id}-{version_id}], "
            f"parentEventId :[{parent_event_id}], full/transitive :[{full_update}/{transitive}], "
            f"event id :[{event_id}]"
        )
        logger.info(message)
        return message

    def refresh_version_for_project(
        self,
        group_id: str,
        artifact_id: str,
        version_id: str,
        full_update: bool = False,
        transitive: bool = False,
        parent_event_id: Optional[str] = None,
    ) -> RefreshResponse:
        response = RefreshResponse()
        project = self.projects.find_project(group_id, artifact_id)
        if project is None:
            error = f"Project does not exist for {group_id}-{artifact_id}"
            logger.error(error)
            return response.add_error(error)

        if is_version_alias(version_id):
            resolved = self._resolve_alias(project, version_id)
            if resolved is None:
                error = f"No latest version recorded for {group_id}-{artifact_id}"
                logger.error(error)
                return response.add_error(error)
            logger.info("Resolved %s of %s-%s to %s", version_id, group_id, artifact_id, resolved)
            version_id = resolved

        if version_id != branch_snapshot(project.default_branch):
            try:
                found = self.repository.find_version(group_id, artifact_id, version_id)
            except ArtifactRepositoryError as e:
                logger.error("Error validating %s-%s-%s: %s", group_id, artifact_id, version_id, e)
                return response.add_error(str(e))
            if found is None:
                error = f"Version {version_id} does not exist for {group_id}-{artifact_id} in repository"
                logger.error(error)
                return response.add_error(error)

        parent = ParentEvent.build(
            group_id, artifact_id, version_id,
            parent_event_id or ParentEvent.UPDATE_PROJECT_VERSION.value,
        )
        return response.add_message(
            self._queue_version(project, version_id, full_update, transitive, parent)
        )

    @staticmethod
    def _resolve_alias(project: ProjectRecord, alias: str) -> Optional[str]:
        if alias.lower() == "head":
            return branch_snapshot(project.default_branch)
        return project.latest_version

    def refresh_all_versions_for_project(
        self,
        group_id: str,
        artifact_id: str,
        full_update: bool = False,
        all_versions: bool = False,
        transitive: bool = False,
        parent_event_id: Optional[str] = None,
    ) -> RefreshResponse:
        """Queue the default snapshot and every release not yet stored.

        Raises:
            ProjectNotFoundError: no project is stored for the coordinates
        """
        project = self._get_project(group_id, artifact_id)
        return self._refresh_all_versions(
            project,
            full_update,
            all_versions,
            transitive,
            parent_event_id or ParentEvent.UPDATE_PROJECT_ALL_VERSIONS.value,
        )

    def _refresh_all_versions(
        self,
        project: ProjectRecord,
        full_update: bool,
        all_versions: bool,
        transitive: bool,
        parent_event_id: str,
    ) -> RefreshResponse:
        response = RefreshResponse()
        group_id, artifact_id = project.group_id, project.artifact_id

        snapshot = branch_snapshot(project.default_branch)
        snapshot_record = self.projects.find_version(group_id, artifact_id, snapshot)
        if snapshot_record is not None and not snapshot_record.evicted:
            response.add_message(
                self._queue_version(project, snapshot, full_update, transitive, parent_event_id)
            )

        if not self.repository.are_valid_coordinates(group_id, artifact_id):
            error = f"invalid coordinates [{group_id}-{artifact_id}]"
            logger.error(error)
            return response.add_error(error)

        try:
            candidates = self.repository.find_versions(group_id, artifact_id)
        except ArtifactRepositoryError as e:
            error = f"Error getting versions for {group_id}-{artifact_id}: {e}"
            logger.error(error)
            return response.add_error(error)

        if not all_versions:
            stored = {r.version_id for r in self.projects.find_versions(group_id, artifact_id)}
            candidates = [v for v in candidates if v not in stored]
        message = f"[{group_id}-{artifact_id}] found [{len(candidates)}] versions to update"
        logger.info(message)
        response.add_message(message)

        for version_id in candidates:
            response.add_message(
                self._queue_version(project, version_id, full_update, transitive, parent_event_id)
            )
        return response

    def refresh_all_versions_for_all_projects(
        self, full_update: bool = False, all_versions: bool = False, transitive: bool = False
    ) -> RefreshResponse:
        parent = ParentEvent.UPDATE_ALL_PROJECT_ALL_VERSIONS.value
        return self._for_all_projects(
            "refresh all versions",
            lambda p: self._refresh_all_versions(p, full_update, all_versions, transitive, parent),
        )

    def refresh_default_snapshots_for_all_projects(
        self, full_update: bool = False, transitive: bool = False
    ) -> RefreshResponse:
        parent = ParentEvent.UPDATE_ALL_PROJECT_ALL_SNAPSHOTS.value
        return self._for_all_projects(
            "refresh default snapshots",
            lambda p: self._refresh_default_snapshot(p, full_update, transitive, parent),
        )

    def _refresh_default_snapshot(
        self, project: ProjectRecord, full_update: bool, transitive: bool, parent_event_id: str
    ) -> RefreshResponse:
        response = RefreshResponse()
        snapshot = branch_snapshot(project.default_branch)
        record = self.projects.find_version(project.group_id, project.artifact_id, snapshot)
        if record is not None and record.evicted:
            return response.add_message(
                f"Skipping evicted snapshot [{project.group_id}-{project.artifact_id}-{snapshot}]"
            )
        return response.add_message(
            self._queue_version(project, snapshot, full_update, transitive, parent_event_id)
        )

    def _for_all_projects(
        self, label: str, refresh: Callable[[ProjectRecord], RefreshResponse]
    ) -> RefreshResponse:
        result = RefreshResponse()
        projects: List[ProjectRecord] = self.projects.all_projects()
        logger.info("[%s] projects found for %s", len(projects), label)
        if not projects:
            return result

        def run(project: ProjectRecord) -> RefreshResponse:
            try:
                return refresh(project)
            except Exception as e:
                error = f"Error refreshing [{project.group_id}-{project.artifact_id}]: {e}"
                logger.error(error)
                return RefreshResponse(errors=[error])

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(run, p) for p in projects]
            for future in tqdm(
                as_completed(futures), total=len(futures), desc=label, disable=not self.show_progress
            ):
                result.combine(future.result())
        logger.info("Finished %s: %s messages, %s errors", label, len(result.messages), len(result.errors))
        return result
