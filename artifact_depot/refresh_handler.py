"""
Per-event refresh of one project version.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .dependencies import DependencyManager
from .errors import ArtifactRepositoryError
from .handlers import ArtifactHandlerRegistry
from .interfaces import ArtifactFileStore, ArtifactRepository, ProjectStore, WorkQueue
from .leases import RefreshLeaseManager
from .models import (
    ArtifactFileRecord,
    ArtifactType,
    ParentEvent,
    ProjectRecord,
    ProjectVersion,
    ProjectVersionRecord,
    Property,
    RefreshRequest,
    RefreshResponse,
    VersionData,
)
from .validators import (
    MASTER_BRANCH,
    is_snapshot_version,
    is_valid,
    is_valid_artifact_id,
    is_valid_group_id,
)


logger = logging.getLogger(__name__)


def file_checksum(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ProjectVersionRefreshHandler:
    """Validate, resolve, process and store one refresh request.

    ``handle_event`` never raises: every failure ends up in the returned
    response so queue workers keep running.
    """

    def __init__(
        self,
        projects: ProjectStore,
        repository: ArtifactRepository,
        work_queue: WorkQueue,
        artifact_files: ArtifactFileStore,
        registry: ArtifactHandlerRegistry,
        dependency_manager: DependencyManager,
        leases: RefreshLeaseManager,
        maximum_snapshots_allowed: int = 100,
        project_properties: Sequence[str] = (),
        artifact_types: Optional[Sequence[ArtifactType]] = None,
        default_branch: str = MASTER_BRANCH,
    ) -> None:
        self.projects = projects
        self.repository = repository
        self.work_queue = work_queue
        self.artifact_files = artifact_files
        self.registry = registry
        self.dependency_manager = dependency_manager
        self.leases = leases
        self.maximum_snapshots_allowed = maximum_snapshots_allowed
        self.project_properties = [re.compile(p) for p in project_properties]
        self.artifact_types = list(artifact_types) if artifact_types is not None else list(ArtifactType)
        self.default_branch = default_branch

    def validate_event(self, request: RefreshRequest) -> List[str]:
        errors = []
        if not is_valid_group_id(request.group_id):
            errors.append(f"invalid groupId [{request.group_id}]")
        if not is_valid_artifact_id(request.artifact_id):
            errors.append(f"invalid artifactId [{request.artifact_id}]")
        if not is_valid(request.version_id):
            errors.append(f"invalid versionId [{request.version_id}]")
            return errors

        project = self.projects.find_project(request.group_id, request.artifact_id)
        if (
            project is not None
            and request.project_id is not None
            and project.project_id != request.project_id
        ):
            errors.append(
                f"Invalid projectId [{request.project_id}]. Existing project [{project.project_id}] "
                f"has same [{request.group_id}-{request.artifact_id}] coordinates"
            )

        if is_snapshot_version(request.version_id):
            snapshots = [
                r.version_id
                for r in self.projects.find_snapshot_versions(request.group_id, request.artifact_id)
                if not r.evicted
            ]
            if request.version_id not in snapshots and len(snapshots) >= self.maximum_snapshots_allowed:
                errors.append(
                    f"Number of snapshot versions stored for project {request.group_id}-"
                    f"{request.artifact_id}, has reached the limit [{self.maximum_snapshots_allowed}]"
                )
        return errors

    def handle_event(self, request: RefreshRequest) -> RefreshResponse:
        response = RefreshResponse()
        started = time.monotonic()
        try:
            project, created = self._find_or_create_project(request)
            if created:
                message = (
                    f"New project {project.project_id} created with coordinates "
                    f"{project.group_id}-{project.artifact_id}"
                )
                logger.info(message)
                response.add_message(message)

            with self.leases.lease(
                request.group_id, request.artifact_id, request.version_id, request.event_id
            ) as acquired:
                if not acquired:
                    message = f"Other instance is running, skipping [{request.gav}] refresh"
                    logger.info(message)
                    return response.add_message(message)
                response.combine(self.do_refresh(request, project))
        except Exception as e:
            error = f"Exception executing: {request.describe()}, exception[{e}]"
            logger.error(error)
            response.add_error(error)
        finally:
            logger.info(
                "Refresh duration for [%s]: %.3fs, errors: %s",
                request.gav, time.monotonic() - started, len(response.errors),
            )
        return response

    def _find_or_create_project(self, request: RefreshRequest) -> Tuple[ProjectRecord, bool]:
        project = self.projects.find_project(request.group_id, request.artifact_id)
        if project is not None:
            return project, False
        project_id = request.project_id or f"{request.group_id}:{request.artifact_id}"
        return self.projects.create_project_if_absent(
            ProjectRecord(
                project_id, request.group_id, request.artifact_id, default_branch=self.default_branch
            )
        )

    def do_refresh(self, request: RefreshRequest, project: ProjectRecord) -> RefreshResponse:
        response = RefreshResponse()
        message = f"Executing: {request.describe()}"
        logger.info(message)
        response.add_message(message)

        group_id, artifact_id, version_id = request.group_id, request.artifact_id, request.version_id
        try:
            found = self.repository.find_version(group_id, artifact_id, version_id)
        except ArtifactRepositoryError as e:
            logger.error("Error validating %s: %s", request.gav, e)
            return response.add_error(str(e))
        if found is None:
            error = f"Version {version_id} does not exist for {group_id}-{artifact_id} in repository"
            logger.error(error)
            return response.add_error(error)

        dependencies = self.dependency_manager.direct_dependencies(group_id, artifact_id, version_id)
        for error in self.dependency_manager.validate_dependencies(dependencies, version_id):
            response.add_error(error)
        if response.has_errors():
            return response

        logger.info("Processing artifacts for [%s]", request.gav)
        response.combine(self._process_artifacts(project, version_id, request.full_update))
        logger.info("Finished processing artifacts for [%s]", request.gav)
        if response.has_errors():
            return response

        self._update_version_record(project, version_id, dependencies)
        if not request.transitive:
            for dependency in dependencies:
                if self.projects.find_version(
                    dependency.group_id, dependency.artifact_id, dependency.version_id
                ) is None:
                    error = f"Dependency {dependency.gav} not found in store"
                    logger.error(error)
                    response.add_error(error)
        else:
            logger.info("Started updating %s dependencies for [%s]", len(dependencies), request.gav)
            response.combine(self._handle_dependencies(request, dependencies))
            logger.info("Finished updating %s dependencies for [%s]", len(dependencies), request.gav)
        return response

    def _process_artifacts(
        self, project: ProjectRecord, version_id: str, full_update: bool
    ) -> RefreshResponse:
        response = RefreshResponse()
        for artifact_type in self.artifact_types:
            type_response = self._handle_artifacts(artifact_type, project, version_id, full_update)
            response.combine(type_response)
            if type_response.has_errors():
                logger.error(
                    "Stopping artifact processing for %s-%s-%s at %s",
                    project.group_id, project.artifact_id, version_id, artifact_type.value,
                )
                break
        return response

    def _handle_artifacts(
        self, artifact_type: ArtifactType, project: ProjectRecord, version_id: str, full_update: bool
    ) -> RefreshResponse:
        response = RefreshResponse()
        gav = f"{project.group_id}-{project.artifact_id}-{version_id}"
        handler = self.registry.get(artifact_type)
        if handler is None:
            error = f"handler not found for artifact type {artifact_type.value}, please check your configuration"
            logger.error(error)
            return response.add_error(error)

        try:
            files = [
                f for f in self.repository.find_files(
                    artifact_type, project.group_id, project.artifact_id, version_id
                )
                if handler.matches(f)
            ]
            if not full_update:
                files = [f for f in files if self._file_changed_or_not_processed(f)]
            if not files:
                return response.add_message(
                    f"No {artifact_type.value} artifacts to process [{gav}], processUnchangedFiles: {full_update}"
                )
            response.add_message(
                f"[{len(files)}] files found [{artifact_type.value}] artifacts to process [{gav}], "
                f"processUnchangedFiles: {full_update}"
            )
            response.combine(
                handler.refresh(project.group_id, project.artifact_id, version_id, files)
            )
        except Exception as e:
            error = f"Error processing {artifact_type.value} artifacts for [{gav}]: {e}"
            logger.error(error)
            response.add_error(error)
        return response

    def _file_changed_or_not_processed(self, file: Path) -> bool:
        path = str(file)
        try:
            checksum = file_checksum(file)
        except OSError as e:
            logger.error("Could not read %s: %s", path, e)
            return True
        stored = self.artifact_files.find_file(path)
        if stored is not None and hmac.compare_digest(stored.checksum, checksum):
            return False
        logger.info("Loading artifacts from updated file: %s", path)
        logger.debug("File checksum: %s", checksum)
        self.artifact_files.save_file(ArtifactFileRecord(path, checksum))
        return True

    def _update_version_record(
        self, project: ProjectRecord, version_id: str, dependencies: List[ProjectVersion]
    ) -> ProjectVersionRecord:
        stored = self.projects.find_version(project.group_id, project.artifact_id, version_id)
        report = self.dependency_manager.transitive_closure(dependencies)
        if self.project_properties:
            properties = self._project_properties(project.group_id, project.artifact_id, version_id)
        elif stored is not None:
            properties = list(stored.version_data.properties)
        else:
            properties = []
        version_data = VersionData(list(dependencies), properties)

        if stored is None:
            record = ProjectVersionRecord(
                project.group_id,
                project.artifact_id,
                version_id,
                version_data=version_data,
                transitive_report=report,
            )
        else:
            record = replace(
                stored,
                evicted=False,
                excluded=False,
                exclusion_reason=None,
                version_data=version_data,
                transitive_report=report,
            )
        self.projects.save_version(record)

        if self.projects.update_latest_version(project.group_id, project.artifact_id, version_id):
            logger.info("Latest version of %s-%s is now %s", project.group_id, project.artifact_id, version_id)
        logger.info("Finished updating project data [%s]", record.gav)
        return record

    def _project_properties(self, group_id: str, artifact_id: str, version_id: str) -> List[Property]:
        metadata = self.repository.get_project_metadata(group_id, artifact_id, version_id) or {}
        return [
            Property(name, value)
            for name, value in sorted(metadata.items())
            if any(p.fullmatch(name) for p in self.project_properties)
        ]

    def _handle_dependencies(
        self, request: RefreshRequest, dependencies: List[ProjectVersion]
    ) -> RefreshResponse:
        response = RefreshResponse()
        parent_event_id = ParentEvent.build(
            request.group_id, request.artifact_id, request.version_id, request.parent_event_id
        )
        for dependency in dependencies:
            coordinates = f"[{request.gav}]"
            dependency_coordinates = f"[{dependency.gav}]"
            stored = self.projects.find_version(
                dependency.group_id, dependency.artifact_id, dependency.version_id
            )
            if not is_snapshot_version(dependency.version_id) and stored is not None and not stored.excluded:
                response.add_message(
                    f"Skipping update dependency {coordinates} -> {dependency_coordinates}, already in store"
                )
                continue

            dependency_project = self.projects.find_project(dependency.group_id, dependency.artifact_id)
            response.add_message(f"Processing dependency {coordinates} -> {dependency_coordinates}")
            event_id = self.work_queue.push(
                RefreshRequest(
                    dependency.group_id,
                    dependency.artifact_id,
                    dependency.version_id,
                    project_id=dependency_project.project_id if dependency_project else None,
                    full_update=request.full_update,
                    transitive=True,
                    parent_event_id=parent_event_id,
                )
            )
            response.add_message(
                f"queued: [{dependency.gav}], parentEventId :[{parent_event_id}], "
                f"full/transitive :[{request.full_update}/True], event id :[{event_id}]"
            )
        return response
