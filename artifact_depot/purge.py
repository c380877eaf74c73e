"""
Eviction of stored project versions.
"""

from __future__ import annotations

import logging

from .errors import ProjectNotFoundError, VersionNotFoundError
from .handlers import ArtifactHandlerRegistry
from .interfaces import ProjectStore
from .models import RefreshResponse
from .validators import is_valid_release_version, sort_release_versions


logger = logging.getLogger(__name__)


class ArtifactsPurgeService:
    """Remove version content while keeping the version record."""

    def __init__(self, projects: ProjectStore, registry: ArtifactHandlerRegistry) -> None:
        self.projects = projects
        self.registry = registry

    def evict(self, group_id: str, artifact_id: str, version_id: str) -> None:
        """Delete the version's artifact content and mark the record evicted.

        Raises:
            VersionNotFoundError: the version is not stored
        """
        record = self.projects.find_version(group_id, artifact_id, version_id)
        if record is None:
            raise VersionNotFoundError(group_id, artifact_id, version_id)
        for artifact_type in self.registry.supported_types():
            self.registry.get(artifact_type).delete(group_id, artifact_id, version_id)
        logger.info("%s-%s-%s artifacts deleted", group_id, artifact_id, version_id)
        record.evicted = True
        self.projects.save_version(record)
        logger.info("%s-%s-%s evicted", group_id, artifact_id, version_id)

    def evict_oldest_project_versions(
        self, group_id: str, artifact_id: str, versions_to_keep: int
    ) -> RefreshResponse:
        """Evict the oldest stored releases beyond ``versions_to_keep``."""
        if self.projects.find_project(group_id, artifact_id) is None:
            raise ProjectNotFoundError(group_id, artifact_id)
        if versions_to_keep < 0:
            raise ValueError("versions_to_keep must not be negative")

        response = RefreshResponse()
        version_ids = sort_release_versions(
            r.version_id
            for r in self.projects.find_versions(group_id, artifact_id)
            if not r.evicted and is_valid_release_version(r.version_id)
        )
        to_evict = version_ids[: max(len(version_ids) - versions_to_keep, 0)]
        evicted = 0
        try:
            for version_id in to_evict:
                self.evict(group_id, artifact_id, version_id)
                evicted += 1
                response.add_message(f"{group_id}-{artifact_id}-{version_id} evicted")
        except Exception as e:
            error = f"Error evicting old versions {group_id}-{artifact_id} {e}"
            logger.error(error)
            response.add_error(error)
        response.add_message(f"{group_id}-{artifact_id} evicted {evicted} versions")
        return response
