"""
Wiring of stores, repository, handlers and services into one depot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import DepotConfiguration
from .dependencies import DependencyManager
from .handlers import ArtifactHandlerRegistry, default_registry
from .interfaces import ArtifactRepository
from .leases import RefreshLeaseManager
from .orchestrator import ArtifactsRefreshService
from .purge import ArtifactsPurgeService
from .refresh_handler import ProjectVersionRefreshHandler
from .repository import MavenArtifactRepository
from .store import InMemoryLeaseStore, InMemoryProjectStore, load_state, save_state
from .work_queue import InMemoryWorkQueue, NotificationsQueueManager


logger = logging.getLogger(__name__)


@dataclass
class Depot:
    """All depot services sharing one set of stores."""

    config: DepotConfiguration
    projects: InMemoryProjectStore
    lease_store: InMemoryLeaseStore
    repository: ArtifactRepository
    registry: ArtifactHandlerRegistry
    queue: InMemoryWorkQueue
    leases: RefreshLeaseManager
    dependencies: DependencyManager
    handler: ProjectVersionRefreshHandler
    notifications: NotificationsQueueManager
    refresh: ArtifactsRefreshService
    purge: ArtifactsPurgeService

    @classmethod
    def create(
        cls,
        config: DepotConfiguration,
        repository: Optional[ArtifactRepository] = None,
        registry: Optional[ArtifactHandlerRegistry] = None,
        projects: Optional[InMemoryProjectStore] = None,
        lease_store: Optional[InMemoryLeaseStore] = None,
        show_progress: bool = False,
    ) -> "Depot":
        projects = projects or InMemoryProjectStore()
        lease_store = lease_store or InMemoryLeaseStore()
        if repository is None:
            repository = MavenArtifactRepository(
                config.repository_url, config.cache_dir, timeout=config.request_timeout
            )
        if registry is None:
            registry = default_registry()
        queue = InMemoryWorkQueue()
        leases = RefreshLeaseManager(lease_store, config.lease_ttl)
        dependencies = DependencyManager(projects, repository, config.max_dependency_depth)
        handler = ProjectVersionRefreshHandler(
            projects,
            repository,
            queue,
            projects,
            registry,
            dependencies,
            leases,
            maximum_snapshots_allowed=config.maximum_snapshots_allowed,
            project_properties=config.project_properties,
            default_branch=config.default_branch,
        )
        return cls(
            config=config,
            projects=projects,
            lease_store=lease_store,
            repository=repository,
            registry=registry,
            queue=queue,
            leases=leases,
            dependencies=dependencies,
            handler=handler,
            notifications=NotificationsQueueManager(handler, queue, config.workers, config.max_attempts),
            refresh=ArtifactsRefreshService(
                projects, repository, queue, config.workers, show_progress=show_progress
            ),
            purge=ArtifactsPurgeService(projects, registry),
        )

    @classmethod
    def from_state(
        cls,
        config: DepotConfiguration,
        state_file: Path,
        repository: Optional[ArtifactRepository] = None,
        show_progress: bool = False,
    ) -> "Depot":
        projects, lease_store = load_state(state_file)
        return cls.create(
            config,
            repository=repository,
            projects=projects,
            lease_store=lease_store,
            show_progress=show_progress,
        )

    def save(self, state_file: Path) -> Path:
        return save_state(state_file, self.projects, self.lease_store)
