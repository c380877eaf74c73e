"""
Exception types raised by the depot.
"""

from __future__ import annotations


class DepotError(Exception):
    """Base class for depot errors."""


class ArtifactRepositoryError(DepotError):
    """The upstream artifact repository could not be read."""


class ProjectNotFoundError(DepotError, LookupError):
    """No project is stored for the requested coordinates."""

    def __init__(self, group_id: str, artifact_id: str) -> None:
        super().__init__(f"can't find project for {group_id}-{artifact_id}")
        self.group_id = group_id
        self.artifact_id = artifact_id


class VersionNotFoundError(DepotError, LookupError):
    """No usable version record is stored for the requested coordinates."""

    def __init__(self, group_id: str, artifact_id: str, version_id: str) -> None:
        super().__init__(f"project version not found for {group_id}-{artifact_id}-{version_id}")
        self.group_id = group_id
        self.artifact_id = artifact_id
        self.version_id = version_id


class ConfigurationError(DepotError, ValueError):
    """Depot settings are missing or inconsistent."""
