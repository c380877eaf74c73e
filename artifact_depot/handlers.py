"""
Artifact-type handlers and the registry that maps types to them.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .interfaces import ArtifactHandler
from .models import ArtifactType, ProjectVersion, RefreshResponse


logger = logging.getLogger(__name__)


class ArtifactHandlerRegistry:
    """Lookup table from artifact type to its handler."""

    def __init__(self, handlers: Optional[Iterable[ArtifactHandler]] = None) -> None:
        self._handlers: Dict[ArtifactType, ArtifactHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: ArtifactHandler) -> None:
        if handler.artifact_type in self._handlers:
            logger.warning("Replacing handler for artifact type %s", handler.artifact_type.value)
        self._handlers[handler.artifact_type] = handler

    def get(self, artifact_type: ArtifactType) -> Optional[ArtifactHandler]:
        return self._handlers.get(artifact_type)

    def supported_types(self) -> List[ArtifactType]:
        return [t for t in ArtifactType if t in self._handlers]

    def __contains__(self, artifact_type: ArtifactType) -> bool:
        return artifact_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


class ArchiveEntriesHandler(ArtifactHandler):
    """Record the archive entries of an artifact type's files per version.

    Files are jar/zip archives; entries under ``entry_prefix`` are kept.
    """

    def __init__(
        self,
        artifact_type: ArtifactType,
        file_patterns: Sequence[str] = ("*.jar", "*.zip"),
        entry_prefix: str = "",
    ) -> None:
        self.artifact_type = artifact_type
        self.file_patterns = tuple(file_patterns)
        self.entry_prefix = entry_prefix
        self._lock = threading.Lock()
        self._entries: Dict[ProjectVersion, List[str]] = {}

    def matches(self, file: Path) -> bool:
        return any(fnmatch.fnmatch(Path(file).name, pattern) for pattern in self.file_patterns)

    def refresh(
        self, group_id: str, artifact_id: str, version_id: str, files: List[Path]
    ) -> RefreshResponse:
        response = RefreshResponse()
        key = ProjectVersion(group_id, artifact_id, version_id)
        entries: List[str] = []
        for file in files:
            if not self.matches(file):
                continue
            try:
                with zipfile.ZipFile(file) as archive:
                    entries.extend(
                        name for name in archive.namelist()
                        if not name.endswith("/") and name.startswith(self.entry_prefix)
                    )
            except (OSError, zipfile.BadZipFile) as e:
                error = f"could not read {self.artifact_type.value} file {file}: {e}"
                logger.error(error)
                response.add_error(error)
        if response.has_errors():
            return response
        with self._lock:
            self._entries[key] = sorted(set(entries))
        message = f"{self.artifact_type.value}: stored {len(set(entries))} entries for {key.gav}"
        logger.info(message)
        return response.add_message(message)

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> None:
        with self._lock:
            self._entries.pop(ProjectVersion(group_id, artifact_id, version_id), None)
        logger.info("%s artifacts deleted for %s-%s-%s", self.artifact_type.value, group_id, artifact_id, version_id)

    def entries(self, group_id: str, artifact_id: str, version_id: str) -> List[str]:
        with self._lock:
            return list(self._entries.get(ProjectVersion(group_id, artifact_id, version_id), []))


def default_registry() -> ArtifactHandlerRegistry:
    """Registry with an archive handler for every artifact type."""
    return ArtifactHandlerRegistry(
        [
            ArchiveEntriesHandler(ArtifactType.ENTITIES, entry_prefix="entities/"),
            ArchiveEntriesHandler(ArtifactType.VERSIONED_ENTITIES, entry_prefix="entities/"),
            ArchiveEntriesHandler(ArtifactType.FILE_GENERATIONS),
        ]
    )
