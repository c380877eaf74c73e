"""
Maven repository client over HTTP.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import requests
from tqdm import tqdm

from .errors import ArtifactRepositoryError
from .interfaces import ArtifactRepository
from .models import SEPARATOR, ArtifactType, ProjectVersion
from .validators import is_snapshot_version, sort_release_versions


logger = logging.getLogger(__name__)

GAV_SEP = ":"
_POM_NS = "{http://maven.apache.org/POM/4.0.0}"


@dataclass
class RepositoryCache:
    """Shared in-memory caches for repository lookups."""

    pom_cache: Dict[Tuple[str, str, str], Optional[ET.Element]] = field(default_factory=dict)
    versions_cache: Dict[Tuple[str, str], List[str]] = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)


def _strip_namespace(root: ET.Element) -> ET.Element:
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith(_POM_NS):
            element.tag = element.tag[len(_POM_NS):]
    return root


def _text(element: Optional[ET.Element], path: str) -> Optional[str]:
    if element is None:
        return None
    found = element.find(path)
    if found is None or found.text is None:
        return None
    return found.text.strip()


class MavenArtifactRepository(ArtifactRepository):
    """Resolve versions, POMs and artifact jars from a Maven layout repository."""

    def __init__(
        self,
        base_url: str,
        cache_dir: Path,
        cache: Optional[RepositoryCache] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache_dir = Path(cache_dir)
        self.cache = cache or RepositoryCache()
        self.timeout = timeout

    def _artifact_url(self, group_id: str, artifact_id: str) -> str:
        return f"{self.base_url}/{group_id.replace('.', '/')}/{artifact_id}"

    def _file_url(self, group_id: str, artifact_id: str, version_id: str, extension: str) -> str:
        return (
            f"{self._artifact_url(group_id, artifact_id)}/{version_id}/"
            f"{artifact_id}-{version_id}.{extension}"
        )

    def _get(self, url: str, stream: bool = False) -> Optional[requests.Response]:
        try:
            response = self.cache.session.get(url, timeout=self.timeout, stream=stream)
        except requests.RequestException as e:
            logger.error("Repository request failed for %s: %s", url, e)
            raise ArtifactRepositoryError(f"could not reach repository: {e}") from e
        if response.status_code == 404:
            logger.debug("Not found in repository: %s", url)
            response.close()
            return None
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            response.close()
            raise ArtifactRepositoryError(str(e)) from e
        return response

    def are_valid_coordinates(self, group_id: str, artifact_id: str) -> bool:
        return (
            group_id is not None
            and artifact_id is not None
            and GAV_SEP not in group_id
            and GAV_SEP not in artifact_id
        )

    def find_versions(self, group_id: str, artifact_id: str) -> List[str]:
        """Release versions published for the coordinates, in ascending order."""
        cache_key = (group_id, artifact_id)
        if cache_key in self.cache.versions_cache:
            logger.debug("Cache hit: versions %s-%s", group_id, artifact_id)
            return list(self.cache.versions_cache[cache_key])

        url = f"{self._artifact_url(group_id, artifact_id)}/maven-metadata.xml"
        logger.info("Fetching versions for %s-%s", group_id, artifact_id)
        response = self._get(url)
        if response is None:
            return []
        with response:
            try:
                root = ET.fromstring(response.content)
            except ET.ParseError as e:
                raise ArtifactRepositoryError(f"malformed metadata for {group_id}-{artifact_id}: {e}") from e
        found = [v.text.strip() for v in root.iter("version") if v.text]
        versions = sort_release_versions(found)
        self.cache.versions_cache[cache_key] = versions
        return list(versions)

    def find_version(self, group_id: str, artifact_id: str, version_id: str) -> Optional[str]:
        if is_snapshot_version(version_id):
            return version_id if self.get_pom(group_id, artifact_id, version_id) is not None else None
        return version_id if version_id in self.find_versions(group_id, artifact_id) else None

    def get_pom(self, group_id: str, artifact_id: str, version_id: str) -> Optional[ET.Element]:
        cache_key = (group_id, artifact_id, version_id)
        snapshot = is_snapshot_version(version_id)
        if not snapshot and cache_key in self.cache.pom_cache:
            return self.cache.pom_cache[cache_key]

        response = self._get(self._file_url(group_id, artifact_id, version_id, "pom"))
        pom = None
        if response is not None:
            with response:
                try:
                    pom = _strip_namespace(ET.fromstring(response.content))
                except ET.ParseError as e:
                    raise ArtifactRepositoryError(
                        f"malformed pom for {group_id}-{artifact_id}-{version_id}: {e}"
                    ) from e
        if not snapshot:
            self.cache.pom_cache[cache_key] = pom
        return pom

    def get_modules(
        self, artifact_type: ArtifactType, group_id: str, artifact_id: str, version_id: str
    ) -> List[str]:
        """Modules of the project carrying ``artifact_type`` content."""
        pom = self.get_pom(group_id, artifact_id, version_id)
        if pom is None:
            return []
        modules = [m.text.strip() for m in pom.findall("modules/module") if m.text]
        if not modules:
            return [artifact_id]
        module_name = f"{artifact_id}{SEPARATOR}{artifact_type.module_name}"
        return [m for m in modules if m == module_name]

    def find_dependencies(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Set[ProjectVersion]:
        """Projects the version depends on, resolved through their entities modules."""
        dependencies: Set[ProjectVersion] = set()
        suffix = ArtifactType.ENTITIES.module_name
        for module in self.get_modules(ArtifactType.ENTITIES, group_id, artifact_id, version_id):
            module_pom = self.get_pom(group_id, module, version_id)
            if module_pom is None:
                continue
            declared = [
                d for d in module_pom.findall("dependencies/dependency")
                if _text(d, "version") is not None
            ]
            if not declared:
                declared = module_pom.findall("build/plugins/plugin/dependencies/dependency")
            for dependency in declared:
                dep_artifact = _text(dependency, "artifactId") or ""
                if not dep_artifact.endswith(suffix):
                    continue
                dep_group = _text(dependency, "groupId")
                dep_version = _text(dependency, "version")
                if dep_group is None or dep_version is None:
                    continue
                parent = self.get_pom(dep_group, dep_artifact, dep_version)
                parent = parent.find("parent") if parent is not None else None
                if parent is None:
                    continue
                parent_group = _text(parent, "groupId")
                parent_artifact = _text(parent, "artifactId")
                parent_version = _text(parent, "version")
                if parent_group and parent_artifact and parent_version:
                    dependencies.add(ProjectVersion(parent_group, parent_artifact, parent_version))
        logger.info(
            "Found %s dependencies for %s-%s-%s", len(dependencies), group_id, artifact_id, version_id
        )
        return dependencies

    def find_files(
        self, artifact_type: ArtifactType, group_id: str, artifact_id: str, version_id: str
    ) -> List[Path]:
        logger.info(
            "Resolving files for %s artifacts %s-%s-%s",
            artifact_type.value, group_id, artifact_id, version_id,
        )
        files = []
        for module in self.get_modules(artifact_type, group_id, artifact_id, version_id):
            path = self._download_jar(group_id, module, version_id)
            if path is None:
                logger.error(
                    "Could not resolve file for %s artifacts %s-%s-%s",
                    artifact_type.value, group_id, module, version_id,
                )
                continue
            files.append(path)
        logger.info(
            "Found %s files for %s artifacts %s-%s-%s",
            len(files), artifact_type.value, group_id, artifact_id, version_id,
        )
        return files

    def _download_jar(self, group_id: str, artifact_id: str, version_id: str) -> Optional[Path]:
        target = (
            self.cache_dir / group_id.replace(".", "/") / artifact_id / version_id
            / f"{artifact_id}-{version_id}.jar"
        )
        if target.exists() and not is_snapshot_version(version_id):
            return target

        response = self._get(self._file_url(group_id, artifact_id, version_id, "jar"), stream=True)
        if response is None:
            return None
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        total_size = int(response.headers.get("content-length", 0))
        try:
            with response, open(partial, "wb") as f:
                with tqdm(total=total_size, unit="B", unit_scale=True, desc=target.name, leave=False) as pbar:
                    for chunk in response.iter_content(chunk_size=8192):
                        f.write(chunk)
                        pbar.update(len(chunk))
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            logger.error("Download of %s failed: %s", target.name, e)
            raise ArtifactRepositoryError(f"could not download {target.name}: {e}") from e
        partial.replace(target)
        logger.debug("Downloaded %s", target)
        return target

    def get_project_metadata(
        self, group_id: str, artifact_id: str, version_id: str
    ) -> Optional[Dict[str, str]]:
        """POM ``<properties>`` of the version, or ``None`` when it has no POM."""
        pom = self.get_pom(group_id, artifact_id, version_id)
        if pom is None:
            return None
        properties = pom.find("properties")
        if properties is None:
            return {}
        return {
            child.tag: (child.text or "").strip()
            for child in properties
            if isinstance(child.tag, str)
        }
