"""
Depot settings with environment overrides.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .validators import MASTER_BRANCH, SNAPSHOT_SUFFIX


logger = logging.getLogger(__name__)

ENV_PREFIX = "DEPOT_"


@dataclass(frozen=True)
class DepotConfiguration:
    """Runtime settings shared by the refresh pipeline."""

    repository_url: str = "https://repo.maven.apache.org/maven2"
    cache_dir: Path = Path("./.depot-cache")
    lease_ttl_seconds: int = 300
    workers: int = 4
    maximum_snapshots_allowed: int = 100
    default_branch: str = MASTER_BRANCH
    project_properties: List[str] = field(default_factory=list)
    max_dependency_depth: int = 64
    max_attempts: int = 2
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.lease_ttl_seconds <= 0:
            raise ConfigurationError("lease_ttl_seconds must be positive")
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")
        if self.maximum_snapshots_allowed < 0:
            raise ConfigurationError("maximum_snapshots_allowed must not be negative")
        if self.max_dependency_depth < 1:
            raise ConfigurationError("max_dependency_depth must be at least 1")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if not self.default_branch or self.default_branch.endswith(SNAPSHOT_SUFFIX):
            raise ConfigurationError(f"invalid default branch [{self.default_branch}]")
        for pattern in self.project_properties:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"invalid project property pattern [{pattern}]: {e}") from e

    @property
    def lease_ttl(self) -> timedelta:
        return timedelta(seconds=self.lease_ttl_seconds)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DepotConfiguration":
        """Build settings from ``DEPOT_*`` variables, falling back to defaults.

        ``DEPOT_PROJECT_PROPERTIES`` is a comma separated list of regexes.
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, object] = {}
        text_settings = {
            "REPOSITORY_URL": "repository_url",
            "DEFAULT_BRANCH": "default_branch",
        }
        int_settings = {
            "LEASE_TTL_SECONDS": "lease_ttl_seconds",
            "WORKERS": "workers",
            "MAXIMUM_SNAPSHOTS_ALLOWED": "maximum_snapshots_allowed",
            "MAX_DEPENDENCY_DEPTH": "max_dependency_depth",
            "MAX_ATTEMPTS": "max_attempts",
        }
        for suffix, name in text_settings.items():
            value = env.get(ENV_PREFIX + suffix)
            if value:
                overrides[name] = value
        for suffix, name in int_settings.items():
            value = env.get(ENV_PREFIX + suffix)
            if value:
                try:
                    overrides[name] = int(value)
                except ValueError as e:
                    raise ConfigurationError(f"{ENV_PREFIX}{suffix} must be an integer, got [{value}]") from e
        timeout = env.get(ENV_PREFIX + "REQUEST_TIMEOUT")
        if timeout:
            try:
                overrides["request_timeout"] = float(timeout)
            except ValueError as e:
                raise ConfigurationError(f"{ENV_PREFIX}REQUEST_TIMEOUT must be a number, got [{timeout}]") from e
        cache_dir = env.get(ENV_PREFIX + "CACHE_DIR")
        if cache_dir:
            overrides["cache_dir"] = Path(cache_dir)
        properties = env.get(ENV_PREFIX + "PROJECT_PROPERTIES")
        if properties:
            overrides["project_properties"] = [p.strip() for p in properties.split(",") if p.strip()]
        if overrides:
            logger.debug("Configuration overrides from environment: %s", sorted(overrides))
        return cls(**overrides)

    def with_overrides(self, **overrides: object) -> "DepotConfiguration":
        """Copy with the non-``None`` values of ``overrides`` applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values) if values else self
