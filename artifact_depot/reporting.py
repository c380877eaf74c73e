"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from .models import ProjectVersionRecord, RefreshRequest, RefreshResponse


logger = logging.getLogger(__name__)

VERSION_COLUMNS = [
    "group_id",
    "artifact_id",
    "version_id",
    "gav",
    "excluded",
    "exclusion_reason",
    "evicted",
    "valid_dependencies",
    "num_dependencies",
    "num_transitive_dependencies",
    "updated",
]


def versions_frame(records: Iterable[ProjectVersionRecord]) -> pd.DataFrame:
    rows = [
        {
            "group_id": r.group_id,
            "artifact_id": r.artifact_id,
            "version_id": r.version_id,
            "gav": r.gav,
            "excluded": r.excluded,
            "exclusion_reason": r.exclusion_reason,
            "evicted": r.evicted,
            "valid_dependencies": r.transitive_report.valid,
            "num_dependencies": len(r.dependencies),
            "num_transitive_dependencies": len(r.transitive_report.transitive_dependencies),
            "updated": r.updated,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=VERSION_COLUMNS)


def dependency_edges_frame(records: Iterable[ProjectVersionRecord]) -> pd.DataFrame:
    rows = [
        {"gav": r.gav, "dependency": d.gav, "kind": kind}
        for r in records
        for kind, deps in (
            ("direct", r.dependencies),
            ("transitive", sorted(r.transitive_report.transitive_dependencies)),
        )
        for d in deps
    ]
    return pd.DataFrame(rows, columns=["gav", "dependency", "kind"])


def export_versions_csv(records: Iterable[ProjectVersionRecord], output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    versions_file = output_dir / "versions.csv"
    df = versions_frame(records)
    if not df.empty:
        df["updated"] = pd.to_datetime(df["updated"], utc=True).dt.tz_localize(None)
    df.to_csv(versions_file, index=False)
    return versions_file


def export_dependencies_csv(records: Iterable[ProjectVersionRecord], output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    deps_file = output_dir / "dependencies.csv"
    dependency_edges_frame(records).to_csv(deps_file, index=False)
    return deps_file


def events_frame(requests: Iterable[RefreshRequest]) -> pd.DataFrame:
    rows = [
        {
            "event_id": r.event_id,
            "gav": r.gav,
            "parent_event_id": r.parent_event_id,
            "attempts": r.attempt,
            "full_update": r.full_update,
            "transitive": r.transitive,
            "status": r.status,
            "errors": "; ".join(r.responses[r.attempt].errors) if r.attempt in r.responses else "",
        }
        for r in requests
    ]
    return pd.DataFrame(
        rows,
        columns=["event_id", "gav", "parent_event_id", "attempts", "full_update", "transitive", "status", "errors"],
    )


def export_events_csv(requests: Iterable[RefreshRequest], output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    events_file = output_dir / "events.csv"
    events_frame(requests).to_csv(events_file, index=False)
    return events_file


def save_response_json(response: RefreshResponse, output_dir: Path, name: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    response_file = output_dir / f"{name}_response.json"
    with open(response_file, "w") as f:
        json.dump(response.to_dict(), f, indent=2, default=str)
    return response_file


def summarize(records: List[ProjectVersionRecord], response: RefreshResponse) -> Dict:
    df = versions_frame(records)
    return {
        "versions": len(df),
        "excluded": int(df["excluded"].sum()) if not df.empty else 0,
        "evicted": int(df["evicted"].sum()) if not df.empty else 0,
        "invalid_dependencies": int((~df["valid_dependencies"].astype(bool)).sum()) if not df.empty else 0,
        "messages": len(response.messages),
        "errors": len(response.errors),
        "status": response.status,
    }


def print_summary(operation: str, summary: Dict) -> None:
    logger.info("=" * 60)
    logger.info("DEPOT %s", operation.upper())
    logger.info("=" * 60)
    logger.info("Status: %s", summary["status"])
    logger.info("Stored versions: %s", summary["versions"])
    logger.info("Excluded: %s, evicted: %s", summary["excluded"], summary["evicted"])
    logger.info("Invalid dependency reports: %s", summary["invalid_dependencies"])
    logger.info("-" * 60)
    logger.info("Messages: %s", summary["messages"])
    logger.info("Errors: %s", summary["errors"])
    logger.info("=" * 60)
