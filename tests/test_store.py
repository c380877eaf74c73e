import json
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from artifact_depot.models import (
    ArtifactFileRecord,
    ProjectRecord,
    ProjectVersion,
    ProjectVersionRecord,
    RefreshLease,
    TransitiveDependencyReport,
    VersionData,
)
from artifact_depot.store import InMemoryLeaseStore, InMemoryProjectStore, load_state, save_state

from conftest import GROUP


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def lease(artifact_id, created=NOW, ttl_seconds=30, event_id=None):
    return RefreshLease(GROUP, artifact_id, "1.0.0", created, timedelta(seconds=ttl_seconds), event_id)


def test_create_project_if_absent_keeps_first():
    store = InMemoryProjectStore()

    first, created = store.create_project_if_absent(ProjectRecord("PROD-1", GROUP, "test"))
    second, created_again = store.create_project_if_absent(ProjectRecord("PROD-2", GROUP, "test"))

    assert created and not created_again
    assert second is first
    assert store.find_project(GROUP, "test").project_id == "PROD-1"


def test_find_dependents_and_snapshots():
    store = InMemoryProjectStore()
    core = ProjectVersion(GROUP, "core", "1.0.0")
    store.save_version(ProjectVersionRecord(GROUP, "core", "1.0.0"))
    store.save_version(ProjectVersionRecord(GROUP, "app", "1.0.0", version_data=VersionData([core])))
    store.save_version(ProjectVersionRecord(GROUP, "app", "master-SNAPSHOT", version_data=VersionData([core])))

    assert sorted(r.version_id for r in store.find_dependents(GROUP, "core", "1.0.0")) == [
        "1.0.0",
        "master-SNAPSHOT",
    ]
    assert [r.version_id for r in store.find_snapshot_versions(GROUP, "app")] == ["master-SNAPSHOT"]
    assert store.delete_version(GROUP, "app", "1.0.0")
    assert not store.delete_version(GROUP, "app", "1.0.0")


def test_lease_store_conditional_operations():
    store = InMemoryLeaseStore()

    assert store.try_acquire(lease("test"), NOW)
    assert not store.try_acquire(lease("test"), NOW + timedelta(seconds=30))
    assert not store.delete_if_expired(ProjectVersion(GROUP, "test", "1.0.0"), NOW + timedelta(seconds=30))
    assert store.delete_if_expired(ProjectVersion(GROUP, "test", "1.0.0"), NOW + timedelta(seconds=31))
    assert not store.delete_if_expired(ProjectVersion(GROUP, "test", "1.0.0"), NOW + timedelta(seconds=31))
    assert store.all_leases() == []


def test_state_round_trip(tmp_path):
    projects = InMemoryProjectStore()
    leases = InMemoryLeaseStore()
    core = ProjectVersion(GROUP, "core", "1.0.0")
    projects.save_project(ProjectRecord("PROD-1", GROUP, "app", latest_version="1.0.0"))
    record = ProjectVersionRecord(
        GROUP,
        "app",
        "1.0.0",
        version_data=VersionData([core]),
        transitive_report=TransitiveDependencyReport(frozenset([core])),
    )
    record.exclude("missing dependency")
    projects.save_version(record)
    projects.save_file(ArtifactFileRecord("/tmp/app.jar", "abc"))
    leases.try_acquire(lease("app", event_id="evt"), NOW)

    state_file = save_state(tmp_path / "state" / "depot.json", projects, leases)
    data = json.loads(state_file.read_text())
    assert sorted(data) == ["artifactFiles", "leases", "projects", "versions"]

    loaded_projects, loaded_leases = load_state(state_file)
    assert loaded_projects.find_project(GROUP, "app") == projects.find_project(GROUP, "app")
    loaded = loaded_projects.find_version(GROUP, "app", "1.0.0")
    assert loaded.dependencies == [core]
    assert loaded.transitive_report == record.transitive_report
    assert loaded.excluded and loaded.exclusion_reason == "missing dependency"
    assert loaded.updated == record.updated
    assert loaded_projects.find_file("/tmp/app.jar").checksum == "abc"
    assert loaded_leases.find(GROUP, "app", "1.0.0") == lease("app", event_id="evt")


def test_load_missing_state_starts_empty(tmp_path):
    projects, leases = load_state(tmp_path / "missing.json")

    assert projects.all_projects() == []
    assert leases.all_leases() == []


def test_latest_version_updates_are_atomic():
    store = InMemoryProjectStore()
    store.save_project(ProjectRecord("PROD-1", GROUP, "test"))
    versions = [f"1.{minor}.0" for minor in range(50)]
    random.Random(7).shuffle(versions)
    barrier = threading.Barrier(len(versions))

    def update(version_id):
        barrier.wait()
        return store.update_latest_version(GROUP, "test", version_id)

    with ThreadPoolExecutor(max_workers=len(versions)) as executor:
        results = list(executor.map(update, versions))

    assert store.find_project(GROUP, "test").latest_version == "1.49.0"
    assert any(results)
    assert not store.update_latest_version(GROUP, "test", "1.3.0")
    assert not store.update_latest_version(GROUP, "missing", "9.0.0")
