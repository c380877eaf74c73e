import pytest

from artifact_depot.dependencies import DependencyManager
from artifact_depot.errors import VersionNotFoundError
from artifact_depot.models import ProjectVersion, ProjectVersionRecord, TransitiveDependencyReport, VersionData
from artifact_depot.store import InMemoryProjectStore

from conftest import GROUP


def pv(artifact_id, version_id="1.0.0"):
    return ProjectVersion(GROUP, artifact_id, version_id)


def store_version(store, version, dependencies=(), transitive=(), excluded=False, valid=True):
    record = ProjectVersionRecord(
        version.group_id,
        version.artifact_id,
        version.version_id,
        excluded=excluded,
        version_data=VersionData(list(dependencies)),
        transitive_report=TransitiveDependencyReport(frozenset(transitive), valid),
    )
    store.save_version(record)
    return record


@pytest.fixture
def store():
    return InMemoryProjectStore()


@pytest.fixture
def manager(store, repository):
    return DependencyManager(store, repository)


def test_direct_dependencies_come_from_repository(manager, repository):
    repository.publish(GROUP, "a", "1.0.0", dependencies=[pv("c"), pv("b")])

    assert manager.direct_dependencies(GROUP, "a", "1.0.0") == [pv("b"), pv("c")]


def test_closure_walks_repository_for_unstored_versions(manager, repository):
    repository.publish(GROUP, "b", "1.0.0", dependencies=[pv("c")])
    repository.publish(GROUP, "c", "1.0.0", dependencies=[pv("d")])
    repository.publish(GROUP, "d", "1.0.0")

    report = manager.transitive_closure([pv("b")])

    assert report.valid
    assert report.transitive_dependencies == {pv("b"), pv("c"), pv("d")}


def test_closure_uses_stored_reports_without_walking(manager, store, repository):
    store_version(store, pv("b"), dependencies=[pv("c")], transitive=[pv("c"), pv("d")])

    report = manager.transitive_closure([pv("b")])

    assert report.transitive_dependencies == {pv("b"), pv("c"), pv("d")}
    assert repository.dependency_calls == []


def test_excluded_version_at_depth_invalidates_closure(manager, store, repository):
    repository.publish(GROUP, "b", "1.0.0", dependencies=[pv("c")])
    store_version(store, pv("c"), excluded=True)

    report = manager.transitive_closure([pv("b")])

    assert not report.valid
    assert report.transitive_dependencies == frozenset()


def test_invalid_stored_report_invalidates_closure(manager, store):
    store_version(store, pv("b"), valid=False)
    store_version(store, pv("e"))

    assert not manager.transitive_closure([pv("e"), pv("b")]).valid


def test_closure_is_order_independent(manager, store, repository):
    repository.publish(GROUP, "b", "1.0.0", dependencies=[pv("d")])
    repository.publish(GROUP, "d", "1.0.0")
    store_version(store, pv("c"), dependencies=[pv("e")], transitive=[pv("e")])
    dependencies = [pv("b"), pv("c"), pv("d")]

    forward = manager.transitive_closure(dependencies)
    backward = manager.transitive_closure(list(reversed(dependencies)))

    assert forward == backward
    assert forward.transitive_dependencies == {pv("b"), pv("c"), pv("d"), pv("e")}


def test_closure_terminates_on_cycles(manager, repository):
    repository.publish(GROUP, "x", "1.0.0", dependencies=[pv("y")])
    repository.publish(GROUP, "y", "1.0.0", dependencies=[pv("x")])

    report = manager.transitive_closure([pv("x")])

    assert report.valid
    assert report.transitive_dependencies == {pv("x"), pv("y")}


def test_closure_depth_is_capped(store, repository):
    chain = [pv(f"n{i}") for i in range(6)]
    for current, following in zip(chain, chain[1:]):
        repository.publish(GROUP, current.artifact_id, "1.0.0", dependencies=[following])
    repository.publish(GROUP, chain[-1].artifact_id, "1.0.0")

    assert not DependencyManager(store, repository, max_depth=3).transitive_closure([chain[0]]).valid
    assert DependencyManager(store, repository, max_depth=10).transitive_closure([chain[0]]).valid


def test_validate_reports_each_snapshot_dependency(manager):
    dependencies = [pv("b", "1.0.0-SNAPSHOT"), pv("c"), pv("d", "master-SNAPSHOT")]

    errors = manager.validate_dependencies(dependencies, "2.0.0")

    assert errors == [
        f"Snapshot dependency {GROUP}-b-1.0.0-SNAPSHOT not allowed in versions",
        f"Snapshot dependency {GROUP}-d-master-SNAPSHOT not allowed in versions",
    ]
    assert manager.validate_dependencies(dependencies, "master-SNAPSHOT") == []


def test_update_transitive_dependencies_cascades_to_snapshot_dependents(manager, store):
    snapshot = pv("core", "master-SNAPSHOT")
    store_version(store, pv("lib"))
    store_version(store, snapshot, dependencies=[pv("lib")])
    store_version(store, pv("app", "master-SNAPSHOT"), dependencies=[snapshot], transitive=[snapshot])

    updated = manager.update_transitive_dependencies(GROUP, "core", "master-SNAPSHOT")

    assert updated.transitive_report.transitive_dependencies == {pv("lib")}
    assert store.find_version(GROUP, "core", "master-SNAPSHOT").transitive_report.transitive_dependencies == {pv("lib")}
    app = store.find_version(GROUP, "app", "master-SNAPSHOT")
    assert app.transitive_report.transitive_dependencies == {snapshot, pv("lib")}


def test_dependent_reached_through_two_snapshots_sees_both_updates(manager, store):
    first = pv("first", "master-SNAPSHOT")
    second = pv("second", "master-SNAPSHOT")
    stale = pv("stale")
    store_version(store, stale)
    store_version(store, first, transitive=[stale])
    store_version(store, pv("app", "master-SNAPSHOT"), dependencies=[first, second], transitive=[first, second, stale])
    store_version(store, second, dependencies=[first], transitive=[first, stale])

    manager.update_transitive_dependencies(GROUP, "first", "master-SNAPSHOT")

    assert store.find_version(GROUP, "second", "master-SNAPSHOT").transitive_report.transitive_dependencies == {first}
    app = store.find_version(GROUP, "app", "master-SNAPSHOT")
    assert app.transitive_report.transitive_dependencies == {first, second}


def test_update_transitive_dependencies_terminates_on_snapshot_cycles(manager, store):
    first = pv("first", "master-SNAPSHOT")
    second = pv("second", "master-SNAPSHOT")
    store_version(store, first, dependencies=[second])
    store_version(store, second, dependencies=[first])

    manager.update_transitive_dependencies(GROUP, "first", "master-SNAPSHOT")

    assert store.find_version(GROUP, "second", "master-SNAPSHOT").transitive_report.valid


def test_update_transitive_dependencies_does_not_rewalk_release_dependents(manager, store):
    store_version(store, pv("lib"))
    store_version(store, pv("core"), dependencies=[pv("lib")])
    store_version(store, pv("app"), dependencies=[pv("core")], transitive=[pv("core")])

    manager.update_transitive_dependencies(GROUP, "core", "1.0.0")

    assert store.find_version(GROUP, "app", "1.0.0").transitive_report.transitive_dependencies == {pv("core")}


def test_update_transitive_dependencies_requires_usable_version(manager, store):
    store_version(store, pv("gone"), excluded=True)

    with pytest.raises(VersionNotFoundError, match="project version not found for"):
        manager.update_transitive_dependencies(GROUP, "missing", "1.0.0")
    with pytest.raises(LookupError):
        manager.update_transitive_dependencies(GROUP, "gone", "1.0.0")
