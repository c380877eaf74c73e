import pytest

from artifact_depot.models import ProjectVersion, RefreshRequest
from artifact_depot.work_queue import InMemoryWorkQueue

from conftest import GROUP


def test_queue_is_fifo():
    queue = InMemoryWorkQueue()
    first = RefreshRequest(GROUP, "a", "1.0.0")
    second = RefreshRequest(GROUP, "b", "1.0.0")

    queue.push(first)
    queue.push(second)

    assert queue.size() == 2
    assert queue.pop() is first
    assert queue.pop() is second
    assert queue.pop() is None


def test_queue_pushes_once_per_lineage():
    queue = InMemoryWorkQueue()
    first = RefreshRequest(GROUP, "a", "1.0.0", parent_event_id="root")
    duplicate = RefreshRequest(GROUP, "a", "1.0.0", parent_event_id="root")

    assert queue.push(first) == queue.push(duplicate) == first.event_id
    queue.push(RefreshRequest(GROUP, "a", "1.0.0", parent_event_id="other"))
    queue.push(RefreshRequest(GROUP, "a", "1.0.0"))
    queue.push(RefreshRequest(GROUP, "a", "1.0.0"))
    assert queue.size() == 4

    queue.reset_lineage()
    queue.push(duplicate)
    assert queue.size() == 5


def test_notify_validates_and_queues(depot):
    event_id = depot.notifications.notify("PROD-1", GROUP, "test", "1.0.0")

    queued = depot.queue.pop()
    assert queued.event_id == event_id
    assert not queued.full_update and not queued.transitive
    assert queued.project_id == "PROD-1"

    with pytest.raises(ValueError, match="invalid versionId"):
        depot.notifications.notify("PROD-1", GROUP, "test", "not-a-version")


def test_failed_request_is_retried_with_full_update(depot, repository):
    request = RefreshRequest(GROUP, "test", "1.0.0")

    handled = depot.notifications.handle(request)
    assert handled.attempt == 1
    assert handled.full_update
    assert handled.completed is None
    assert depot.queue.pop() is request

    handled = depot.notifications.handle(request)
    assert handled.retries_exceeded()
    assert handled.completed is not None
    assert handled.status == "FAILED"
    assert depot.queue.size() == 0
    assert depot.notifications.history == [request]


def test_invalid_requests_are_not_retried(depot):
    request = RefreshRequest(GROUP, "Bad", "1.0.0")

    depot.notifications.handle(request)

    assert depot.queue.size() == 0
    assert request.responses[1].errors == ["invalid artifactId [Bad]"]


def test_transitive_refresh_loads_whole_graph(depot, repository):
    core = ProjectVersion(GROUP, "core", "1.0.0")
    lib = ProjectVersion(GROUP, "lib", "1.0.0")
    repository.publish(GROUP, "lib", "1.0.0")
    repository.publish(GROUP, "core", "1.0.0", dependencies=[lib])
    repository.publish(GROUP, "app", "1.0.0", dependencies=[core])
    depot.queue.push(RefreshRequest(GROUP, "app", "1.0.0", transitive=True))

    completed = depot.notifications.run_until_empty()

    assert sorted(r.gav for r in completed) == sorted([core.gav, lib.gav, f"{GROUP}-app-1.0.0"])
    assert all(r.status == "SUCCESS" for r in completed)
    app = depot.projects.find_version(GROUP, "app", "1.0.0")
    assert app.transitive_report.transitive_dependencies == {core, lib}
    assert depot.projects.find_version(GROUP, "lib", "1.0.0") is not None
    assert depot.queue.size() == 0


def test_snapshot_cycles_drain(depot, repository):
    first = ProjectVersion(GROUP, "first", "master-SNAPSHOT")
    second = ProjectVersion(GROUP, "second", "master-SNAPSHOT")
    repository.publish(GROUP, "first", "master-SNAPSHOT", dependencies=[second])
    repository.publish(GROUP, "second", "master-SNAPSHOT", dependencies=[first])
    depot.queue.push(RefreshRequest(GROUP, "first", "master-SNAPSHOT", transitive=True))

    completed = depot.notifications.run_until_empty()

    assert len(completed) == 3
    assert depot.queue.size() == 0
    assert depot.projects.find_version(GROUP, "second", "master-SNAPSHOT") is not None


def test_notify_carries_refresh_flags(depot):
    depot.notifications.notify(None, GROUP, "test", "1.0.0", full_update=True, transitive=True)

    queued = depot.queue.pop()
    assert queued.full_update and queued.transitive
    assert queued.project_id is None
