import pytest

from artifact_depot.validators import (
    MASTER_SNAPSHOT,
    branch_snapshot,
    is_newer_release,
    is_snapshot_version,
    is_valid,
    is_valid_artifact_id,
    is_valid_group_id,
    is_valid_release_version,
    is_version_alias,
    sort_release_versions,
)


@pytest.mark.parametrize("version_id", ["1.0.0", "0.0.1", "10.20.30"])
def test_release_versions_are_not_snapshots(version_id):
    assert is_valid_release_version(version_id)
    assert not is_snapshot_version(version_id)
    assert is_valid(version_id)


@pytest.mark.parametrize("version_id", ["1.0.0-SNAPSHOT", "master-SNAPSHOT", "feature_x-SNAPSHOT"])
def test_snapshot_versions_are_not_releases(version_id):
    assert is_snapshot_version(version_id)
    assert not is_valid_release_version(version_id)
    assert is_valid(version_id)


@pytest.mark.parametrize("version_id", ["1.0", "1.0.0.0", "v1.0.0", " 1.0.0", "1.0.0\n", "latest", "", None])
def test_invalid_versions(version_id):
    assert not is_valid(version_id)


def test_snapshot_check_rejects_none():
    with pytest.raises(TypeError):
        is_snapshot_version(None)


def test_branch_snapshot_and_aliases():
    assert branch_snapshot("master") == MASTER_SNAPSHOT == "master-SNAPSHOT"
    assert branch_snapshot("release") == "release-SNAPSHOT"
    assert is_version_alias("latest")
    assert is_version_alias("HEAD")
    assert not is_version_alias("1.0.0")
    assert not is_version_alias(None)


@pytest.mark.parametrize("group_id", ["org.finos.legend", "examples.metadata", "com.$money", "_internal.x"])
def test_valid_group_ids(group_id):
    assert is_valid_group_id(group_id)


@pytest.mark.parametrize("group_id", ["", None, "org..finos", "1org.finos", "org.public.x", "org._", "org-finos", "org.finos\n"])
def test_invalid_group_ids(group_id):
    assert not is_valid_group_id(group_id)


@pytest.mark.parametrize("artifact_id", ["test", "test-project", "test_project", "a1-b2"])
def test_valid_artifact_ids(artifact_id):
    assert is_valid_artifact_id(artifact_id)


@pytest.mark.parametrize("artifact_id", ["", None, "Test", "-test", "test-", "test--x", "1test", "test.x"])
def test_invalid_artifact_ids(artifact_id):
    assert not is_valid_artifact_id(artifact_id)


def test_release_ordering_is_semantic():
    versions = ["1.10.0", "1.2.0", "1.0.0-SNAPSHOT", "1.9.0", "1.2.0"]

    assert sort_release_versions(versions) == ["1.2.0", "1.9.0", "1.10.0"]
    assert is_newer_release("1.10.0", "1.9.0")
    assert not is_newer_release("1.9.0", "1.10.0")
    assert not is_newer_release("2.0.0-SNAPSHOT", "1.0.0")
    assert is_newer_release("1.0.0", None)
