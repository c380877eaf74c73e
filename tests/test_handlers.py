import zipfile

from artifact_depot.handlers import ArchiveEntriesHandler, ArtifactHandlerRegistry, default_registry
from artifact_depot.models import ArtifactType

from conftest import GROUP


def make_jar(path, names):
    with zipfile.ZipFile(path, "w") as archive:
        for name in names:
            archive.writestr(name, "content")
    return path


def test_registry_reports_types_in_processing_order():
    registry = ArtifactHandlerRegistry(
        [
            ArchiveEntriesHandler(ArtifactType.FILE_GENERATIONS),
            ArchiveEntriesHandler(ArtifactType.ENTITIES),
        ]
    )

    assert registry.supported_types() == [ArtifactType.ENTITIES, ArtifactType.FILE_GENERATIONS]
    assert ArtifactType.VERSIONED_ENTITIES not in registry
    assert registry.get(ArtifactType.VERSIONED_ENTITIES) is None
    assert len(default_registry()) == 3


def test_archive_entries_are_stored_per_version(tmp_path):
    handler = ArchiveEntriesHandler(ArtifactType.ENTITIES, entry_prefix="entities/")
    jar = make_jar(tmp_path / "test-entities.jar", ["entities/a.json", "entities/b.json", "META-INF/MANIFEST.MF"])

    response = handler.refresh(GROUP, "test", "1.0.0", [jar, tmp_path / "notes.txt"])

    assert not response.has_errors()
    assert handler.entries(GROUP, "test", "1.0.0") == ["entities/a.json", "entities/b.json"]

    handler.delete(GROUP, "test", "1.0.0")
    assert handler.entries(GROUP, "test", "1.0.0") == []


def test_unreadable_archive_is_an_error(tmp_path):
    handler = ArchiveEntriesHandler(ArtifactType.FILE_GENERATIONS)
    broken = tmp_path / "broken.jar"
    broken.write_text("not a zip")

    response = handler.refresh(GROUP, "test", "1.0.0", [broken])

    assert len(response.errors) == 1
    assert response.errors[0].startswith("could not read file-generation file")
    assert handler.entries(GROUP, "test", "1.0.0") == []
