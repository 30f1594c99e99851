"""
Test the index and metadata repositories and the indexer
"""

import hashlib

import pytest
from sqlmodel import Session, select

from api.files.models import FileIndex, FileMetadata, FileType
from api.files.repository import (
    FileIndexRepository,
    MetaDataRepository,
    hash_identifier,
    split_combined_identifier,
)
from api.storage.factory import ResourceFactory
from api.storage.models import StorageRecord


def _index_record(storage_uid: int, identifier: str = "/docs/readme.txt", **kwargs) -> dict:
    record = {
        "storage": storage_uid,
        "identifier": identifier,
        "name": identifier.rsplit("/", 1)[-1],
        "extension": "txt",
        "mime_type": "text/plain",
        "type": FileType.TEXT,
        "size": 13,
    }
    record.update(kwargs)
    return record


class TestIdentifierHelpers:

    def test_hash_identifier(self):
        assert hash_identifier("/a.txt") == hashlib.sha1(b"/a.txt").hexdigest()

    def test_split_combined_identifier(self):
        assert split_combined_identifier("1:/a.txt") == (1, "/a.txt")
        assert split_combined_identifier("12:/folder/b:c.txt") == (12, "/folder/b:c.txt")

    @pytest.mark.parametrize("combined_identifier", ["/a.txt", "x:/a.txt", ":/a.txt"])
    def test_split_invalid_combined_identifier(self, combined_identifier):
        with pytest.raises(ValueError):
            split_combined_identifier(combined_identifier)


class TestFileIndexRepository:

    def test_add_and_find(self, session: Session, local_storage: StorageRecord):
        repository = FileIndexRepository(session)

        record = repository.add(_index_record(local_storage.uid, uid=0))

        assert record["uid"] > 0
        assert record["identifier_hash"] == hash_identifier("/docs/readme.txt")
        found = repository.find_one_by_combined_identifier(f"{local_storage.uid}:/docs/readme.txt")
        assert found == record
        assert repository.find_one_by_uid(record["uid"]) == record

    def test_find_unknown(self, session: Session, local_storage: StorageRecord):
        repository = FileIndexRepository(session)

        assert repository.find_one_by_combined_identifier(f"{local_storage.uid}:/nope.txt") is None
        assert repository.find_one_by_storage_and_identifier(999, "/docs/readme.txt") is None
        assert repository.find_one_by_uid(12345) is None

    def test_find_by_storage(self, session: Session, local_storage: StorageRecord):
        repository = FileIndexRepository(session)
        repository.add(_index_record(local_storage.uid, "/docs/readme.txt"))
        repository.add(_index_record(local_storage.uid, "/docs/notes.txt"))

        records = repository.find_by_storage(local_storage.uid)

        assert [r["identifier"] for r in records] == ["/docs/readme.txt", "/docs/notes.txt"]
        assert repository.find_by_storage(999) == []

    def test_update_writes_changed_properties(
        self, session: Session, local_storage: StorageRecord, factory: ResourceFactory
    ):
        record = factory.index_repository.add(_index_record(local_storage.uid))
        file = factory.get_file_object(record["uid"])

        file.update_properties({"size": 99, "identifier": "/docs/moved.txt", "title": "not a column"})
        updated = factory.index_repository.update(file)

        assert updated["size"] == 99
        assert updated["identifier"] == "/docs/moved.txt"
        assert updated["identifier_hash"] == hash_identifier("/docs/moved.txt")
        assert factory.index_repository.find_one_by_combined_identifier(
            f"{local_storage.uid}:/docs/readme.txt"
        ) is None
        assert factory.index_repository.find_one_by_combined_identifier(
            f"{local_storage.uid}:/docs/moved.txt"
        )["uid"] == record["uid"]

    def test_update_of_unpersisted_file(self, local_storage: StorageRecord, factory: ResourceFactory):
        file = factory.create_file_object(
            {"identifier": "/docs/readme.txt", "name": "readme.txt", "uid": 0, "storage": local_storage.uid}
        )

        assert factory.index_repository.update(file) is None

    def test_remove(self, session: Session, local_storage: StorageRecord):
        repository = FileIndexRepository(session)
        record = repository.add(_index_record(local_storage.uid))

        repository.remove(record["uid"])
        repository.remove(record["uid"])

        assert repository.find_one_by_uid(record["uid"]) is None


class TestMetaDataRepository:

    def test_no_metadata_for_unpersisted_file(self, session: Session):
        repository = MetaDataRepository(session)

        assert repository.find_by_file_uid(0) == {}
        assert session.exec(select(FileMetadata)).all() == []

    def test_empty_row_is_created_on_first_read(self, session: Session, local_storage: StorageRecord):
        record = FileIndexRepository(session).add(_index_record(local_storage.uid))
        repository = MetaDataRepository(session)

        metadata = repository.find_by_file_uid(record["uid"])

        assert metadata == {
            "title": None,
            "description": None,
            "alternative": None,
            "width": None,
            "height": None,
        }
        assert len(session.exec(select(FileMetadata)).all()) == 1

        # Second read does not create another row
        repository.find_by_file_uid(record["uid"])
        assert len(session.exec(select(FileMetadata)).all()) == 1

    def test_update_and_remove(self, session: Session, local_storage: StorageRecord):
        record = FileIndexRepository(session).add(_index_record(local_storage.uid))
        repository = MetaDataRepository(session)

        metadata = repository.update(record["uid"], {"title": "Readme", "width": 10, "uid": 999})

        assert metadata["title"] == "Readme"
        assert metadata["width"] == 10
        assert repository.find_by_file_uid(record["uid"])["title"] == "Readme"

        repository.remove_for_file(record["uid"])
        assert session.exec(select(FileMetadata)).all() == []

    def test_metadata_reaches_file_record(
        self, session: Session, local_storage: StorageRecord, factory: ResourceFactory
    ):
        record = factory.index_repository.add(_index_record(local_storage.uid))
        factory.metadata_repository.update(record["uid"], {"title": "Readme"})

        file = factory.get_file_object(record["uid"])

        assert file.get_property("title") == "Readme"


class TestIndexerService:

    def test_first_property_read_indexes_file(
        self, session: Session, local_storage: StorageRecord, factory: ResourceFactory
    ):
        file = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "docs/readme.txt")

        assert file.get_uid() > 0

        rows = session.exec(select(FileIndex)).all()
        assert len(rows) == 1
        row = rows[0]
        assert row.uid == file.get_uid()
        assert row.identifier == "/docs/readme.txt"
        assert row.name == "readme.txt"
        assert row.extension == "txt"
        assert row.mime_type == "text/plain"
        assert row.type == FileType.TEXT
        assert row.size == len(b"Read me first")
        assert row.sha1 == hashlib.sha1(b"Read me first").hexdigest()
        assert row.missing == 0
        assert row.modification_date > 0

    def test_indexed_file_is_reused(self, local_storage: StorageRecord, factory: ResourceFactory):
        first = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "/docs/readme.txt")
        uid = first.get_uid()

        second = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "/docs/readme.txt")

        assert second.is_indexed()
        assert second.get_uid() == uid

    def test_index_file_extracts_metadata(
        self, session: Session, local_storage: StorageRecord, factory: ResourceFactory
    ):
        file = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "/docs/notes.txt")
        file.set_indexable(False)

        record = factory.indexer.index_file(file)

        metadata_rows = session.exec(select(FileMetadata)).all()
        assert [row.file for row in metadata_rows] == [record["uid"]]
        assert file.indexing_in_progress is False

    def test_update_index_entry(
        self, session: Session, storage_root, local_storage: StorageRecord, factory: ResourceFactory
    ):
        file = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "/docs/readme.txt")
        uid = file.get_uid()
        (storage_root / "docs" / "readme.txt").write_text("Read me first, please")

        factory.indexer.update_index_entry(file)

        row = session.get(FileIndex, uid)
        assert row.size == len(b"Read me first, please")
        assert row.sha1 == hashlib.sha1(b"Read me first, please").hexdigest()
        assert set(file.get_updated_properties()) >= {"size", "sha1"}


class TestIndexStorage:

    def test_index_local_storage(self, local_storage: StorageRecord, factory: ResourceFactory):
        storage = factory.get_storage_object(local_storage.uid)

        stats = factory.indexer.index_storage(storage)

        assert stats == {"scanned": 3, "indexed": 3, "restored": 0, "missing": 0}
        identifiers = sorted(r["identifier"] for r in factory.index_repository.find_by_storage(storage.uid))
        assert identifiers == ["/docs/notes.txt", "/docs/readme.txt", "/images/logo.png"]

        # Nothing left to do on the second run
        assert factory.indexer.index_storage(storage) == {"scanned": 3, "indexed": 0, "restored": 0, "missing": 0}

    def test_processed_files_are_skipped(
        self, storage_root, local_storage: StorageRecord, factory: ResourceFactory
    ):
        (storage_root / "_processed_").mkdir()
        (storage_root / "_processed_" / "preview_abc_logo.png").write_bytes(b"derived")
        storage = factory.get_storage_object(local_storage.uid)

        stats = factory.indexer.index_storage(storage)

        assert stats["scanned"] == 3

    def test_missing_files_are_flagged(
        self, storage_root, local_storage: StorageRecord, factory: ResourceFactory
    ):
        storage = factory.get_storage_object(local_storage.uid)
        factory.indexer.index_storage(storage)
        (storage_root / "docs" / "notes.txt").unlink()

        stats = factory.indexer.index_storage(storage)

        assert stats == {"scanned": 2, "indexed": 0, "restored": 0, "missing": 1}
        record = factory.index_repository.find_one_by_storage_and_identifier(storage.uid, "/docs/notes.txt")
        assert record["missing"] == 1

        # Already flagged records are not counted again
        assert factory.indexer.index_storage(storage)["missing"] == 0

    def test_restored_files_are_unflagged(
        self, storage_root, local_storage: StorageRecord, factory: ResourceFactory
    ):
        storage = factory.get_storage_object(local_storage.uid)
        factory.indexer.index_storage(storage)
        notes = storage_root / "docs" / "notes.txt"
        notes.unlink()
        factory.indexer.index_storage(storage)
        notes.write_text("Some notes, rewritten")

        stats = factory.indexer.index_storage(storage)

        assert stats == {"scanned": 3, "indexed": 0, "restored": 1, "missing": 0}
        record = factory.index_repository.find_one_by_storage_and_identifier(storage.uid, "/docs/notes.txt")
        assert record["missing"] == 0
        assert record["size"] == len(b"Some notes, rewritten")
        assert factory.indexer.index_storage(storage)["restored"] == 0

    def test_update_index_entry_clears_missing_flag(
        self, local_storage: StorageRecord, factory: ResourceFactory
    ):
        file = factory.get_file_object_by_storage_and_identifier(local_storage.uid, "/docs/readme.txt")
        file.set_missing(True)
        factory.index_repository.update(file)

        factory.indexer.update_index_entry(file)

        assert not file.is_missing()
        assert factory.index_repository.find_one_by_uid(file.get_uid())["missing"] == 0

    def test_dry_run_changes_nothing(self, local_storage: StorageRecord, factory: ResourceFactory):
        storage = factory.get_storage_object(local_storage.uid)

        stats = factory.indexer.index_storage(storage, dry_run=True)

        assert stats == {"scanned": 3, "indexed": 3, "restored": 0, "missing": 0}
        assert factory.index_repository.find_by_storage(storage.uid) == []

    def test_index_s3_storage(self, s3_storage: StorageRecord, factory: ResourceFactory):
        storage = factory.get_storage_object(s3_storage.uid)

        stats = factory.indexer.index_storage(storage)

        assert stats == {"scanned": 1, "indexed": 1, "restored": 0, "missing": 0}
        record = factory.index_repository.find_one_by_storage_and_identifier(storage.uid, "/reports/q1.pdf")
        assert record["mime_type"] == "application/pdf"
        assert record["type"] == FileType.APPLICATION
        assert record["size"] == len(b"%PDF-1.4 q1")
        assert record["sha1"] == hashlib.sha1(b"%PDF-1.4 q1").hexdigest()
