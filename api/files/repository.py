"""
Repositories for file index records and file metadata
"""

import hashlib
from sqlmodel import Session, select

from api.files.models import FileIndex, FileMetadata
from core.logger import logger


def hash_identifier(identifier: str) -> str:
    """sha1 of an identifier, used for indexed lookups"""
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest()


def split_combined_identifier(combined_identifier: str) -> tuple[int, str]:
    """Split "<storage uid>:<identifier>" into its parts"""
    storage_uid, sep, identifier = combined_identifier.partition(":")
    if not sep or not storage_uid.isdigit():
        raise ValueError(f"Invalid combined identifier: {combined_identifier}")
    return int(storage_uid), identifier


class FileIndexRepository:
    """Persists index records (sys_file rows) and returns them as dicts"""

    # Columns a file may write back through update()
    UPDATABLE_FIELDS = {
        "storage",
        "identifier",
        "name",
        "extension",
        "mime_type",
        "type",
        "size",
        "sha1",
        "missing",
        "creation_date",
        "modification_date",
    }

    def __init__(self, session: Session):
        self.session = session

    def _find_row(self, storage_uid: int, identifier: str) -> FileIndex | None:
        return self.session.exec(
            select(FileIndex).where(
                FileIndex.storage == storage_uid,
                FileIndex.identifier_hash == hash_identifier(identifier),
            )
        ).first()

    def find_one_by_combined_identifier(self, combined_identifier: str) -> dict | None:
        storage_uid, identifier = split_combined_identifier(combined_identifier)
        return self.find_one_by_storage_and_identifier(storage_uid, identifier)

    def find_one_by_storage_and_identifier(self, storage_uid: int, identifier: str) -> dict | None:
        row = self._find_row(storage_uid, identifier)
        return row.model_dump() if row else None

    def find_one_by_uid(self, uid: int) -> dict | None:
        row = self.session.get(FileIndex, uid)
        return row.model_dump() if row else None

    def find_by_storage(self, storage_uid: int) -> list[dict]:
        rows = self.session.exec(
            select(FileIndex).where(FileIndex.storage == storage_uid).order_by(FileIndex.uid)
        ).all()
        return [row.model_dump() for row in rows]

    def add(self, record: dict) -> dict:
        """Insert a new index record and return it with its uid"""
        record = {k: v for k, v in record.items() if k != "uid"}
        record["identifier_hash"] = hash_identifier(record["identifier"])
        row = FileIndex(**record)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        logger.info("Indexed %s:%s as uid %s", row.storage, row.identifier, row.uid)
        return row.model_dump()

    def update(self, file) -> dict | None:
        """Write the properties the file reports as updated to its index row"""
        uid = int(file.get_raw_property("uid") or 0)
        row = self.session.get(FileIndex, uid) if uid else None
        if row is None:
            return None

        for key in file.get_updated_properties():
            if key in self.UPDATABLE_FIELDS:
                setattr(row, key, file.get_raw_property(key))
        if "identifier" in file.get_updated_properties():
            row.identifier_hash = hash_identifier(row.identifier)

        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row.model_dump()

    def remove(self, uid: int):
        row = self.session.get(FileIndex, uid)
        if row is None:
            return
        self.session.delete(row)
        self.session.commit()


class MetaDataRepository:
    """Metadata rows (sys_file_metadata), one per indexed file"""

    EXCLUDED_FIELDS = {"uid", "file"}

    def __init__(self, session: Session):
        self.session = session

    def _find_row(self, file_uid: int) -> FileMetadata | None:
        return self.session.exec(
            select(FileMetadata).where(FileMetadata.file == file_uid)
        ).first()

    def _to_dict(self, row: FileMetadata) -> dict:
        return row.model_dump(exclude=self.EXCLUDED_FIELDS)

    def find_by_file(self, file) -> dict:
        """
        Return the metadata of a file.
        An indexed file without a metadata row gets an empty one.
        """
        return self.find_by_file_uid(int(file.get_raw_property("uid") or 0))

    def find_by_file_uid(self, file_uid: int) -> dict:
        if file_uid <= 0:
            return {}
        row = self._find_row(file_uid)
        if row is None:
            return self.create_for_file(file_uid)
        return self._to_dict(row)

    def create_for_file(self, file_uid: int, values: dict | None = None) -> dict:
        values = {k: v for k, v in (values or {}).items() if k not in self.EXCLUDED_FIELDS}
        row = FileMetadata(file=file_uid, **values)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_dict(row)

    def update(self, file_uid: int, values: dict) -> dict:
        row = self._find_row(file_uid)
        if row is None:
            return self.create_for_file(file_uid, values)
        for key, value in values.items():
            if key not in self.EXCLUDED_FIELDS:
                setattr(row, key, value)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_dict(row)

    def remove_for_file(self, file_uid: int):
        row = self._find_row(file_uid)
        if row is not None:
            self.session.delete(row)
            self.session.commit()
