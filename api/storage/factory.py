"""
ResourceFactory - builds storages and file records for one request.

The factory owns the request's collaborators (database session, S3 client,
repositories, indexer) and injects them into every FileRecord it creates.
"""

from fastapi import HTTPException, status
from sqlmodel import Session, select

from api.files.indexer import IndexerService
from api.files.record import FileRecord
from api.files.repository import (
    FileIndexRepository,
    MetaDataRepository,
    split_combined_identifier,
)
from api.storage.drivers import LocalDriver, S3Driver, normalize_identifier
from api.storage.models import StorageBackend, StorageRecord
from api.storage.resource_storage import ResourceStorage
from core.config import Settings


class ResourceFactory:
    """Creates ResourceStorage and FileRecord objects"""

    def __init__(self, session: Session, settings: Settings, s3_client=None):
        self.session = session
        self.settings = settings
        self.s3_client = s3_client
        self.index_repository = FileIndexRepository(session)
        self.metadata_repository = MetaDataRepository(session)
        self.indexer = IndexerService(self.index_repository, self.metadata_repository)
        self._storages: dict[int, ResourceStorage] = {}

    # ========================================================================
    # Storages
    # ========================================================================

    def _create_driver(self, record: StorageRecord):
        if record.driver == StorageBackend.S3:
            return S3Driver(
                record.base_uri,
                self.s3_client,
                public_base_url=record.public_base_url,
                is_public=record.is_public,
            )
        return LocalDriver(record.base_uri, public_base_url=record.public_base_url)

    def get_storage_object(self, uid: int) -> ResourceStorage:
        """Return the storage with `uid`; instances are shared within a factory"""
        uid = int(uid)
        if uid not in self._storages:
            record = self.session.get(StorageRecord, uid)
            if record is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Storage with uid {uid} not found",
                )
            self._storages[uid] = ResourceStorage(record, self._create_driver(record), self)
        return self._storages[uid]

    def get_all_storages(self) -> list[ResourceStorage]:
        records = self.session.exec(select(StorageRecord).order_by(StorageRecord.uid)).all()
        return [self.get_storage_object(record.uid) for record in records]

    # ========================================================================
    # Files
    # ========================================================================

    def create_file_object(self, file_data: dict, storage=None) -> FileRecord:
        if storage is None:
            storage = self.get_storage_object(file_data["storage"])
        return FileRecord.create(
            file_data,
            storage,
            index_repository=self.index_repository,
            metadata_repository=self.metadata_repository,
            indexer=self.indexer,
            storage_factory=self,
            encryption_key=self.settings.ENCRYPTION_KEY,
        )

    def get_file_object(self, uid: int) -> FileRecord:
        """Return the indexed file with `uid`"""
        record = self.index_repository.find_one_by_uid(uid)
        if record is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"File with uid {uid} not found",
            )
        return self.create_file_object(record)

    def get_file_object_by_storage_and_identifier(
        self, storage_uid: int, identifier: str
    ) -> FileRecord:
        """
        Return a file from its index record when there is one, otherwise
        from what the driver reports (the record is then indexed lazily).
        """
        storage = self.get_storage_object(storage_uid)
        identifier = normalize_identifier(identifier)
        record = self.index_repository.find_one_by_storage_and_identifier(storage.uid, identifier)
        if record is not None:
            return self.create_file_object(record, storage)

        file_data = storage.driver.get_file_info(identifier)
        file_data["storage"] = storage.uid
        file_data["uid"] = 0
        return self.create_file_object(file_data, storage)

    def get_file_object_from_combined_identifier(self, combined_identifier: str) -> FileRecord:
        try:
            storage_uid, identifier = split_combined_identifier(combined_identifier)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e
        return self.get_file_object_by_storage_and_identifier(storage_uid, identifier)

