"""
Services for the Storages API
"""
from fastapi import HTTPException, status
from sqlmodel import select

from api.storage.drivers import _parse_s3_path
from api.storage.models import StorageBackend, StorageCreate, StorageRecord
from core.deps import SessionDep
from core.logger import logger


def create_storage(session: SessionDep, storage_in: StorageCreate) -> StorageRecord:
    """Register a new storage"""
    if storage_in.driver == StorageBackend.S3:
        try:
            _parse_s3_path(storage_in.base_uri)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e

    storage = StorageRecord(**storage_in.model_dump())
    session.add(storage)
    session.commit()
    session.refresh(storage)
    logger.info("Created storage %s (%s)", storage.uid, storage.base_uri)
    return storage


def get_storages(session: SessionDep) -> list[StorageRecord]:
    return session.exec(select(StorageRecord).order_by(StorageRecord.uid)).all()


def get_storage(session: SessionDep, uid: int) -> StorageRecord:
    storage = session.get(StorageRecord, uid)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Storage with uid {uid} not found",
        )
    return storage
