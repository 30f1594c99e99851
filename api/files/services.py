"""
Services for the Files API
"""

import secrets

from fastapi import HTTPException, status

from api.files.exceptions import IndexRecordNotFoundError, InvalidIndexStateError
from api.files.models import (
    FileBrowserData,
    FilePublic,
    FileUpdate,
    ProcessedFilePublic,
    ProcessingRequest,
)
from api.files.record import FileRecord
from api.storage.factory import ResourceFactory


def _file_public(file: FileRecord) -> FilePublic:
    return FilePublic.model_validate(file.to_array())


def get_file(factory: ResourceFactory, storage_uid: int, identifier: str) -> FileRecord:
    """
    Look up a file and make sure it is indexed.
    Index errors surface as HTTP errors.
    """
    file = factory.get_file_object_by_storage_and_identifier(storage_uid, identifier)
    try:
        file.ensure_indexed()
    except IndexRecordNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidIndexStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    return file


def list_files(factory: ResourceFactory, storage_uid: int, folder: str = "/") -> FileBrowserData:
    """List files and folders of a storage folder"""
    storage = factory.get_storage_object(storage_uid)
    return storage.list_folder(folder)


def get_file_info(factory: ResourceFactory, storage_uid: int, identifier: str) -> FilePublic:
    return _file_public(get_file(factory, storage_uid, identifier))


def download_file(
    factory: ResourceFactory, storage_uid: int, identifier: str
) -> tuple[bytes, str, str]:
    """
    Read a file's contents.

    Returns:
        Tuple of (contents, content type, file name)
    """
    file = get_file(factory, storage_uid, identifier)
    if file.is_missing():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File is marked as missing: {file.get_identifier()}",
        )
    contents = file.get_contents()
    return contents, file.get_mime_type() or "application/octet-stream", file.get_name()


def upload_file(
    factory: ResourceFactory,
    storage_uid: int,
    folder: str,
    filename: str,
    contents: bytes,
) -> FilePublic:
    storage = factory.get_storage_object(storage_uid)
    file = storage.add_file(folder, filename, contents)
    return _file_public(file)


def replace_contents(
    factory: ResourceFactory, storage_uid: int, identifier: str, contents: bytes
) -> FilePublic:
    file = get_file(factory, storage_uid, identifier)
    file.set_contents(contents)
    return _file_public(file)


def update_file(
    factory: ResourceFactory, storage_uid: int, identifier: str, file_update: FileUpdate
) -> FilePublic:
    """Rename a file and/or change its missing flag"""
    file = get_file(factory, storage_uid, identifier)
    storage = file.get_storage()

    if file_update.name is not None and file_update.name != file.get_name():
        storage.rename_file(file, file_update.name)

    if file_update.missing is not None:
        file.set_missing(file_update.missing)
        factory.index_repository.update(file)

    return _file_public(file)


def delete_file(factory: ResourceFactory, storage_uid: int, identifier: str):
    file = get_file(factory, storage_uid, identifier)
    file.get_storage().delete_file(file)


def process_file(
    factory: ResourceFactory, storage_uid: int, request: ProcessingRequest
) -> ProcessedFilePublic:
    """
    Derive a processed file.
    The request must carry the file's checksum; requests for files the
    caller was never handed a checksum for are rejected.
    """
    file = get_file(factory, storage_uid, request.identifier)
    if not secrets.compare_digest(request.checksum.encode(), file.calculate_checksum().encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Checksum mismatch",
        )
    processed = file.process(request.task_type, request.configuration)
    return ProcessedFilePublic(**processed.to_array())
