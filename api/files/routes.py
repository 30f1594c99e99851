"""
Routes/endpoints for the Files API

HTTP   URI                                              Action
----   ---                                              ------
GET    /api/v1/files/list?storage=[uid]&folder=[path]   Browse a storage folder
GET    /api/v1/files/[storage]/info?identifier=         Retrieve info about a file
GET    /api/v1/files/[storage]/download?identifier=     Download a file
POST   /api/v1/files/[storage]/upload                   Upload a new file
PUT    /api/v1/files/[storage]/contents?identifier=     Replace the contents of a file
PATCH  /api/v1/files/[storage]?identifier=              Rename a file or flag it missing
DELETE /api/v1/files/[storage]?identifier=              Delete a file
POST   /api/v1/files/[storage]/process                  Derive a processed file
"""

import io

from fastapi import APIRouter, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from api.files import services
from api.files.models import (
    FileBrowserData,
    FilePublic,
    FileUpdate,
    ProcessedFilePublic,
    ProcessingRequest,
)
from core.deps import ResourceFactoryDep

router = APIRouter(prefix="/files", tags=["File Endpoints"])

IdentifierQuery = Query(..., description="Identifier of the file within the storage, e.g. /images/logo.png")


@router.get("/list", response_model=FileBrowserData, tags=["File Endpoints"])
def list_files(
    factory: ResourceFactoryDep,
    storage: int = Query(..., description="Storage uid"),
    folder: str = Query("/", description="Folder within the storage"),
) -> FileBrowserData:
    """
    Browse files and folders of a storage folder.
    No navigation outside the storage is allowed.
    """
    return services.list_files(factory=factory, storage_uid=storage, folder=folder)


@router.get("/{storage}/info", response_model=FilePublic, tags=["File Endpoints"])
def get_file_info(
    factory: ResourceFactoryDep,
    storage: int,
    identifier: str = IdentifierQuery,
) -> FilePublic:
    """
    Retrieve a file, indexing it on first access.
    """
    return services.get_file_info(factory=factory, storage_uid=storage, identifier=identifier)


@router.get("/{storage}/download", tags=["File Endpoints"])
def download_file(
    factory: ResourceFactoryDep,
    storage: int,
    identifier: str = IdentifierQuery,
) -> StreamingResponse:
    """
    Download a file as a streaming attachment.
    """
    file_content, content_type, filename = services.download_file(
        factory=factory, storage_uid=storage, identifier=identifier
    )

    return StreamingResponse(
        io.BytesIO(file_content),
        media_type=content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )


@router.post(
    "/{storage}/upload",
    response_model=FilePublic,
    status_code=status.HTTP_201_CREATED,
    tags=["File Endpoints"],
)
async def upload_file(
    factory: ResourceFactoryDep,
    storage: int,
    content: UploadFile = File(...),
    folder: str = Form("/"),
    filename: str | None = Form(None),
) -> FilePublic:
    """
    Upload a new file into a storage folder.
    """
    data = await content.read()
    return services.upload_file(
        factory=factory,
        storage_uid=storage,
        folder=folder,
        filename=filename or content.filename,
        contents=data,
    )


@router.put("/{storage}/contents", response_model=FilePublic, tags=["File Endpoints"])
async def replace_contents(
    factory: ResourceFactoryDep,
    storage: int,
    identifier: str = IdentifierQuery,
    content: UploadFile = File(...),
) -> FilePublic:
    """
    Replace the contents of an existing file.
    """
    data = await content.read()
    return services.replace_contents(
        factory=factory, storage_uid=storage, identifier=identifier, contents=data
    )


@router.patch("/{storage}", response_model=FilePublic, tags=["File Endpoints"])
def update_file(
    factory: ResourceFactoryDep,
    storage: int,
    file_update: FileUpdate,
    identifier: str = IdentifierQuery,
) -> FilePublic:
    """
    Rename a file and/or flag it as missing.
    """
    return services.update_file(
        factory=factory,
        storage_uid=storage,
        identifier=identifier,
        file_update=file_update,
    )


@router.delete("/{storage}", status_code=status.HTTP_204_NO_CONTENT, tags=["File Endpoints"])
def delete_file(
    factory: ResourceFactoryDep,
    storage: int,
    identifier: str = IdentifierQuery,
) -> None:
    """
    Delete a file and its index record.
    """
    services.delete_file(factory=factory, storage_uid=storage, identifier=identifier)


@router.post("/{storage}/process", response_model=ProcessedFilePublic, tags=["File Endpoints"])
def process_file(
    factory: ResourceFactoryDep,
    storage: int,
    processing_request: ProcessingRequest,
) -> ProcessedFilePublic:
    """
    Derive a processed version of a file.
    The request must carry the checksum reported by the file's info endpoint.
    """
    return services.process_file(factory=factory, storage_uid=storage, request=processing_request)
