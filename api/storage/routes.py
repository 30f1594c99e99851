"""
Routes/endpoints for the Storages API

HTTP   URI                          Action
----   ---                          ------
POST   /api/v1/storages             Register a storage
GET    /api/v1/storages             List all storages
GET    /api/v1/storages/[uid]       Retrieve info about a specific storage
"""

from fastapi import APIRouter, status
from core.deps import SessionDep
from api.storage.models import StorageCreate, StoragePublic
from api.storage import services

router = APIRouter(prefix="/storages", tags=["Storage Endpoints"])


@router.post(
    "",
    response_model=StoragePublic,
    status_code=status.HTTP_201_CREATED,
    tags=["Storage Endpoints"],
)
def create_storage(session: SessionDep, storage_in: StorageCreate) -> StoragePublic:
    """
    Register a local directory or S3 prefix as a storage.
    """
    return services.create_storage(session=session, storage_in=storage_in)


@router.get(
    "",
    response_model=list[StoragePublic],
    status_code=status.HTTP_200_OK,
    tags=["Storage Endpoints"],
)
def get_storages(session: SessionDep) -> list[StoragePublic]:
    """
    List all storages.
    """
    return services.get_storages(session=session)


@router.get(
    "/{uid}",
    response_model=StoragePublic,
    status_code=status.HTTP_200_OK,
    tags=["Storage Endpoints"],
)
def get_storage(session: SessionDep, uid: int) -> StoragePublic:
    """
    Retrieve a specific storage by uid.
    """
    return services.get_storage(session=session, uid=uid)
