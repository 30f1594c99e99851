"""
Models for the Storages API
"""

from enum import Enum
from sqlmodel import SQLModel, Field
from pydantic import ConfigDict


class StorageBackend(str, Enum):
    """Storage backend types"""

    LOCAL = "local"
    S3 = "s3"


class StorageRecord(SQLModel, table=True):
    """
    A configured storage. Files are addressed by the storage uid plus
    an identifier that is relative to the storage's base location.
    """
    __tablename__ = "sys_file_storage"

    uid: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    description: str | None = Field(default=None)
    driver: StorageBackend = Field(default=StorageBackend.LOCAL)
    # Local directory or s3://bucket/prefix
    base_uri: str = Field(max_length=1024)
    # URL prefix for public access, e.g. https://cdn.example.org/fileadmin
    public_base_url: str | None = Field(default=None, max_length=1024)
    is_public: bool = Field(default=True)
    is_writable: bool = Field(default=True)
    is_online: bool = Field(default=True)

    model_config = ConfigDict(from_attributes=True)


class StorageCreate(SQLModel):
    """Request model for creating a storage"""

    name: str
    description: str | None = None
    driver: StorageBackend = StorageBackend.LOCAL
    base_uri: str
    public_base_url: str | None = None
    is_public: bool = True
    is_writable: bool = True
    is_online: bool = True

    model_config = ConfigDict(extra="forbid")


class StoragePublic(SQLModel):
    """Public storage representation"""

    uid: int
    name: str
    description: str | None
    driver: StorageBackend
    base_uri: str
    public_base_url: str | None
    is_public: bool
    is_writable: bool
    is_online: bool
