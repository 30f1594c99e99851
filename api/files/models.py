"""
Models for the Files API
"""

from typing import Any
from enum import Enum
from sqlmodel import SQLModel, Field, UniqueConstraint
from pydantic import ConfigDict


class FileType(str, Enum):
    """File type categories, derived from the MIME primary type"""

    UNKNOWN = "unknown"
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    APPLICATION = "application"

    @classmethod
    def from_mime_type(cls, mime_type: str | None) -> "FileType":
        if not mime_type or "/" not in mime_type:
            return cls.UNKNOWN
        primary = mime_type.split("/", 1)[0].lower()
        try:
            return cls(primary)
        except ValueError:
            return cls.UNKNOWN


class FileIndex(SQLModel, table=True):
    """
    Index record of a file.
    One row per (storage, identifier); the row's uid is the file's persisted identity.
    """
    __tablename__ = "sys_file"

    uid: int | None = Field(default=None, primary_key=True)
    storage: int = Field(foreign_key="sys_file_storage.uid", index=True)
    identifier: str = Field(max_length=1024)
    identifier_hash: str = Field(max_length=40)  # sha1 of identifier
    name: str = Field(max_length=255)
    extension: str = Field(default="", max_length=255)
    mime_type: str | None = Field(default=None, max_length=255)
    type: FileType = Field(default=FileType.UNKNOWN)
    size: int = Field(default=0)
    sha1: str | None = Field(default=None, max_length=40)
    missing: int = Field(default=0)
    creation_date: int = Field(default=0)  # Unix timestamp
    modification_date: int = Field(default=0)  # Unix timestamp

    __table_args__ = (
        UniqueConstraint("storage", "identifier_hash", name="uq_sys_file_storage_identifier"),
    )

    model_config = ConfigDict(from_attributes=True)


class FileMetadata(SQLModel, table=True):
    """
    Extracted and editorial metadata of a file.
    Kept apart from the index record so re-indexing never clobbers it.
    """
    __tablename__ = "sys_file_metadata"

    uid: int | None = Field(default=None, primary_key=True)
    file: int = Field(foreign_key="sys_file.uid", unique=True)
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None)
    alternative: str | None = Field(default=None, max_length=255)
    width: int | None = Field(default=None)
    height: int | None = Field(default=None)

    model_config = ConfigDict(from_attributes=True)


class FilePermissions(SQLModel):
    """Action permissions of a file"""

    read: bool
    write: bool
    delete: bool


class FilePublic(SQLModel):
    """
    Public file representation, built from FileRecord.to_array().
    Raw properties and storage stat fields are passed through as extra keys.
    """

    id: str
    name: str
    extension: str
    type: FileType
    mime_type: str | None = None
    size: int | None = None
    url: str | None = None
    indexed: bool
    uid: int
    permissions: FilePermissions
    checksum: str

    model_config = ConfigDict(extra="allow")


class FileUpdate(SQLModel):
    """Request model for updating a file"""

    name: str | None = None
    missing: bool | None = None

    model_config = ConfigDict(extra="forbid")


class ProcessingRequest(SQLModel):
    """Request model for deriving a processed file"""

    identifier: str
    task_type: str
    configuration: dict[str, Any] = {}
    checksum: str

    model_config = ConfigDict(extra="forbid")


class ProcessedFilePublic(SQLModel):
    """Public representation of a processed file"""

    identifier: str
    name: str
    task_type: str
    configuration: dict[str, Any]
    checksum: str
    original: str
    uses_original_file: bool
    url: str | None = None


class FileBrowserFolder(SQLModel):
    """Folder item for file browser"""

    name: str
    date: str


class FileBrowserFile(SQLModel):
    """File item for file browser"""

    name: str
    date: str
    size: int


class FileBrowserData(SQLModel):
    """File browser data structure with separate folders and files"""

    folders: list[FileBrowserFolder]
    files: list[FileBrowserFile]
