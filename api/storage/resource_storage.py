"""
ResourceStorage - a configured storage plus the driver that talks to it.

All file operations go through the storage so capability flags
(online, writable, public) are checked in one place.
"""

from fastapi import HTTPException, status

from api.files.processed import ProcessedFile
from api.storage.drivers import normalize_identifier
from api.storage.models import StorageBackend, StorageRecord
from core.logger import logger

FILE_ACTIONS = ("read", "write", "delete")


class ResourceStorage:
    """Storage abstraction used by file records"""

    def __init__(self, record: StorageRecord, driver, factory):
        self.record = record
        self.driver = driver
        self.factory = factory

    def __repr__(self) -> str:
        return f"<ResourceStorage {self.uid} {self.record.name!r}>"

    @property
    def uid(self) -> int:
        return self.record.uid

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def is_public(self) -> bool:
        return self.record.is_public

    @property
    def is_writable(self) -> bool:
        return self.record.is_writable

    @property
    def is_online(self) -> bool:
        return self.record.is_online

    # ========================================================================
    # Permissions
    # ========================================================================

    def check_file_action_permission(self, action: str, file) -> bool:
        """
        Check if `action` is allowed for `file`.
        Reading needs an online storage, writing and deleting a writable one.
        """
        if action not in FILE_ACTIONS:
            return False
        if not self.is_online:
            return False
        if action in ("write", "delete") and not self.is_writable:
            return False
        return True

    def _assure_permission(self, action: str, file):
        if not self.check_file_action_permission(action, file):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You are not allowed to {action} the file {file.get_identifier()}",
            )

    # ========================================================================
    # File access
    # ========================================================================

    def get_file(self, identifier: str):
        """Return the FileRecord for an identifier in this storage"""
        return self.factory.get_file_object_by_storage_and_identifier(
            self.uid, normalize_identifier(identifier)
        )

    def get_file_info(self, file) -> dict:
        return self.driver.get_file_info(file.identifier)

    def hash_file(self, file, algorithm: str = "sha1") -> str:
        return self.driver.hash_file(file.identifier, algorithm)

    def get_file_contents(self, file) -> bytes:
        self._assure_permission("read", file)
        return self.driver.get_file_contents(file.identifier)

    def set_file_contents(self, file, contents: bytes) -> int:
        """Write new contents and refresh the file's index record"""
        self._assure_permission("write", file)
        written = self.driver.set_file_contents(file.identifier, contents)
        logger.info("Wrote %s bytes to %s", written, file.get_combined_identifier())
        self.factory.indexer.update_index_entry(file)
        return written

    def get_public_url(self, file, relative_to_current_script: bool = False) -> str | None:
        if not self.is_online:
            return None
        if not self.is_public and self.record.driver == StorageBackend.LOCAL:
            return None
        return self.driver.get_public_url(file.identifier, relative_to_current_script)

    def process_file(self, file, task_type: str, configuration: dict) -> ProcessedFile:
        self._assure_permission("read", file)
        return ProcessedFile(file, task_type, configuration)

    # ========================================================================
    # Management
    # ========================================================================

    def add_file(self, folder: str, name: str, contents: bytes):
        """Create a new file in `folder` and index it"""
        identifier = normalize_identifier(f"{folder.rstrip('/')}/{name}")
        if not self.is_online or not self.is_writable:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Storage {self.uid} does not accept new files",
            )
        if self.driver.file_exists(identifier):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"File already exists: {identifier}",
            )
        self.driver.set_file_contents(identifier, contents)
        file = self.get_file(identifier)
        file.ensure_indexed()
        return file

    def rename_file(self, file, new_name: str):
        """Rename a file in place and persist the new identifier"""
        self._assure_permission("write", file)
        new_identifier = self.driver.rename_file(file.identifier, new_name)
        file.update_properties({
            "identifier": new_identifier,
            "name": new_name,
            "extension": new_name.rsplit(".", 1)[1].lower() if "." in new_name else "",
        })
        self.factory.index_repository.update(file)
        return file

    def delete_file(self, file):
        """Delete the file and its index record"""
        self._assure_permission("delete", file)
        uid = int(file.get_raw_property("uid") or 0)
        self.driver.delete_file(file.identifier)
        if uid:
            self.factory.metadata_repository.remove_for_file(uid)
            self.factory.index_repository.remove(uid)
        file.set_deleted()
        logger.info("Deleted %s", file.get_combined_identifier())

    def list_folder(self, folder: str = "/"):
        if not self.is_online:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Storage {self.uid} is offline",
            )
        return self.driver.list_folder(folder)
