"""
FileRecord - in-memory representation of one storage-backed file.

A FileRecord is created from a raw property map (a storage stat result or an
index row) and lazily synchronized with its persisted index record the first
time a property is read. Metadata lives in a second property bag which is
only consulted for keys the primary bag does not have.

Content I/O, permission checks and URL building are delegated to the owning
storage. Index and metadata lookups go through injected repositories.
"""

import hashlib
from enum import Enum
from typing import Any, Protocol

from api.files.exceptions import IndexRecordNotFoundError, InvalidIndexStateError
from api.files.models import FileType
from core.logger import logger


class IndexState(Enum):
    """Whether a file's index record is known to exist"""

    UNKNOWN = "unknown"
    INDEXED = "indexed"


# ============================================================================
# Collaborator contracts
# ============================================================================


class FileIndexStore(Protocol):
    def find_one_by_combined_identifier(self, combined_identifier: str) -> dict | None: ...


class MetaDataStore(Protocol):
    def find_by_file(self, file: "FileRecord") -> dict: ...


class FileIndexer(Protocol):
    def index_file(self, file: "FileRecord", extract_metadata_now: bool = True) -> dict: ...


class StorageFactory(Protocol):
    def get_storage_object(self, uid: int) -> Any: ...


def _differs(old, new) -> bool:
    # True, 1 and 1.0 compare equal but are different values
    return type(old) is not type(new) or old != new


def _to_uid(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class FileRecord:
    """File representation in the file abstraction layer"""

    def __init__(
        self,
        file_data: dict,
        storage,
        *,
        index_repository: FileIndexStore,
        metadata_repository: MetaDataStore,
        indexer: FileIndexer,
        storage_factory: StorageFactory | None = None,
        encryption_key: str = "",
    ):
        self.identifier: str = file_data["identifier"]
        self.name: str = file_data["name"]
        self.properties: dict[str, Any] = dict(file_data)
        self.metadata_properties: dict[str, Any] = {}
        self.storage = storage

        self.index_state = IndexState.UNKNOWN
        self.indexing_in_progress = False
        self._indexable = True
        self._deleted = False
        self._updated_properties: list[str] = []

        self._index_repository = index_repository
        self._metadata_repository = metadata_repository
        self._indexer = indexer
        self._storage_factory = storage_factory
        self._encryption_key = encryption_key

        # Re-hydrated from an index row
        if _to_uid(file_data.get("uid")) > 0:
            self.index_state = IndexState.INDEXED
            self._load_metadata()

    @classmethod
    def create(cls, file_data: dict, storage, **collaborators) -> "FileRecord":
        return cls(file_data, storage, **collaborators)

    def __repr__(self) -> str:
        return f"<FileRecord {self.get_combined_identifier()} {self.index_state.value}>"

    # ========================================================================
    # Property access
    # ========================================================================

    def get_property(self, key: str):
        """
        Return a property value, falling back to the metadata.
        Returns None when neither bag has the key.
        """
        if self.index_state is IndexState.UNKNOWN:
            self.ensure_indexed()
        if key in self.properties:
            return self.properties[key]
        return self.metadata_properties.get(key)

    def has_property(self, key: str) -> bool:
        return key in self.properties

    def get_raw_property(self, key: str):
        """Return a primary property without triggering indexing"""
        return self.properties.get(key)

    def get_all_properties(self) -> dict:
        """Union of the properties and the metadata; properties win on collision"""
        if self.index_state is IndexState.UNKNOWN:
            self.ensure_indexed()
        merged = dict(self.metadata_properties)
        merged.update(self.properties)
        return merged

    def get_metadata(self) -> dict:
        return self.metadata_properties

    def get_uid(self) -> int:
        return _to_uid(self.get_property("uid"))

    def get_name(self) -> str:
        return self.name

    def get_identifier(self) -> str:
        return self.identifier

    def get_combined_identifier(self) -> str:
        return f"{self.storage.uid}:{self.identifier}"

    def get_extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[1].lower()

    def get_mime_type(self) -> str | None:
        return self.get_property("mime_type")

    def get_size(self) -> int | None:
        size = self.get_property("size")
        return int(size) if size is not None else None

    def get_type(self) -> FileType:
        return FileType.from_mime_type(self.get_mime_type())

    def get_storage(self):
        return self.storage

    # ========================================================================
    # Contents
    # ========================================================================

    def get_contents(self) -> bytes:
        return self.storage.get_file_contents(self)

    def set_contents(self, contents: bytes) -> "FileRecord":
        """Replace the file contents; returns the record for chaining"""
        self.storage.set_file_contents(self, contents)
        return self

    # ========================================================================
    # Indexing
    # ========================================================================

    @property
    def indexable(self) -> bool:
        return self._indexable

    def is_indexable(self) -> bool:
        return self._indexable

    def set_indexable(self, indexable: bool):
        self._indexable = bool(indexable)

    def set_indexing_in_progress(self, state: bool):
        """Only for use by the indexer"""
        self.indexing_in_progress = bool(state)

    def is_indexed(self) -> bool:
        if self.index_state is IndexState.UNKNOWN and not self.indexing_in_progress:
            self.ensure_indexed()
        return self.index_state is IndexState.INDEXED

    def ensure_indexed(self, create_if_missing: bool = True):
        """
        Load the index record of this file, creating it through the indexer
        when none exists yet.

        Args:
            create_if_missing: Index the file when no record is found

        Raises:
            IndexRecordNotFoundError: No record exists and create_if_missing is False
        """
        if (
            self.index_state is not IndexState.UNKNOWN
            or not self._indexable
            or self.indexing_in_progress
        ):
            return

        self.indexing_in_progress = True
        try:
            combined_identifier = self.get_combined_identifier()
            record = self._index_repository.find_one_by_combined_identifier(combined_identifier)
            if record is None:
                if not create_if_missing:
                    raise IndexRecordNotFoundError(combined_identifier)
                logger.debug("No index record for %s, indexing it", combined_identifier)
                record = self._indexer.index_file(self, False)
            self.merge_index_record(record)
            self.index_state = IndexState.INDEXED
            self._load_metadata()
        finally:
            self.indexing_in_progress = False

    def merge_index_record(self, record: dict):
        """
        Merge an index record into the properties.
        Properties already present on the file take precedence over the record.

        Raises:
            InvalidIndexStateError: The file already has a persisted uid
        """
        if _to_uid(self.properties.get("uid")) != 0:
            raise InvalidIndexStateError(
                "uid property is already set. Cannot merge index record."
            )
        # Only the not-yet-persisted placeholder uid can be present here
        pending = {key: value for key, value in self.properties.items() if key != "uid"}
        merged = dict(record)
        merged.update(pending)
        merged.setdefault("uid", 0)
        self.properties = merged

    def _load_metadata(self):
        self.metadata_properties = dict(self._metadata_repository.find_by_file(self) or {})

    def update_properties(self, properties: dict):
        """
        Update the properties of this file, e.g. after re-indexing or moving it.
        Only keys present in `properties` are touched; set a key to None to clear it.
        """
        properties = dict(properties)

        # Identifier and name go first, loading (and thus possibly indexing)
        # the file below already needs them
        if properties.get("identifier") is not None:
            self.identifier = properties["identifier"]
        if properties.get("name") is not None:
            self.name = properties["name"]

        if self.index_state is IndexState.UNKNOWN and properties.get("uid") is None:
            self.ensure_indexed()

        # A persisted identity is never retargeted
        if _to_uid(self.properties.get("uid")) != 0 and properties.get("uid") is not None:
            del properties["uid"]

        for key, value in properties.items():
            if _differs(self.properties.get(key), value):
                if key not in self._updated_properties:
                    self._updated_properties.append(key)
                self.properties[key] = value

        if _to_uid(properties.get("uid")) > 0:
            self.index_state = IndexState.INDEXED
            self._load_metadata()

        if "storage" in properties and "storage" in self._updated_properties:
            if self._storage_factory is None:
                raise RuntimeError(
                    f"Cannot resolve storage {properties['storage']} for {self.identifier}: no storage factory"
                )
            self.storage = self._storage_factory.get_storage_object(properties["storage"])

    def get_updated_properties(self) -> list[str]:
        """Names of all properties that changed since this object was created"""
        return list(self._updated_properties)

    # ========================================================================
    # Storage and management
    # ========================================================================

    def check_action_permission(self, action: str) -> bool:
        """Check if `action` (read, write, delete) is allowed for this file"""
        return self.storage.check_file_action_permission(action, self)

    def is_missing(self) -> bool:
        return bool(self.get_property("missing"))

    def set_missing(self, missing: bool):
        self.update_properties({"missing": 1 if missing else 0})

    def is_deleted(self) -> bool:
        return self._deleted

    def set_deleted(self):
        """Mark the file as deleted; only the storage should call this"""
        self._deleted = True

    def get_public_url(self, relative_to_current_script: bool = False) -> str | None:
        """
        Return a publicly accessible URL for this file, or None when the
        file is marked missing or has been deleted.

        Access may still be restricted by other means, e.g. web server
        authentication.
        """
        if self.is_missing() or self._deleted:
            return None
        return self.storage.get_public_url(self, relative_to_current_script)

    def calculate_checksum(self, encryption_key: str | None = None) -> str:
        """
        MD5 over the combined identifier, the MIME type and the install's
        encryption key. Derived-asset requests are verified against it.
        """
        if encryption_key is None:
            encryption_key = self._encryption_key
        mime_type = self.get_mime_type() or ""
        payload = f"{self.get_combined_identifier()}|{mime_type}|{encryption_key}"
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    def process(self, task_type: str, configuration: dict):
        """Return a processed (derived) version of this file"""
        return self.storage.process_file(self, task_type, configuration)

    def to_array(self) -> dict:
        """
        Snapshot of the main data of this file for listings.
        Not every key is guaranteed to be present.
        """
        array = {
            "id": self.get_combined_identifier(),
            "name": self.get_name(),
            "extension": self.get_extension(),
            "type": self.get_type(),
            "mime_type": self.get_mime_type(),
            "size": self.get_size(),
            "url": self.get_public_url(),
            "indexed": self.index_state is IndexState.INDEXED,
            "uid": self.get_uid(),
            "permissions": {
                "read": self.check_action_permission("read"),
                "write": self.check_action_permission("write"),
                "delete": self.check_action_permission("delete"),
            },
            "checksum": self.calculate_checksum(),
        }
        array.update(self.properties)
        # A missing or deleted file has nothing left to stat
        if not self._deleted and not self.is_missing():
            array.update(self.storage.get_file_info(self))
        return array
