"""
Indexer service - creates and refreshes index records from storage
"""

from api.files.models import FileType
from api.files.repository import FileIndexRepository, MetaDataRepository
from core.logger import logger


class IndexerService:
    """Builds index records from what the storage reports about a file"""

    def __init__(
        self,
        index_repository: FileIndexRepository,
        metadata_repository: MetaDataRepository,
    ):
        self.index_repository = index_repository
        self.metadata_repository = metadata_repository

    def gather_file_information(self, file) -> dict:
        """Collect the index columns for a file from its storage"""
        storage = file.get_storage()
        info = storage.get_file_info(file)
        mime_type = info.get("mime_type")
        return {
            "storage": storage.uid,
            "identifier": file.identifier,
            "name": info.get("name") or file.name,
            "extension": file.get_extension(),
            "mime_type": mime_type,
            "type": FileType.from_mime_type(mime_type),
            "size": int(info.get("size") or 0),
            "sha1": storage.hash_file(file, "sha1"),
            "missing": 0,
            "creation_date": int(info.get("creation_date") or 0),
            "modification_date": int(info.get("modification_date") or 0),
        }

    def index_file(self, file, extract_metadata_now: bool = True) -> dict:
        """
        Create the index record for a file that has none yet.

        Args:
            file: The FileRecord to index
            extract_metadata_now: Also create the file's metadata row

        Returns:
            The persisted index record
        """
        # Reading from storage may read properties of the file again
        in_progress = file.indexing_in_progress
        file.set_indexing_in_progress(True)
        try:
            record = self.gather_file_information(file)
        finally:
            file.set_indexing_in_progress(in_progress)

        record = self.index_repository.add(record)
        if extract_metadata_now:
            self.metadata_repository.find_by_file_uid(record["uid"])
        return record

    def update_index_entry(self, file) -> dict | None:
        """Refresh stat columns of an indexed file and persist the changes"""
        record = self.gather_file_information(file)
        file.update_properties({
            key: record[key]
            for key in ("size", "sha1", "mime_type", "type", "missing", "modification_date")
        })
        return self.index_repository.update(file)

    def index_storage(self, storage, dry_run: bool = False) -> dict:
        """
        Walk a storage: index files without a record, refresh records of
        files that came back and flag records whose file disappeared as missing.

        Returns:
            Counters of the run
        """
        stats = {"scanned": 0, "indexed": 0, "restored": 0, "missing": 0}
        known = {
            record["identifier"]: record
            for record in self.index_repository.find_by_storage(storage.uid)
        }

        for identifier in storage.driver.walk_files():
            stats["scanned"] += 1
            record = known.get(identifier)
            if record is not None:
                if record["missing"]:
                    logger.info("File %s:%s is back", storage.uid, identifier)
                    stats["restored"] += 1
                    if not dry_run:
                        self.update_index_entry(storage.factory.create_file_object(record, storage))
                continue
            logger.info("Indexing %s:%s", storage.uid, identifier)
            if not dry_run:
                file = storage.get_file(identifier)
                file.ensure_indexed()
            stats["indexed"] += 1

        for identifier, record in known.items():
            if record["missing"] or storage.driver.file_exists(identifier):
                continue
            logger.warning("File %s:%s is missing", storage.uid, identifier)
            stats["missing"] += 1
            if not dry_run:
                file = storage.factory.create_file_object(record, storage)
                file.set_missing(True)
                self.index_repository.update(file)

        return stats

