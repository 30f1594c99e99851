#!/usr/bin/env python
"""
Index the files of one or all storages.

Files without an index record are indexed; index records whose file is
gone from the storage are flagged as missing.

Usage:
    PYTHONPATH=.
    python scripts/index_storage.py --storage 1
    python scripts/index_storage.py --all
    python scripts/index_storage.py --all --dry-run
"""

import argparse
import sys

import boto3
from fastapi import HTTPException

from api.storage.factory import ResourceFactory
from core.config import get_settings
from core.db import create_db_and_tables, get_session
from core.logger import logger


class StorageIndexer:
    """Runs the indexer over storages and keeps totals."""

    def __init__(self, factory: ResourceFactory, dry_run: bool = False):
        self.factory = factory
        self.dry_run = dry_run
        self.stats = {"storages": 0, "scanned": 0, "indexed": 0, "restored": 0, "missing": 0, "errors": 0}

    def index_storage(self, storage_uid: int):
        try:
            storage = self.factory.get_storage_object(storage_uid)
            logger.info(f"Indexing storage {storage.uid} ({storage.name})")
            result = self.factory.indexer.index_storage(storage, dry_run=self.dry_run)
        except HTTPException as e:
            logger.error(f"Error indexing storage {storage_uid}: {e.detail}")
            self.stats["errors"] += 1
            return

        self.stats["storages"] += 1
        for key, value in result.items():
            self.stats[key] += value

    def index_all(self):
        for storage in self.factory.get_all_storages():
            if not storage.is_online:
                logger.info(f"Skipping offline storage {storage.uid}")
                continue
            self.index_storage(storage.uid)

    def print_summary(self):
        """Print indexing summary."""
        logger.info("=" * 50)
        logger.info("INDEXING SUMMARY")
        logger.info("=" * 50)
        logger.info(f"Storages:        {self.stats['storages']}")
        logger.info(f"Files scanned:   {self.stats['scanned']}")
        logger.info(f"Files indexed:   {self.stats['indexed']}")
        logger.info(f"Files restored:  {self.stats['restored']}")
        logger.info(f"Files missing:   {self.stats['missing']}")
        logger.info(f"Errors:          {self.stats['errors']}")

        if self.dry_run:
            logger.info("\n*** DRY RUN MODE - The index was not changed ***")


def main():
    parser = argparse.ArgumentParser(
        description="Index the files of a storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Index one storage
  python scripts/index_storage.py --storage 1

  # Index every online storage
  python scripts/index_storage.py --all

  # Report what would change
  python scripts/index_storage.py --all --dry-run
        """,
    )

    parser.add_argument("--storage", type=int, help="Storage uid")
    parser.add_argument("--all", action="store_true", help="Index all online storages")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be indexed without making changes",
    )

    args = parser.parse_args()

    if args.storage is None and not args.all:
        parser.error("Either --storage or --all must be specified")

    # Get database session
    try:
        create_db_and_tables()
        session = next(get_session())
    except Exception as e:
        logger.error(f"Failed to create database session: {e}")
        sys.exit(1)

    settings = get_settings()
    factory = ResourceFactory(
        session, settings, s3_client=boto3.client("s3", region_name=settings.AWS_REGION)
    )
    indexer = StorageIndexer(factory, dry_run=args.dry_run)

    try:
        if args.all:
            indexer.index_all()
        else:
            indexer.index_storage(args.storage)
    finally:
        indexer.print_summary()
        session.close()


if __name__ == "__main__":
    main()
