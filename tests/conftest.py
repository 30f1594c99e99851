import os

os.environ.setdefault("SETTINGS_MODE", "test")

from datetime import datetime, timezone
from io import BytesIO
from itertools import count

import pytest
from botocore.exceptions import ClientError, NoCredentialsError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.record import FileRecord
from api.storage.factory import ResourceFactory
from api.storage.models import StorageBackend, StorageRecord
from core.config import InMemoryDbSettings
from core.deps import get_db, get_s3_client
from main import app

TEST_ENCRYPTION_KEY = "test-encryption-key"


# ============================================================================
# Fakes for the collaborators of FileRecord
# ============================================================================


class FakeStorage:
    """Storage stand-in that records what file records ask of it"""

    def __init__(self, uid: int = 1, url_prefix: str = "https://cdn.example.org"):
        self.uid = uid
        self.url_prefix = url_prefix
        self.permissions = {"read": True, "write": True, "delete": False}
        self.file_info = {}
        self.contents = {}
        self.processed = []

    def get_public_url(self, file, relative_to_current_script=False):
        if relative_to_current_script:
            return file.identifier.lstrip("/")
        return f"{self.url_prefix}{file.identifier}"

    def check_file_action_permission(self, action, file):
        return self.permissions.get(action, False)

    def get_file_info(self, file):
        return dict(self.file_info)

    def get_file_contents(self, file):
        return self.contents.get(file.identifier, b"")

    def set_file_contents(self, file, contents):
        self.contents[file.identifier] = contents
        return len(contents)

    def process_file(self, file, task_type, configuration):
        self.processed.append((file, task_type, configuration))
        return {"task_type": task_type, "configuration": configuration}


class CountingIndexStore:
    """Index store that counts lookups"""

    def __init__(self):
        self.records = {}
        self.lookups = []
        self.error = None

    def find_one_by_combined_identifier(self, combined_identifier):
        self.lookups.append(combined_identifier)
        if self.error is not None:
            raise self.error
        record = self.records.get(combined_identifier)
        return dict(record) if record is not None else None


class FakeMetaDataStore:
    def __init__(self):
        self.metadata = {}
        self.calls = []
        self.callback = None

    def find_by_file(self, file):
        uid = int(file.get_raw_property("uid") or 0)
        self.calls.append(uid)
        if self.callback is not None:
            self.callback(file)
        return dict(self.metadata.get(uid, {}))


class FakeIndexer:
    """Indexer that hands out uids and stores the record in the index store"""

    def __init__(self, index_store: CountingIndexStore, first_uid: int = 100):
        self.index_store = index_store
        self.calls = []
        self.callback = None
        self.size = 0
        self._uids = count(first_uid)

    def index_file(self, file, extract_metadata_now=True):
        combined_identifier = file.get_combined_identifier()
        self.calls.append((combined_identifier, extract_metadata_now))
        if self.callback is not None:
            self.callback(file)
        record = {
            "uid": next(self._uids),
            "identifier": file.identifier,
            "name": file.name,
            "size": self.size,
        }
        self.index_store.records[combined_identifier] = record
        return dict(record)


class FakeStorageFactory:
    def __init__(self, storages):
        self.storages = {storage.uid: storage for storage in storages}
        self.requested = []

    def get_storage_object(self, uid):
        self.requested.append(uid)
        return self.storages[int(uid)]


class FakeFileEnvironment:
    """A FileRecord builder wired to fakes"""

    def __init__(self):
        self.storage = FakeStorage(uid=1)
        self.other_storage = FakeStorage(uid=2, url_prefix="https://other.example.org")
        self.index_store = CountingIndexStore()
        self.metadata_store = FakeMetaDataStore()
        self.indexer = FakeIndexer(self.index_store)
        self.storage_factory = FakeStorageFactory([self.storage, self.other_storage])

    def make_file(self, **file_data) -> FileRecord:
        data = {"identifier": "/a.txt", "name": "a.txt"}
        data.update(file_data)
        return FileRecord.create(
            data,
            self.storage,
            index_repository=self.index_store,
            metadata_repository=self.metadata_store,
            indexer=self.indexer,
            storage_factory=self.storage_factory,
            encryption_key=TEST_ENCRYPTION_KEY,
        )


@pytest.fixture(name="env")
def env_fixture():
    """Provide FileRecord fakes"""
    return FakeFileEnvironment()


# ============================================================================
# S3 mock
# ============================================================================


class MockS3Paginator:
    """Mock S3 paginator for list_objects_v2"""

    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket: str, Prefix: str = "", Delimiter: str | None = None):
        """Return a single mock page"""
        self.client.check_error("ListObjectsV2")

        contents = []
        common_prefixes = set()
        for (bucket, key), obj in sorted(self.client.objects.items()):
            if bucket != Bucket or not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common_prefixes.add(Prefix + rest.split(Delimiter, 1)[0] + Delimiter)
                continue
            contents.append(
                {"Key": key, "LastModified": obj["LastModified"], "Size": len(obj["Body"])}
            )

        page = {}
        if contents:
            page["Contents"] = contents
        if common_prefixes:
            page["CommonPrefixes"] = [{"Prefix": p} for p in sorted(common_prefixes)]
        yield page


class MockS3Client:
    """Mock S3 client for testing"""

    LAST_MODIFIED = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self):
        self.objects = {}  # {(bucket, key): {"Body": bytes, "ContentType": str, "LastModified": datetime}}
        self.error_mode = None  # For simulating errors

    def simulate_error(self, error_type: str):
        """
        Configure client to raise specific errors

        Args:
            error_type: One of "NoSuchBucket", "AccessDenied", "NoCredentialsError"
        """
        self.error_mode = error_type

    def check_error(self, operation: str):
        if self.error_mode == "NoSuchBucket":
            raise ClientError(
                {"Error": {"Code": "NoSuchBucket", "Message": "The specified bucket does not exist"}},
                operation,
            )
        elif self.error_mode == "AccessDenied":
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                operation,
            )
        elif self.error_mode == "NoCredentialsError":
            raise NoCredentialsError()

    def _get(self, bucket: str, key: str, operation: str, missing_code: str = "NoSuchKey"):
        self.check_error(operation)
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ClientError(
                {"Error": {"Code": missing_code, "Message": "Not Found"}}, operation
            ) from None

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str | None = None):
        self.check_error("PutObject")
        self.objects[(Bucket, Key)] = {
            "Body": Body,
            "ContentType": ContentType or "binary/octet-stream",
            "LastModified": self.LAST_MODIFIED,
        }
        return {"ETag": '"mock"'}

    def get_object(self, Bucket: str, Key: str):
        obj = self._get(Bucket, Key, "GetObject")
        return {
            "Body": BytesIO(obj["Body"]),
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
        }

    def head_object(self, Bucket: str, Key: str):
        obj = self._get(Bucket, Key, "HeadObject", missing_code="404")
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "LastModified": obj["LastModified"],
        }

    def delete_object(self, Bucket: str, Key: str):
        self.check_error("DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def copy_object(self, Bucket: str, Key: str, CopySource: dict):
        source = self._get(CopySource["Bucket"], CopySource["Key"], "CopyObject")
        self.objects[(Bucket, Key)] = dict(source)
        return {}

    def generate_presigned_url(self, ClientMethod: str, Params: dict, ExpiresIn: int = 3600):
        return (
            f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=mock"
        )

    def get_paginator(self, operation: str):
        """Return a mock paginator"""
        if operation == "list_objects_v2":
            return MockS3Paginator(self)
        raise NotImplementedError(f"Paginator for {operation} not implemented")


# ============================================================================
# Database, storages and API client
# ============================================================================


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="test_settings")
def test_settings_fixture():
    return InMemoryDbSettings()


@pytest.fixture(name="storage_root")
def storage_root_fixture(tmp_path):
    """A local storage directory with a few files"""
    root = tmp_path / "fileadmin"
    (root / "docs").mkdir(parents=True)
    (root / "images").mkdir()
    (root / "docs" / "readme.txt").write_text("Read me first")
    (root / "docs" / "notes.txt").write_text("Some notes")
    (root / "images" / "logo.png").write_bytes(b"\x89PNG fake image")
    return root


@pytest.fixture(name="local_storage")
def local_storage_fixture(session: Session, storage_root):
    storage = StorageRecord(
        name="fileadmin",
        driver=StorageBackend.LOCAL,
        base_uri=str(storage_root),
        public_base_url="https://example.org/fileadmin",
    )
    session.add(storage)
    session.commit()
    session.refresh(storage)
    return storage


@pytest.fixture(name="s3_storage")
def s3_storage_fixture(session: Session, mock_s3_client: MockS3Client):
    mock_s3_client.put_object(
        Bucket="test-bucket", Key="media/reports/q1.pdf", Body=b"%PDF-1.4 q1", ContentType="application/pdf"
    )
    storage = StorageRecord(
        name="media",
        driver=StorageBackend.S3,
        base_uri="s3://test-bucket/media",
        is_public=False,
    )
    session.add(storage)
    session.commit()
    session.refresh(storage)
    return storage


@pytest.fixture(name="factory")
def factory_fixture(session: Session, test_settings, mock_s3_client: MockS3Client):
    return ResourceFactory(session, test_settings, s3_client=mock_s3_client)


@pytest.fixture(name="client")
def client_fixture(session: Session, mock_s3_client: MockS3Client):
    def get_db_override():
        return session

    def get_s3_client_override():
        return mock_s3_client

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_s3_client] = get_s3_client_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
