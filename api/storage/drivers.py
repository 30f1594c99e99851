"""
Storage drivers for local directories and S3 buckets.

Drivers only know identifiers ("/folder/file.txt", always relative to the
storage's base location); they know nothing about index records.
"""

import hashlib
import mimetypes
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from urllib.parse import quote, urlparse

from fastapi import HTTPException, status

from botocore.exceptions import NoCredentialsError, ClientError

from api.files.models import FileBrowserData, FileBrowserFile, FileBrowserFolder

# Derived files live below this folder and are never indexed
PROCESSED_FOLDER = "/_processed_/"

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def normalize_identifier(identifier: str) -> str:
    """Identifiers always start with a single slash"""
    return "/" + identifier.lstrip("/")


def _validate_file_name(name: str):
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file name: {name}",
        )


def _parse_s3_path(s3_path: str) -> tuple[str, str]:
    """Parse S3 path into bucket and prefix"""
    if not s3_path.startswith("s3://"):
        raise ValueError("Invalid S3 path format. Must start with s3://")

    # Remove s3:// prefix
    path_without_scheme = s3_path[5:]

    # Check for empty path after s3://
    if not path_without_scheme:
        raise ValueError("Invalid S3 path format. Bucket name is required")

    # Check for leading slash (s3:///)
    if path_without_scheme.startswith("/"):
        raise ValueError("Invalid S3 path format. Bucket name cannot start with /")

    # Check for double slashes anywhere in the path
    if "//" in path_without_scheme:
        raise ValueError("Invalid S3 path format. Path cannot contain double slashes")

    # Split into bucket and key
    if "/" in path_without_scheme:
        bucket, key = path_without_scheme.split("/", 1)
    else:
        bucket = path_without_scheme
        key = ""

    return bucket, key


class LocalDriver:
    """Files below a directory of the local filesystem"""

    def __init__(self, base_path: str, public_base_url: str | None = None):
        self.base_path = Path(base_path).resolve()
        self.public_base_url = public_base_url

    def _resolve(self, identifier: str) -> Path:
        path = (self.base_path / identifier.lstrip("/")).resolve()

        # Security check: ensure the resolved path is within the storage root
        try:
            path.relative_to(self.base_path)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied: path escapes storage root",
            ) from exc
        return path

    def _existing_file(self, identifier: str) -> Path:
        path = self._resolve(identifier)
        if not path.is_file():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"File not found: {identifier}",
            )
        return path

    def _to_identifier(self, path: Path) -> str:
        return normalize_identifier(path.relative_to(self.base_path).as_posix())

    def file_exists(self, identifier: str) -> bool:
        return self._resolve(identifier).is_file()

    def get_file_contents(self, identifier: str) -> bytes:
        return self._existing_file(identifier).read_bytes()

    def set_file_contents(self, identifier: str, contents: bytes) -> int:
        path = self._resolve(identifier)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(contents)
        return len(contents)

    def delete_file(self, identifier: str):
        self._existing_file(identifier).unlink()

    def rename_file(self, identifier: str, new_name: str) -> str:
        _validate_file_name(new_name)
        path = self._existing_file(identifier)
        target = path.with_name(new_name)
        if target.exists():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Target already exists: {new_name}",
            )
        path.rename(target)
        return self._to_identifier(target)

    def hash_file(self, identifier: str, algorithm: str = "sha1") -> str:
        return hashlib.new(algorithm, self.get_file_contents(identifier)).hexdigest()

    def get_file_info(self, identifier: str) -> dict:
        path = self._existing_file(identifier)
        stat = path.stat()
        return {
            "name": path.name,
            "identifier": self._to_identifier(path),
            "size": stat.st_size,
            "mime_type": guess_mime_type(path.name),
            "creation_date": int(stat.st_ctime),
            "modification_date": int(stat.st_mtime),
        }

    def get_public_url(self, identifier: str, relative: bool = False) -> str | None:
        if not self.public_base_url:
            return None
        url = self.public_base_url.rstrip("/") + quote(normalize_identifier(identifier))
        if relative:
            return urlparse(url).path.lstrip("/")
        return url

    def list_folder(self, folder: str = "/") -> FileBrowserData:
        """List files and folders directly below `folder`"""
        directory_path = self._resolve(folder)

        if not directory_path.exists():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Directory not found: {folder}",
            )

        if not directory_path.is_dir():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Path is not a directory: {folder}",
            )

        folders = []
        files = []

        try:
            for item in directory_path.iterdir():
                stat = item.stat()
                mod_time = datetime.fromtimestamp(stat.st_mtime)
                date_str = mod_time.strftime("%Y-%m-%d %H:%M:%S")

                if item.is_dir():
                    folders.append(FileBrowserFolder(name=item.name, date=date_str))
                else:
                    files.append(
                        FileBrowserFile(name=item.name, date=date_str, size=stat.st_size)
                    )

        except PermissionError as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied accessing directory: {folder}",
            ) from exc

        # Sort folders and files by name
        folders.sort(key=lambda x: x.name.lower())
        files.sort(key=lambda x: x.name.lower())

        return FileBrowserData(folders=folders, files=files)

    def walk_files(self):
        """Yield the identifiers of all files in the storage"""
        for path in sorted(self.base_path.rglob("*")):
            if not path.is_file():
                continue
            identifier = self._to_identifier(path)
            if not identifier.startswith(PROCESSED_FOLDER):
                yield identifier


class S3Driver:
    """Objects below a bucket prefix"""

    def __init__(
        self,
        base_uri: str,
        s3_client,
        public_base_url: str | None = None,
        is_public: bool = False,
    ):
        try:
            self.bucket, prefix = _parse_s3_path(base_uri)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e
        self.prefix = prefix.rstrip("/") + "/" if prefix else ""
        self.s3_client = s3_client
        self.public_base_url = public_base_url
        self.is_public = is_public

    def _key(self, identifier: str) -> str:
        return self.prefix + identifier.lstrip("/")

    def _to_identifier(self, key: str) -> str:
        return normalize_identifier(key[len(self.prefix):])

    @contextmanager
    def _s3_errors(self, identifier: str = ""):
        """Map boto errors onto HTTP errors"""
        try:
            yield
        except NoCredentialsError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="AWS credentials not found. Please configure AWS credentials.",
            ) from exc
        except ClientError as exc:
            error_code = exc.response["Error"]["Code"]
            if error_code == "NoSuchBucket":
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"S3 bucket not found: {self.bucket}",
                ) from exc
            elif error_code in ("NoSuchKey", "404", "NotFound"):
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"File not found: {identifier}",
                ) from exc
            elif error_code in ("AccessDenied", "403"):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Access denied to S3 bucket: {self.bucket}",
                ) from exc
            else:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"S3 error: {exc.response['Error']['Message']}",
                ) from exc

    def file_exists(self, identifier: str) -> bool:
        with self._s3_errors(identifier):
            try:
                self.s3_client.head_object(Bucket=self.bucket, Key=self._key(identifier))
            except ClientError as exc:
                if exc.response["Error"]["Code"] in ("NoSuchKey", "404", "NotFound"):
                    return False
                raise
        return True

    def get_file_contents(self, identifier: str) -> bytes:
        with self._s3_errors(identifier):
            response = self.s3_client.get_object(Bucket=self.bucket, Key=self._key(identifier))
            return response["Body"].read()

    def set_file_contents(self, identifier: str, contents: bytes) -> int:
        with self._s3_errors(identifier):
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self._key(identifier),
                Body=contents,
                ContentType=guess_mime_type(identifier),
            )
        return len(contents)

    def delete_file(self, identifier: str):
        with self._s3_errors(identifier):
            self.s3_client.delete_object(Bucket=self.bucket, Key=self._key(identifier))

    def rename_file(self, identifier: str, new_name: str) -> str:
        _validate_file_name(new_name)
        parent = identifier.rsplit("/", 1)[0]
        new_identifier = normalize_identifier(f"{parent}/{new_name}")
        if self.file_exists(new_identifier):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Target already exists: {new_name}",
            )
        with self._s3_errors(identifier):
            self.s3_client.copy_object(
                Bucket=self.bucket,
                Key=self._key(new_identifier),
                CopySource={"Bucket": self.bucket, "Key": self._key(identifier)},
            )
            self.s3_client.delete_object(Bucket=self.bucket, Key=self._key(identifier))
        return new_identifier

    def hash_file(self, identifier: str, algorithm: str = "sha1") -> str:
        return hashlib.new(algorithm, self.get_file_contents(identifier)).hexdigest()

    def get_file_info(self, identifier: str) -> dict:
        with self._s3_errors(identifier):
            head = self.s3_client.head_object(Bucket=self.bucket, Key=self._key(identifier))
        name = identifier.rsplit("/", 1)[-1]
        modified = int(head["LastModified"].timestamp())
        return {
            "name": name,
            "identifier": normalize_identifier(identifier),
            "size": head["ContentLength"],
            "mime_type": head.get("ContentType") or guess_mime_type(name),
            # S3 keeps no creation time
            "creation_date": modified,
            "modification_date": modified,
        }

    def get_public_url(self, identifier: str, relative: bool = False) -> str | None:
        key = self._key(identifier)
        if self.public_base_url:
            return self.public_base_url.rstrip("/") + quote(normalize_identifier(identifier))
        if self.is_public:
            return f"https://{self.bucket}.s3.amazonaws.com/{quote(key)}"
        with self._s3_errors(identifier):
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=3600,
            )

    def list_folder(self, folder: str = "/") -> FileBrowserData:
        """List files and "folders" (common prefixes) directly below `folder`"""
        prefix = self._key(folder)
        if prefix and not prefix.endswith("/"):
            prefix += "/"

        folders = []
        files = []

        with self._s3_errors(folder):
            paginator = self.s3_client.get_paginator("list_objects_v2")
            page_iterator = paginator.paginate(
                Bucket=self.bucket, Prefix=prefix, Delimiter="/"
            )

            for page in page_iterator:
                for common_prefix in page.get("CommonPrefixes", []):
                    folder_name = common_prefix["Prefix"][len(prefix):].rstrip("/")
                    if folder_name:
                        folders.append(
                            FileBrowserFolder(
                                name=folder_name,
                                date="",  # S3 prefixes don't have modification dates
                            )
                        )

                for obj in page.get("Contents", []):
                    file_name = obj["Key"][len(prefix):]
                    # Skip the directory marker and objects in subdirectories
                    if not file_name or "/" in file_name:
                        continue
                    date_str = obj["LastModified"].strftime("%Y-%m-%d %H:%M:%S")
                    files.append(
                        FileBrowserFile(name=file_name, date=date_str, size=obj["Size"])
                    )

        folders.sort(key=lambda x: x.name.lower())
        files.sort(key=lambda x: x.name.lower())

        return FileBrowserData(folders=folders, files=files)

    def walk_files(self):
        """Yield the identifiers of all objects in the storage"""
        with self._s3_errors():
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
                for obj in page.get("Contents", []):
                    if obj["Key"].endswith("/"):
                        continue
                    identifier = self._to_identifier(obj["Key"])
                    if not identifier.startswith(PROCESSED_FOLDER):
                        yield identifier
