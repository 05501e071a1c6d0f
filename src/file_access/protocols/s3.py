"""s3:// sources backed by boto3."""

import logging
import posixpath
import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from file_access.exceptions import InvalidUriError
from file_access.listing import ListingSynthesizer
from file_access.sources.base import (
    DEFAULT_ENCODING,
    DEFAULT_MAX_READ_SIZE,
    AddressableFileSource,
    DirectoryFileSource,
    FileAccessProtocol,
    FileSource,
    ReadableFileSource,
)

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

logger = logging.getLogger(__name__)

S3_SCHEME = "s3"
_S3_URI_RE = re.compile(r"^s3://([^/]+)/?(.*)$")
_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound", "NoSuchBucket")


def s3_uri(bucket: str, key: str = "") -> str:
    return f"{S3_SCHEME}://{bucket}/{key}"


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class S3FileSource(ReadableFileSource, AddressableFileSource):
    """An object in an S3 bucket.

    Args:
        address: The original s3 URI
        bucket: The bucket
        key: The object key
        protocol: The protocol owning the boto3 client
        parent: The already-constructed source for the enclosing folder, if any
    """

    def __init__(self, address: str, bucket: str, key: str, protocol: "S3FileAccessProtocol",
                 parent: Optional["S3FolderSource"] = None, size: Optional[int] = None):
        super().__init__(address, protocol.encoding, protocol.max_read_size)
        self.bucket = bucket
        self.key = key
        self._protocol = protocol
        self._parent = parent
        self._size = size

    @property
    def scheme(self) -> str:
        return S3_SCHEME

    @property
    def name(self) -> str:
        return posixpath.basename(self.key)

    @property
    def folder(self) -> str:
        return posixpath.dirname(self.key)

    @property
    def container(self) -> str:
        return f"{S3_SCHEME}:{self.bucket}:{self.folder}"

    @property
    def exists(self) -> bool:
        try:
            self._protocol.client.head_object(Bucket=self.bucket, Key=self.key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise

    def get_parent(self) -> "S3FolderSource":
        if self._parent is None:
            prefix = f"{self.folder}/" if self.folder else ""
            self._parent = S3FolderSource(s3_uri(self.bucket, prefix), self.bucket, prefix, self._protocol)
        return self._parent

    def resolve(self, path: str) -> AddressableFileSource:
        return self.get_parent().resolve(path)

    def relativize(self, other: AddressableFileSource) -> str:
        return self.get_parent().relativize(other)

    def _get_size(self) -> int:
        response = self._protocol.client.head_object(Bucket=self.bucket, Key=self.key)
        return response["ContentLength"]

    def _read_bytes(self) -> bytes:
        response = self._protocol.client.get_object(Bucket=self.bucket, Key=self.key)
        return response["Body"].read()

    def _localize_to(self, path: Path) -> None:
        logger.debug(f"Downloading '{self.key}' from bucket '{self.bucket}' to '{path}'")
        self._protocol.client.download_file(Bucket=self.bucket, Key=self.key, Filename=str(path))


class S3FolderSource(DirectoryFileSource):
    """A key prefix in an S3 bucket, treated as a folder.

    ``prefix`` is empty for the bucket root and otherwise ends with '/'.
    """

    def __init__(self, address: str, bucket: str, prefix: str, protocol: "S3FileAccessProtocol",
                 parent: Optional["S3FolderSource"] = None):
        super().__init__(address, protocol.encoding)
        self.bucket = bucket
        self.prefix = prefix
        self._protocol = protocol
        self._parent = parent

    @property
    def scheme(self) -> str:
        return S3_SCHEME

    @property
    def name(self) -> str:
        return posixpath.basename(self.prefix.rstrip("/")) or self.bucket

    @property
    def folder(self) -> str:
        return posixpath.dirname(self.prefix.rstrip("/"))

    @property
    def container(self) -> str:
        return f"{S3_SCHEME}:{self.bucket}:{self.folder}"

    @property
    def is_directory(self) -> bool:
        return True

    @property
    def exists(self) -> bool:
        try:
            response = self._protocol.client.list_objects_v2(Bucket=self.bucket, Prefix=self.prefix, MaxKeys=1)
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise
        return response.get("KeyCount", 0) > 0

    def get_parent(self) -> Optional["S3FolderSource"]:
        if not self.prefix:
            return None
        if self._parent is None:
            prefix = f"{self.folder}/" if self.folder else ""
            self._parent = S3FolderSource(s3_uri(self.bucket, prefix), self.bucket, prefix, self._protocol)
        return self._parent

    def resolve(self, path: str) -> AddressableFileSource:
        key = posixpath.normpath(posixpath.join("/", self.prefix, path)).lstrip("/")
        if path.endswith("/"):
            prefix = f"{key}/" if key else ""
            return S3FolderSource(s3_uri(self.bucket, prefix), self.bucket, prefix, self._protocol)
        return S3FileSource(s3_uri(self.bucket, key), self.bucket, key, self._protocol)

    def relativize(self, other: AddressableFileSource) -> str:
        if isinstance(other, S3FileSource):
            target = other.key
        elif isinstance(other, S3FolderSource):
            target = other.prefix.rstrip("/")
        else:
            raise ValueError(f"not an S3 source: {other}")
        if other.bucket != self.bucket:
            raise ValueError(f"{other} is not in bucket {self.bucket}")
        rel = posixpath.relpath(target or ".", self.prefix.rstrip("/") or ".")
        return f"{rel}/" if other.is_directory else rel

    def _iter_objects(self, delimiter: Optional[str] = None) -> Iterator[Tuple[str, Optional[Dict[str, Any]]]]:
        """Yield ``(key relative to the prefix, object summary)``; common
        prefixes come back with a ``None`` summary.
        """
        paginator = self._protocol.client.get_paginator("list_objects_v2")
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": self.prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents", []):
                yield obj["Key"][len(self.prefix):], obj
            for common_prefix in page.get("CommonPrefixes", []):
                yield common_prefix["Prefix"][len(self.prefix):], None

    def _make_file(self, parent: "S3FolderSource", name: str, obj: Optional[Dict[str, Any]]) -> S3FileSource:
        key = f"{parent.prefix}{name}"
        size = obj.get("Size") if obj else None
        return S3FileSource(s3_uri(self.bucket, key), self.bucket, key, self._protocol, parent, size)

    def _make_folder(self, parent: "S3FolderSource", name: str) -> "S3FolderSource":
        prefix = f"{parent.prefix}{name}/"
        return S3FolderSource(s3_uri(self.bucket, prefix), self.bucket, prefix, self._protocol, parent)

    def _list_children(self, recursive: bool) -> List[FileSource]:
        synthesizer = ListingSynthesizer(self._make_file, self._make_folder)
        if recursive:
            return synthesizer.recursive(self, self._iter_objects())
        return synthesizer.shallow(self, self._iter_objects(delimiter="/"))

    def _localize_to(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        for rel_key, _ in self._iter_objects():
            if not rel_key or rel_key.endswith("/"):
                continue
            dest = path / rel_key
            dest.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Downloading '{self.prefix}{rel_key}' from bucket '{self.bucket}' to '{dest}'")
            self._protocol.client.download_file(
                Bucket=self.bucket, Key=f"{self.prefix}{rel_key}", Filename=str(dest)
            )


class S3FileAccessProtocol(FileAccessProtocol):
    """Resolves s3:// URIs. The boto3 client is created on first use and
    shared by every source this protocol creates.
    """

    schemes = (S3_SCHEME,)
    supports_directories = True

    def __init__(self, region_name: Optional[str] = None, endpoint_url: Optional[str] = None,
                 aws_access_key_id: Optional[str] = None, aws_secret_access_key: Optional[str] = None,
                 encoding: str = DEFAULT_ENCODING, max_read_size: int = DEFAULT_MAX_READ_SIZE,
                 client: Optional["S3Client"] = None):
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.encoding = encoding
        self.max_read_size = max_read_size
        self._client = client
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "S3FileAccessProtocol":
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            encoding=settings.encoding,
            max_read_size=settings.max_read_size,
        )

    @property
    def client(self) -> "S3Client":
        with self._lock:
            if self._client is None:
                client_kwargs: Dict[str, Any] = {"region_name": self.region_name}
                if self.endpoint_url:
                    client_kwargs["endpoint_url"] = self.endpoint_url
                if self.aws_access_key_id and self.aws_secret_access_key:
                    client_kwargs["aws_access_key_id"] = self.aws_access_key_id
                    client_kwargs["aws_secret_access_key"] = self.aws_secret_access_key
                self._client = boto3.client("s3", **client_kwargs)
                logger.debug(f"Created S3 client for region {self.region_name}")
            return self._client

    @staticmethod
    def _parse(uri: str) -> Tuple[str, str]:
        match = _S3_URI_RE.match(uri)
        if match is None:
            raise InvalidUriError(uri, "expected s3://bucket/key")
        return match.group(1), match.group(2)

    def resolve(self, address: str) -> S3FileSource:
        bucket, key = self._parse(address)
        if not key or key.endswith("/"):
            raise InvalidUriError(address, "invalid s3 file URI")
        return S3FileSource(address, bucket, key, self)

    def resolve_directory(self, address: str) -> S3FolderSource:
        bucket, key = self._parse(address)
        prefix = key if not key or key.endswith("/") else f"{key}/"
        return S3FolderSource(address, bucket, prefix, self)

    def on_exit(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
