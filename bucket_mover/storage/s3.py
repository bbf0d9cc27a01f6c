"""
AWS S3 Object Store

boto3 adapter for one S3 bucket. Writes are spooled locally and uploaded
when the writer is closed, so an object only appears once it is complete.

Author: Bucket Mover Project
License: MIT
"""

import re
import tempfile
from typing import Iterator, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from .base import ObjectRecord, ObjectStore, ObjectWriter
from ..core.errors import (
    ConfigError,
    CredentialNotYetAvailable,
    DeleteError,
    ListError,
    NotFound,
    ReadError,
    WriteError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

BUCKET_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")

# Objects up to this size stay in memory before the upload on close
SPOOL_MAX_SIZE = 8 * 1024 * 1024

_MISSING_KEY_CODES = {"NoSuchKey", "NotFound", "404"}
_MISSING_BUCKET_CODES = {"NoSuchBucket", "404"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> Optional[int]:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _is_missing_key(error: ClientError) -> bool:
    return _error_code(error) in _MISSING_KEY_CODES or _status_code(error) == 404


class _S3Writer(ObjectWriter):
    """Spools bytes to a temporary file and uploads them on commit."""

    def __init__(self, store: "S3ObjectStore", key: str):
        super().__init__(key)
        self._store = store
        self._spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)

    def write(self, data: bytes) -> int:
        try:
            return self._spool.write(data)
        except OSError as e:
            raise WriteError(
                f"failed to buffer {self.key}: {e}", key=self.key, store=self._store.name, cause=e
            )

    def _commit(self) -> None:
        try:
            self._spool.seek(0)
            self._store.client.upload_fileobj(self._spool, self._store.bucket_name, self.key)
        except (S3UploadFailedError, ClientError, BotoCoreError, OSError) as e:
            raise WriteError(
                f"failed to upload {self.key}: {e}", key=self.key, store=self._store.name, cause=e
            )
        finally:
            self._spool.close()

    def _discard(self) -> None:
        self._spool.close()


class S3ObjectStore(ObjectStore):
    """
    S3 bucket handle.

    The boto3 client resolves credentials lazily on the first request, so a
    fresh instance picks up credentials that appeared after a previous one
    was built.
    """

    def __init__(
        self,
        bucket_name: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        name: str = "aws",
        client=None
    ):
        """
        Initialize S3 store.

        Args:
            bucket_name: S3 bucket name
            region: AWS region of the bucket
            endpoint_url: Custom endpoint for S3-compatible services
            name: Label used in logs and views
            client: Pre-built boto3 S3 client (tests)

        Raises:
            ConfigError: If the bucket name is invalid or the client cannot be built
        """
        if not bucket_name or not BUCKET_NAME_RE.match(bucket_name):
            raise ConfigError(f"invalid S3 bucket name: {bucket_name!r}")
        super().__init__(name, bucket_name)
        self.region = region

        if client is None:
            try:
                session = boto3.session.Session(region_name=region) if region else boto3.session.Session()
                client = session.client("s3", endpoint_url=endpoint_url)
            except ValueError as e:
                raise ConfigError(f"failed to open s3://{bucket_name}: {e}", cause=e)
        self.client = client

    def list(self) -> Iterator[ObjectRecord]:
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name):
                for obj in page.get("Contents", []):
                    yield ObjectRecord(key=obj["Key"], store=self)
        except (ClientError, BotoCoreError) as e:
            raise ListError(f"failed to list s3://{self.bucket_name}: {e}", store=self.name, cause=e)

    def open_reader(self, key: str):
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _is_missing_key(e):
                raise NotFound(f"object not found: {key}", key=key, store=self.name, cause=e)
            raise ReadError(f"failed to open {key}: {e}", key=key, store=self.name, cause=e)
        except BotoCoreError as e:
            raise ReadError(f"failed to open {key}: {e}", key=key, store=self.name, cause=e)
        return response["Body"]

    def open_writer(self, key: str) -> ObjectWriter:
        return _S3Writer(self, key)

    def delete(self, key: str) -> None:
        # S3 deletes succeed for missing keys, so look first
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _is_missing_key(e):
                raise NotFound(f"object not found: {key}", key=key, store=self.name, cause=e)
            raise DeleteError(f"failed to delete {key}: {e}", key=key, store=self.name, cause=e)
        except BotoCoreError as e:
            raise DeleteError(f"failed to delete {key}: {e}", key=key, store=self.name, cause=e)

        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise DeleteError(f"failed to delete {key}: {e}", key=key, store=self.name, cause=e)

    def check_reachable(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise CredentialNotYetAvailable(f"aws credentials not available: {e}")
        except ClientError as e:
            code = _error_code(e)
            if code in _MISSING_BUCKET_CODES or _status_code(e) == 404:
                raise ConfigError(f"bucket s3://{self.bucket_name} does not exist", cause=e)
            if _status_code(e) == 301:
                raise ConfigError(
                    f"bucket s3://{self.bucket_name} is not in region {self.region}", cause=e
                )
            raise CredentialNotYetAvailable(f"bucket s3://{self.bucket_name} not accessible: {e}")
        except BotoCoreError as e:
            raise CredentialNotYetAvailable(f"bucket s3://{self.bucket_name} not reachable: {e}")
        return True

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            close()
