"""
Google Cloud Storage Object Store

google-cloud-storage adapter for one GCS bucket.

The credentials file is located and loaded explicitly on every construction.
Relying on application default credentials alone would let a client built
before the file existed keep failing after it appears, so a fresh store is
built for each readiness attempt.

Author: Bucket Mover Project
License: MIT
"""

import os
import re
from pathlib import Path
from typing import Iterator, Optional

import google.auth
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

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

DEFAULT_ADC_PATH = "~/.config/gcloud/application_default_credentials.json"
CREDENTIALS_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"
BUCKET_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._\-]{1,220}[a-z0-9]$")

_SERVICE_ERRORS = (api_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)
_AUTH_ERRORS = (
    api_exceptions.Forbidden,
    api_exceptions.Unauthorized,
    auth_exceptions.RefreshError,
    auth_exceptions.TransportError,
    auth_exceptions.DefaultCredentialsError,
)


def resolve_credentials_path(configured: Optional[str] = None) -> Path:
    """
    Work out where the GCP credentials file should be.

    Order: explicit configuration, ``GOOGLE_APPLICATION_CREDENTIALS``, then
    the gcloud application default credentials location.

    Args:
        configured: Path from the configuration file, if any

    Returns:
        Absolute, user-expanded path

    Raises:
        ConfigError: If the path cannot be expanded
    """
    raw = configured or os.getenv(CREDENTIALS_ENV_VAR) or DEFAULT_ADC_PATH
    expanded = os.path.expanduser(raw)
    if expanded.startswith("~"):
        raise ConfigError(f"failed to build path for application_default_credentials: {raw}")
    return Path(expanded)


class _GCSWriter(ObjectWriter):
    """Wraps a resumable BlobWriter; the object is finalized on commit."""

    def __init__(self, store: "GCSObjectStore", key: str, blob_writer):
        super().__init__(key)
        self._store = store
        self._blob_writer = blob_writer

    def write(self, data: bytes) -> int:
        try:
            return self._blob_writer.write(data)
        except _SERVICE_ERRORS as e:
            raise WriteError(
                f"failed to write {self.key}: {e}", key=self.key, store=self._store.name, cause=e
            )

    def _commit(self) -> None:
        try:
            self._blob_writer.close()
        except _SERVICE_ERRORS as e:
            raise WriteError(
                f"failed to finalize {self.key}: {e}", key=self.key, store=self._store.name, cause=e
            )

    def _discard(self) -> None:
        # close() (also reached from __del__) would finalize the upload;
        # terminate() cancels the resumable session and closes the buffer.
        try:
            self._blob_writer.terminate()
        except _SERVICE_ERRORS as e:
            logger.warning(f"Failed to cancel upload of {self.key}: {e}")


class GCSObjectStore(ObjectStore):
    """GCS bucket handle."""

    def __init__(
        self,
        bucket_name: str,
        project: Optional[str] = None,
        credentials_path: Optional[str] = None,
        name: str = "gcp",
        client=None
    ):
        """
        Initialize GCS store.

        Args:
            bucket_name: GCS bucket name
            project: GCP project (defaults to the one in the credentials file)
            credentials_path: Credentials file location override
            name: Label used in logs and views
            client: Pre-built storage client (tests)

        Raises:
            ConfigError: Bucket name empty or malformed, or credentials path unusable
            CredentialNotYetAvailable: Credentials file missing or not loadable yet
        """
        if not bucket_name:
            raise ConfigError("GCS bucket name must not be empty")
        if not BUCKET_NAME_RE.match(bucket_name):
            raise ConfigError(f"invalid GCS bucket name: {bucket_name}")
        super().__init__(name, bucket_name)

        if client is None:
            client = self._build_client(project, credentials_path)
        self.client = client
        self.bucket = client.bucket(bucket_name)

    @staticmethod
    def _build_client(project: Optional[str], credentials_path: Optional[str]):
        path = resolve_credentials_path(credentials_path)
        if not path.exists():
            raise CredentialNotYetAvailable(f"waiting for gcp credentials file: {path}")

        try:
            credentials, file_project = google.auth.load_credentials_from_file(str(path))
            return storage.Client(project=project or file_project, credentials=credentials)
        except auth_exceptions.DefaultCredentialsError as e:
            raise CredentialNotYetAvailable(f"waiting for gcp bucket handle: {e}")
        except OSError as e:
            raise CredentialNotYetAvailable(f"waiting for gcp credentials file: {e}")

    def list(self) -> Iterator[ObjectRecord]:
        try:
            for blob in self.client.list_blobs(self.bucket_name):
                yield ObjectRecord(key=blob.name, store=self)
        except _SERVICE_ERRORS as e:
            raise ListError(f"failed to list gs://{self.bucket_name}: {e}", store=self.name, cause=e)

    def open_reader(self, key: str):
        try:
            blob = self.bucket.get_blob(key)
            if blob is None:
                raise NotFound(f"object not found: {key}", key=key, store=self.name)
            return blob.open("rb")
        except api_exceptions.NotFound as e:
            raise NotFound(f"object not found: {key}", key=key, store=self.name, cause=e)
        except _SERVICE_ERRORS as e:
            raise ReadError(f"failed to open {key}: {e}", key=key, store=self.name, cause=e)

    def open_writer(self, key: str) -> ObjectWriter:
        try:
            blob_writer = self.bucket.blob(key).open("wb")
        except _SERVICE_ERRORS as e:
            raise WriteError(f"failed to open {key}: {e}", key=key, store=self.name, cause=e)
        return _GCSWriter(self, key, blob_writer)

    def delete(self, key: str) -> None:
        try:
            self.bucket.blob(key).delete()
        except api_exceptions.NotFound as e:
            raise NotFound(f"object not found: {key}", key=key, store=self.name, cause=e)
        except _SERVICE_ERRORS as e:
            raise DeleteError(f"failed to delete {key}: {e}", key=key, store=self.name, cause=e)

    def check_reachable(self) -> bool:
        try:
            exists = self.bucket.exists()
        except api_exceptions.BadRequest as e:
            raise ConfigError(f"bucket gs://{self.bucket_name} rejected: {e}", cause=e)
        except _AUTH_ERRORS as e:
            raise CredentialNotYetAvailable(f"bucket gs://{self.bucket_name} not accessible: {e}")
        except _SERVICE_ERRORS as e:
            raise CredentialNotYetAvailable(f"bucket gs://{self.bucket_name} not reachable: {e}")
        if not exists:
            raise ConfigError(f"bucket gs://{self.bucket_name} does not exist")
        return True

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            close()
