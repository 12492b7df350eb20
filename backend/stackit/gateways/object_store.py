"""
StackIt Backend — Object Store Gateway
========================================

What:  Uploads question attachments and returns a durable public URL.
How:   `classify_mime_type()` maps a declared MIME type to a resource kind
       (image / video / raw). `ObjectStore.upload()` takes the bytes and
       the kind and returns the retrieval URL.

Implementations:
    - CloudinaryObjectStore: one unsigned multipart POST per file to
      {base}/{cloud}/{kind}/upload. The response field `secure_url` is the
      only part of the reply the caller depends on.
    - LocalObjectStore: writes into STORAGE_ROOT/YYYY/MM/DD/<uuid><ext> and
      returns a URL served by GET /api/files/{path}. For development and
      single-host deployments.

MIME policy (shared with the composer's validation):
    image/*                               → image
    video/*                               → video
    application/pdf, text/*, application/json → raw
    anything else                         → not accepted
"""

import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import aiofiles
import httpx

from stackit.exceptions import BackendCallError, ValidationError

logger = logging.getLogger(__name__)

IMAGE = "image"
VIDEO = "video"
RAW = "raw"

RESOURCE_KINDS = (IMAGE, VIDEO, RAW)

RAW_MIME_TYPES = {"application/pdf", "application/json"}


def classify_mime_type(content_type: Optional[str]) -> Optional[str]:
    """Return the upload resource kind for a MIME type, or None if not allowed."""
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime.startswith("image/"):
        return IMAGE
    if mime.startswith("video/"):
        return VIDEO
    if mime in RAW_MIME_TYPES or mime.startswith("text/"):
        return RAW
    return None


class ObjectStore(ABC):
    """Abstract binary-file host."""

    name: str = "object_store"

    @abstractmethod
    async def upload(self, filename: str, content: bytes, content_type: str, kind: str) -> str:
        """
        Store one file and return its public URL.

        Raises:
            BackendCallError: the upload failed or the host returned no URL.
        """
        ...


class CloudinaryObjectStore(ObjectStore):
    """
    Cloudinary unsigned-upload client.

    A shared httpx.AsyncClient can be injected (tests pass one built on
    httpx.MockTransport); otherwise a client is opened per upload. No
    client-side timeout override and no retries: httpx defaults apply.
    """

    name = "cloudinary"

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        base_url: str = "https://api.cloudinary.com/v1_1",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    def upload_url(self, kind: str) -> str:
        return f"{self.base_url}/{self.cloud_name}/{kind}/upload"

    async def upload(self, filename: str, content: bytes, content_type: str, kind: str) -> str:
        if kind not in RESOURCE_KINDS:
            raise ValidationError(message=f"Unsupported resource kind '{kind}'", field="files")

        data = {"upload_preset": self.upload_preset}
        if kind == RAW:
            data["resource_type"] = RAW
        files = {"file": (filename, content, content_type)}

        try:
            async with self._client() as client:
                response = await client.post(self.upload_url(kind), data=data, files=files)
            response.raise_for_status()
            secure_url = response.json().get("secure_url")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Cloudinary %s upload failed for %s: %s", kind, filename, str(e))
            raise BackendCallError(
                message="File upload failed. Please try again.",
                service="object_store",
                context={"filename": filename},
            )

        if not secure_url:
            logger.error("Cloudinary response for %s had no secure_url", filename)
            raise BackendCallError(
                message="File upload failed. Please try again.",
                service="object_store",
                context={"filename": filename},
            )

        logger.info("Uploaded %s (%d bytes) as %s", filename, len(content), kind)
        return secure_url


class LocalObjectStore(ObjectStore):
    """
    Stores files on the local disk in date-organized directories.

    Directory Structure:
        storage/
        └── 2026/
            └── 10/
                └── 19/
                    ├── a1b2c3d4-....png
                    └── e5f6a7b8-....pdf

    File names are UUIDs (no user input reaches the path).
    """

    name = "local"

    def __init__(self, storage_root: str, public_base_url: str):
        self.storage_root = Path(storage_root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalObjectStore initialized with storage_root=%s", self.storage_root)

    @staticmethod
    def _extension(filename: str, content_type: str) -> str:
        ext = Path(filename).suffix.lower()
        if ext:
            return ext
        return mimetypes.guess_extension(content_type.split(";", 1)[0].strip()) or ""

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """Creates a YYYY/MM/DD/<uuid><ext> path; returns (absolute, relative)."""
        now = datetime.now(timezone.utc)
        date_dir = now.strftime("%Y/%m/%d")
        relative_path = f"{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    def resolve(self, relative_path: str) -> Optional[Path]:
        """
        Map a served path back to a file, refusing anything outside the
        storage root (../ traversal). Returns None when there is no such file.
        """
        full_path = (self.storage_root / relative_path).resolve()
        if not full_path.is_relative_to(self.storage_root):
            raise ValidationError(message="Invalid file path", field="path")
        if not full_path.is_file():
            return None
        return full_path

    async def upload(self, filename: str, content: bytes, content_type: str, kind: str) -> str:
        absolute_path, relative_path = self._generate_storage_path(
            self._extension(filename, content_type)
        )
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise BackendCallError(
                message="File upload failed. Please try again.",
                service="object_store",
                context={"filename": filename},
            )

        logger.info("File stored: %s (%d bytes, %s)", relative_path, len(content), kind)
        return f"{self.public_base_url}/api/files/{relative_path}"
