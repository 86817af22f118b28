"""Raw file storage for uploaded documents."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from ...config import settings
from ...utils.supabase_client import SupabaseRestClient

logger = logging.getLogger(__name__)


def build_storage_path(tenant_id: str, extension: str) -> str:
    """Unique object key: ``{tenant}/{timestamp_ms}-{uuid}{.ext}``."""
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{tenant_id}/{int(time.time() * 1000)}-{uuid.uuid4()}{extension}"


class BlobStorage(ABC):
    """Object storage for original uploads."""

    @abstractmethod
    async def put(self, path: str, content: bytes, content_type: str) -> str:
        """Store content at path and return the stored path."""
        pass

    @abstractmethod
    async def get(self, path: str) -> bytes:
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        pass


class SupabaseBlobStorage(BlobStorage):
    """Blob storage in a Supabase Storage bucket."""

    def __init__(self, rest_client: SupabaseRestClient, bucket: Optional[str] = None):
        self.rest_client = rest_client
        self.bucket = bucket or settings.storage.bucket

    async def put(self, path: str, content: bytes, content_type: str) -> str:
        return await self.rest_client.upload_file(self.bucket, path, content, content_type)

    async def get(self, path: str) -> bytes:
        return await self.rest_client.download_file(self.bucket, path)

    async def delete(self, path: str) -> None:
        await self.rest_client.remove_file(self.bucket, path)
