"""
Supabase REST API client for database and storage operations.

Uses the Supabase Python SDK (HTTPS) for PostgREST tables, pgvector RPC
functions and Storage buckets.

Features:
    - REST API access to Supabase PostgreSQL
    - Vector similarity search via pgvector RPC
    - File storage in a Supabase Storage bucket
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from knowledge_base.config import settings

logger = logging.getLogger(__name__)


def to_pgvector(embedding: List[float]) -> str:
    """PostgreSQL vector literal for Supabase."""
    return "[" + ",".join(map(str, embedding)) + "]"


class SupabaseRestClient:
    """
    REST API client for Supabase using official Python SDK.
    Works around network restrictions by using HTTPS instead of PostgreSQL protocol.
    """

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        """Initialize Supabase client.

        Args:
            url: Project URL (default from settings)
            key: Service role key (default from settings)
        """
        self.url = url or settings.storage.supabase_url
        self.key = key or settings.storage.supabase_key

        if not self.url:
            raise ValueError("SUPABASE_URL environment variable not set")
        if not self.key:
            raise ValueError("SUPABASE_SERVICE_KEY environment variable not set")

        self.client: Client = create_client(self.url, self.key)
        logger.info("Supabase REST client initialized")

    async def initialize(self):
        """Initialize client (compatibility with lifespan handlers)."""
        logger.info("Supabase REST client ready")

    async def close(self):
        """Close client (compatibility with lifespan handlers)."""
        logger.info("Supabase REST client closed")

    def table(self, name: str):
        return self.client.table(name)

    async def execute_rpc(self, function_name: str, params: Dict[str, Any]) -> Any:
        """
        Execute a Supabase RPC function.

        Args:
            function_name: Name of the PostgreSQL function
            params: Parameters to pass to the function

        Returns:
            Function result rows
        """
        try:
            response = self.client.rpc(function_name, params).execute()
            return response.data
        except Exception as e:
            logger.error(f"Error executing RPC {function_name}: {e}")
            raise

    async def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Upload bytes to a storage bucket and return the object path."""
        try:
            self.client.storage.from_(bucket).upload(
                path, content, {"content-type": content_type}
            )
            logger.debug(f"Uploaded {len(content)} bytes to {bucket}/{path}")
            return path
        except Exception as e:
            logger.error(f"Error uploading {path} to {bucket}: {e}")
            raise

    async def download_file(self, bucket: str, path: str) -> bytes:
        try:
            return self.client.storage.from_(bucket).download(path)
        except Exception as e:
            logger.error(f"Error downloading {bucket}/{path}: {e}")
            raise

    async def remove_file(self, bucket: str, path: str) -> None:
        try:
            self.client.storage.from_(bucket).remove([path])
            logger.debug(f"Removed {bucket}/{path}")
        except Exception as e:
            logger.error(f"Error removing {bucket}/{path}: {e}")
            raise
