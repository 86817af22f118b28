"""Per-tenant defaults for embedding and chunking.

Tenant management lives outside this package; it plugs in by implementing
TenantConfigProvider. StaticTenantConfig serves the same defaults to every
tenant from settings.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .config import settings
from .ingestion.models import EmbeddingConfig


class TenantConfigProvider(ABC):
    """Source of a tenant's default embedding config and chunking overrides."""

    @abstractmethod
    async def get_embedding_config(self, tenant_id: str) -> EmbeddingConfig:
        pass

    @abstractmethod
    async def get_chunking_strategy(self, tenant_id: str) -> Optional[Mapping[str, Any]]:
        """Partial chunking overrides, or None for the built-in defaults."""
        pass


class StaticTenantConfig(TenantConfigProvider):
    """Same configuration for every tenant."""

    def __init__(
        self,
        embedding_config: Optional[EmbeddingConfig] = None,
        chunking_strategy: Optional[Dict[str, Any]] = None,
    ):
        self.embedding_config = embedding_config or EmbeddingConfig(
            model=settings.embedding.model, dimensions=settings.embedding.dimensions
        )
        self.chunking_strategy = chunking_strategy

    async def get_embedding_config(self, tenant_id: str) -> EmbeddingConfig:
        return self.embedding_config

    async def get_chunking_strategy(self, tenant_id: str) -> Optional[Mapping[str, Any]]:
        return self.chunking_strategy
