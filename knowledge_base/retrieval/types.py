from dataclasses import dataclass, field
from typing import Optional

from .engine import RetrievalEngine


@dataclass
class KnowledgeBaseContext:
    """Agent runtime context for knowledge base search.

    The engine is shared across requests; ``last_search_sources`` is
    per-request mutable state read back after the agent run.
    """

    engine: RetrievalEngine
    tenant_id: str
    rerank: Optional[bool] = None
    last_search_sources: list = field(default_factory=list)
