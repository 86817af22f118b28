"""
FastAPI application entry point for the Knowledge Base API.

This module initializes the FastAPI application with:
- CORS middleware for frontend communication
- Performance monitoring middleware
- API routers for tenant knowledge bases and health checks
- Lifespan management for the shared KnowledgeBaseService

Configuration is loaded from centralized settings in knowledge_base.config.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

# Add project root to path for package imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import health, tenants
from app.middleware import PerformanceMiddleware
from knowledge_base.__version__ import __version__
from knowledge_base.config import settings
from knowledge_base.service import KnowledgeBaseService
from knowledge_base.utils.supabase_client import SupabaseRestClient

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# Application State: Singleton Resources
# =============================================================================


@dataclass
class AppState:
    """Application-level singleton resources.

    - db_client: Shared Supabase client
    - service: Knowledge base service; owns the background ingestion tasks
    """

    db_client: Optional[SupabaseRestClient] = None
    service: Optional[KnowledgeBaseService] = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared resources at startup; finish in-flight ingestions at shutdown."""
    global app_state

    logger.info("Initializing knowledge base resources...")

    try:
        app_state.db_client = SupabaseRestClient()
        await app_state.db_client.initialize()

        app_state.service = KnowledgeBaseService.from_settings(app_state.db_client)
        logger.info(
            f"Knowledge base service ready (embedding model: {settings.embedding.model}, "
            f"rerank: {settings.rerank.enabled})"
        )

    except Exception as e:
        logger.error(f"Failed to initialize knowledge base resources: {e}", exc_info=True)
        raise

    yield

    logger.info("Waiting for in-flight ingestions...")

    if app_state.service:
        await app_state.service.drain()

    if app_state.db_client:
        await app_state.db_client.close()

    logger.info("Knowledge base resources cleanup complete")


logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = FastAPI(
    title="Knowledge Base API",
    description="""
## Multi-tenant knowledge base ingestion and retrieval

This API provides:
- **Documents**: Upload files for background chunking and embedding, poll status, delete
- **Search**: Tenant-scoped semantic search with optional LLM reranking
- **Health**: Liveness and readiness checks

### API Versioning
- Base path: `/api/v1`
""",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "knowledge-base", "description": "Tenant documents and search"},
        {"name": "health", "description": "Health checks and monitoring"},
    ],
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Length", "Content-Type", "X-Response-Time"],
)

app.add_middleware(
    PerformanceMiddleware,
    slow_request_threshold_ms=settings.api.slow_request_threshold_ms,
)

app.include_router(tenants.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Knowledge Base API",
        "version": __version__,
        "docs": "/docs",
        "health": {
            "liveness": "/api/v1/health/liveness",
            "readiness": "/api/v1/health/readiness",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api.host, port=settings.api.port)
