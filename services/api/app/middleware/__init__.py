"""API middleware: per-tenant request timing."""

from .performance import PerformanceMiddleware, tenant_from_path

__all__ = ["PerformanceMiddleware", "tenant_from_path"]
