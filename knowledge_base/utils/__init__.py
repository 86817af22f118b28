"""
Shared utilities for the knowledge base packages.
"""

from .supabase_client import SupabaseRestClient, to_pgvector

__all__ = [
    "SupabaseRestClient",
    "to_pgvector",
]
