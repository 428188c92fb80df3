"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends

from stockledger.core.config import settings
from stockledger.db.session import DbSession
from stockledger.repositories import MemoryStore, SqlStore
from stockledger.repositories.interfaces import Store

# Process-wide store for the "memory" backend; lives as long as the worker
_memory_store = MemoryStore()


def get_store(db: DbSession) -> Store:
    """Store for the current request, chosen by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return _memory_store
    return SqlStore(db)


StoreDep = Annotated[Store, Depends(get_store)]
