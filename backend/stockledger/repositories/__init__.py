# Repositories module

from stockledger.repositories.interfaces import (
    AcknowledgementRepository,
    AuditRepository,
    MovementRepository,
    ProductRepository,
    ReservationRepository,
    SaleRepository,
    Store,
)
from stockledger.repositories.memory import MemoryStore
from stockledger.repositories.sql import SqlStore

__all__ = [
    "AcknowledgementRepository",
    "AuditRepository",
    "MovementRepository",
    "ProductRepository",
    "ReservationRepository",
    "SaleRepository",
    "Store",
    "MemoryStore",
    "SqlStore",
]
