"""
Repositories Layer
Data persistence for the Telegram messaging pipeline.
"""
from .connection import db_manager, get_database, DatabaseManager
from .base import BaseRepository
from .idempotency import (
    IdempotencyGuard,
    InMemoryIdempotencyGuard,
    MongoIdempotencyRepository,
    ProcessedUpdate,
)

__all__ = [
    "db_manager",
    "get_database",
    "DatabaseManager",
    "BaseRepository",
    "IdempotencyGuard",
    "InMemoryIdempotencyGuard",
    "MongoIdempotencyRepository",
    "ProcessedUpdate",
]
