"""
Database Connection Tests
Tests for MongoDB client lifecycle and index creation.
"""
import pytest

from venuebot.repositories.connection import DatabaseManager, db_manager, get_database


pytestmark = pytest.mark.asyncio


class TestDatabaseManager:
    """Test suite for DatabaseManager singleton."""

    async def test_singleton_pattern(self):
        """DatabaseManager should return same instance."""
        assert DatabaseManager() is DatabaseManager()
        assert DatabaseManager() is db_manager

    async def test_database_requires_connection(self):
        """Accessing the database before connect() should fail loudly."""
        manager = DatabaseManager()
        await manager.disconnect()

        with pytest.raises(RuntimeError):
            _ = manager.database

    async def test_disconnect_is_idempotent(self):
        manager = DatabaseManager()

        await manager.disconnect()
        await manager.disconnect()

        assert manager._client is None
        assert manager.connected is False

    async def test_ping_requires_connection(self):
        manager = DatabaseManager()
        await manager.disconnect()

        with pytest.raises(RuntimeError):
            await manager.ping()

    async def test_create_indexes(self, mongo_db, monkeypatch):
        """Queue and idempotency collections get their indexes."""
        manager = DatabaseManager()
        monkeypatch.setattr(manager, "_database", mongo_db)

        await manager.create_indexes()
        assert await get_database() is mongo_db

        inbound = await mongo_db["telegram_inbound_updates"].index_information()
        outbox = await mongo_db["telegram_outbox"].index_information()
        processed = await mongo_db["telegram_processed_updates"].index_information()

        assert {"idx_claimable", "idx_status_processed", "idx_update_id_unique"} <= set(inbound)
        assert {"idx_claimable", "idx_status_processed"} <= set(outbox)
        assert "idx_update_id_unique" not in outbox
        assert "idx_update_id_unique" in processed
        assert inbound["idx_update_id_unique"]["unique"] is True
