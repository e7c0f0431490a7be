"""
FastAPI Application

Main entry point for the venuebot API.
Handles application lifecycle, pipeline wiring and router mounting.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from loguru import logger

from venuebot.config import settings
from venuebot.message_queue import InboundUpdateWorker, MongoQueueStore, OutboxWorker, UpdateRouter
from venuebot.message_queue.outbox_worker import BotApiClient
from venuebot.repositories import MongoIdempotencyRepository, db_manager
from venuebot.services import OutboxEnqueuer, TelegramApiClient, UpdateIngestor, UpdatePoller
from venuebot.utils.observability import configure_logging
from venuebot.utils.rate_limiter import InMemoryRateLimiter
from venuebot.api.routes import health_router, webhooks_router, metrics_router


def create_app(
    router: Optional[UpdateRouter] = None,
    api_client: Optional[BotApiClient] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        router: Bot logic for inbound updates; the inbound worker (and long
            polling) only run when one is given
        api_client: Bot API client; built from TELEGRAM_BOT_TOKEN when omitted

    Returns:
        FastAPI app whose lifespan owns the MongoDB connection and workers
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle: startup and shutdown events.

        Startup:
        - Connect to MongoDB and create queue indexes
        - Build the stores, ingestor and enqueuer
        - Start the outbox worker, inbound worker and (optionally) poller

        Shutdown:
        - Stop background tasks gracefully, cancel stragglers
        - Close the Bot API client and disconnect from MongoDB
        """
        configure_logging()
        logger.info("Starting venuebot API server...")

        await db_manager.connect()
        await db_manager.create_indexes()
        database = db_manager.database

        inbound_store = MongoQueueStore.inbound(database)
        outbox_store = MongoQueueStore.outbox(database)
        ingestor = UpdateIngestor(MongoIdempotencyRepository(database), inbound_store)

        app.state.inbound_store = inbound_store
        app.state.outbox_store = outbox_store
        app.state.ingestor = ingestor
        app.state.enqueuer = OutboxEnqueuer(outbox_store)
        app.state.inbound_worker = None
        app.state.outbox_worker = None

        client = api_client
        owned_client: Optional[TelegramApiClient] = None
        if client is None and settings.telegram_enabled and settings.telegram_bot_token:
            client = owned_client = TelegramApiClient(settings.telegram_bot_token)
        app.state.api_client = client

        background = []
        poller: Optional[UpdatePoller] = None

        if client is not None:
            outbox_worker = OutboxWorker(
                outbox_store,
                client,
                InMemoryRateLimiter(settings.outbox.per_chat_min_interval_seconds),
                settings.outbox,
            )
            app.state.outbox_worker = outbox_worker
            background.append(("outbox worker", asyncio.create_task(outbox_worker.start())))
        else:
            logger.warning("Telegram outbox worker disabled: bot token is not configured")

        if router is not None:
            inbound_worker = InboundUpdateWorker(inbound_store, router, settings.inbound)
            app.state.inbound_worker = inbound_worker
            background.append(("inbound worker", asyncio.create_task(inbound_worker.start())))

            if settings.telegram_mode == "long_polling" and isinstance(client, TelegramApiClient):
                poller = UpdatePoller(client, ingestor, settings.long_polling_timeout_seconds)
                background.append(("long poller", asyncio.create_task(poller.start())))
            else:
                logger.info(f"Telegram webhook mode enabled at {settings.telegram_webhook_path}")
        else:
            logger.warning("Telegram inbound worker disabled: no update router configured")

        logger.info("API server ready to receive updates")

        yield

        # Shutdown
        logger.info("Shutting down API server...")

        if poller is not None:
            poller.stop()
        for worker in (app.state.inbound_worker, app.state.outbox_worker):
            if worker is not None:
                await worker.stop()

        for name, task in background:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    logger.info(f"Stopped {name}")

        if owned_client is not None:
            await owned_client.close()

        await db_manager.disconnect()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="venuebot API",
        description="Telegram bot messaging pipeline: durable inbound and outbound queues",
        version="0.4.0",
        lifespan=lifespan
    )

    # Mount routers
    app.include_router(health_router)
    app.include_router(webhooks_router)
    app.include_router(metrics_router)

    return app


app = create_app()
