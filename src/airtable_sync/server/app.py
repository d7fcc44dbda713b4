"""Sync worker FastAPI application."""

import logging

from fastapi import FastAPI

from shopify_api.api.client import ShopifyAPIClient
from shopify_api.config.settings import Settings, settings as default_settings
from shopify_api.core.logger import setup_logger
from airtable_sync.db import get_engine, get_session_factory, init_db
from airtable_sync.integrations.airtable import AirtableClient
from airtable_sync.repositories.job_repository import SyncJobRepository
from airtable_sync.repositories.sql_repository import SQLOrderRepository
from airtable_sync.server.routes import (
    router,
    set_airtable_client,
    set_order_store,
    set_shopify_client,
    set_sync_job_service,
)
from airtable_sync.services.job_control import SyncJobService
from airtable_sync.services.sync_orchestrator import SyncOrchestrator
from airtable_sync.services.sync_scheduler import SyncScheduler

logger = setup_logger(__name__)


def _init_monitoring(settings: Settings) -> None:
    """Initialize GlitchTip error monitoring when a DSN is configured."""
    if not settings.glitchtip_dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.glitchtip_dsn,
            environment=settings.environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.0,
            send_default_pii=False,
        )
        logger.info("GlitchTip error monitoring initialized")
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")


def create_app(settings: Settings = default_settings) -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Shopify Airtable Sync",
        description="Syncs Shopify orders into Airtable through a local order store",
        version="1.0.0",
    )

    _init_monitoring(settings)

    @app.on_event("startup")
    async def startup():
        """Wire clients, store, orchestrator and scheduler.

        Steps:
        1. Create database engine and tables
        2. Initialize Shopify and Airtable clients
        3. Initialize order store and job repository
        4. Initialize orchestrator, scheduler and job-control service
        5. Start the scheduler (unless disabled)
        """
        try:
            logger.info("=" * 60)
            logger.info("Starting Shopify Airtable Sync...")
            logger.info("=" * 60)

            if not settings.shopify_shop_name or not settings.shopify_access_token:
                raise ValueError("SHOPIFY_SHOP_NAME and SHOPIFY_ACCESS_TOKEN are required")
            if not settings.airtable_base_id or not settings.airtable_api_key:
                raise ValueError("AIRTABLE_BASE_ID and AIRTABLE_API_KEY are required")

            engine = get_engine(settings.database_url)
            await init_db(engine)
            session_factory = get_session_factory(engine)
            app.state.engine = engine
            logger.info("✓ Order store database ready")

            shopify = ShopifyAPIClient(
                shop_name=settings.shopify_shop_name,
                access_token=settings.shopify_access_token,
                api_version=settings.shopify_api_version,
            )
            airtable = AirtableClient(
                base_id=settings.airtable_base_id,
                api_key=settings.airtable_api_key,
                api_url=settings.airtable_api_url,
            )
            app.state.shopify_client = shopify
            app.state.airtable_client = airtable
            logger.info("✓ Shopify and Airtable clients initialized")

            store = SQLOrderRepository(session_factory)
            jobs = SyncJobRepository(session_factory)

            orchestrator = SyncOrchestrator(
                shopify_client=shopify,
                airtable_client=airtable,
                store=store,
                job_repository=jobs,
                table_name=settings.airtable_table_name,
                stage_timeout=settings.stage_timeout_seconds,
                rate_limit_retries=settings.airtable_rate_limit_retries,
                rate_limit_backoff=settings.airtable_rate_limit_backoff_seconds,
            )
            scheduler = SyncScheduler(
                sync_procedure=orchestrator.run_full_sync,
                job_repository=jobs,
                sync_cron=settings.sync_cron,
                retry_cron=settings.retry_cron,
                timezone=settings.scheduler_timezone,
                push_procedure=orchestrator.push_to_airtable,
            )
            app.state.scheduler = scheduler

            set_sync_job_service(SyncJobService(scheduler, jobs))
            set_order_store(store)
            set_shopify_client(shopify)
            set_airtable_client(airtable)

            if settings.scheduler_autostart:
                await scheduler.start()

            logger.info("=" * 60)
            logger.info("Shopify Airtable Sync started successfully!")
            logger.info(f"Shop: {settings.shopify_shop_name}")
            logger.info(f"Airtable table: {settings.airtable_table_name}")
            logger.info(f"Sync schedule: {settings.sync_cron} ({settings.scheduler_timezone})")
            logger.info(f"Next sync: {scheduler.get_next_scheduled_sync()}")
            logger.info("=" * 60)

        except Exception as e:
            logger.error(f"Failed to start sync service: {e}", exc_info=True)
            raise

    @app.on_event("shutdown")
    async def shutdown():
        """Stop the scheduler and close connections."""
        logger.info("=" * 60)
        logger.info("Shutting down Shopify Airtable Sync...")
        logger.info("=" * 60)

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            await scheduler.stop()

        for name in ("shopify_client", "airtable_client"):
            client = getattr(app.state, name, None)
            if client:
                await client.close()

        engine = getattr(app.state, "engine", None)
        if engine:
            await engine.dispose()

        set_sync_job_service(None)
        set_order_store(None)
        set_shopify_client(None)
        set_airtable_client(None)

        logger.info("Shutdown completed")

    app.include_router(router)

    return app
