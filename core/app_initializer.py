"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from typing import TYPE_CHECKING, Optional

from aiohttp import web as aiohttp_web
from aiohttp_wsgi import WSGIHandler

from core.logger import get_logger
from utils.performance import PerformanceMonitor

if TYPE_CHECKING:
    from config import Config

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        if config is None:
            from config import load_config
            config = load_config()
        self.config = config
        self.db_pool = None
        self.bot = None
        self.notifier = None
        self.roster = None
        self.features = None
        self.viewers = None
        self.live_events = None
        self.raffles = None
        self.scheduler = None
        self.web_runner = None
        self.monitor = PerformanceMonitor()

    async def initialize(self) -> None:
        """Initialize all application components."""
        await self.prepare()
        await self._init_web_server()

    async def prepare(self) -> None:
        """Initialize everything except the web server."""
        await self._init_database()

        if self.config.notifications_configured:
            await self._init_bot()
        else:
            logger.info("Running without Telegram notifications")

        self._init_services()

    def web_services(self) -> dict:
        """Services handed to the Flask app through ``app.config``."""
        return {
            "LIVE_EVENT_SERVICE": self.live_events,
            "RAFFLE_MANAGER": self.raffles,
            "VIEWER_PRESENCE": self.viewers,
            "FEATURED_SERVICE": self.features,
        }

    async def run(self) -> None:
        """Run the application until cancelled."""
        if self.scheduler:
            await self.scheduler.start()

        try:
            logger.info("⚡ Showcase service running...")
            while True:
                await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Shutting down...")
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        from database import close_db_pool
        from services.async_runner import wait_background_tasks

        with suppress(Exception):
            if self.scheduler:
                await self.scheduler.stop()
        with suppress(Exception):
            await wait_background_tasks(timeout=5)
        with suppress(Exception):
            if self.web_runner:
                await self.web_runner.cleanup()
        with suppress(Exception):
            if self.bot:
                await self.bot.session.close()
        with suppress(Exception):
            await close_db_pool()
        logger.info("⏹️ Showcase service stopped")

    async def _init_database(self) -> None:
        """Initialize database pool and run migrations."""
        from database import init_db_pool, run_migrations

        self.db_pool = await init_db_pool(
            database_path=self.config.database_path,
            pool_size=self.config.db_pool_size,
            busy_timeout_ms=self.config.db_busy_timeout,
        )
        await run_migrations(self.db_pool)
        self.monitor.record_db_pool(self.config.db_pool_size)
        logger.info("✅ Database initialized")

    async def _init_bot(self) -> None:
        """Initialize the Telegram bot used for notifications only."""
        try:
            from aiogram import Bot
            from services.notification_service import init_notification_service

            self.bot = Bot(token=self.config.bot_token)
            self.notifier = init_notification_service(self.bot)
            logger.info("✅ Notification bot initialized")
        except Exception as e:
            logger.error(f"Failed to initialize notification bot: {e}")
            logger.info("Continuing without notifications...")
            self.bot = None
            self.notifier = None

    def _init_services(self) -> None:
        """Wire the live event, raffle and scheduler services."""
        from services import (
            EventScheduler,
            FeaturedPlacementService,
            LiveEventService,
            RaffleManager,
            SQLiteRosterProvider,
            ViewerPresence,
        )

        self.roster = SQLiteRosterProvider()
        self.features = FeaturedPlacementService(days=self.config.feature_days)
        self.viewers = ViewerPresence(
            ttl=self.config.viewer_session_ttl,
            count_base=self.config.viewer_count_base,
        )
        self.live_events = LiveEventService(
            roster=self.roster,
            features=self.features,
            notifier=self.notifier,
            viewers=self.viewers,
            commercial_max_seconds=self.config.commercial_max_seconds,
        )
        self.raffles = RaffleManager(
            roster=self.roster,
            live_events=self.live_events,
            notifier=self.notifier,
            prune_unselected=self.config.prune_unselected_after_raffle,
        )
        if self.config.scheduler_enabled:
            self.scheduler = EventScheduler(
                self.live_events,
                self.raffles,
                interval_seconds=self.config.scheduler_interval_seconds,
            )
        logger.info("✅ Services initialized")

    async def _init_web_server(self) -> None:
        """Serve the Flask app through aiohttp."""
        from web import create_app

        flask_app = create_app(self.config, services=self.web_services())

        wsgi_handler = WSGIHandler(flask_app)
        aio_app = aiohttp_web.Application()
        aio_app.router.add_route("*", "/{path_info:.*}", wsgi_handler)

        self.web_runner = aiohttp_web.AppRunner(aio_app)
        await self.web_runner.setup()

        # Bind to PORT env var if present (Render/Heroku)
        effective_port = int(os.getenv("PORT", str(self.config.web_port)))
        effective_host = "0.0.0.0" if os.getenv("PORT") else self.config.web_host

        site = aiohttp_web.TCPSite(self.web_runner, effective_host, effective_port)
        await site.start()

        logger.info(f"🚀 Web server started on http://{effective_host}:{effective_port}")
        logger.info(f"🔗 Operator panel: http://{effective_host}:{effective_port}/operator")
