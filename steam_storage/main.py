"""
Steam Storage — Application Entrypoint

Initializes async SQLAlchemy engine, configures structlog, and starts the scheduler.

Run via:
    python -m steam_storage.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
from sqlalchemy import text

from steam_storage import __version__
from steam_storage.config import settings
from steam_storage.database import create_db_engine
from steam_storage.pipeline.scheduler import run_scheduler


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Application entrypoint. Initializes subsystems and starts the scheduler.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Start the scheduler; its jobs wait on the ready event
    4. Verify database connection (health check), then release the jobs
    5. Run until a shutdown signal arrives
    """
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("steam_storage_startup_begin", version=__version__)

    try:
        engine, session_factory = create_db_engine()
    except Exception as e:
        logger.error(
            "database_engine_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    ready = asyncio.Event()
    scheduler_task = asyncio.create_task(run_scheduler(engine, session_factory, ready=ready))

    try:
        # Health check: verify database connection
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            logger.info("database_health_check_passed")
        except Exception as e:
            logger.error(
                "database_health_check_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            scheduler_task.cancel()
            raise

        ready.set()
        logger.info(
            "steam_storage_startup_complete",
            base_currency_id=settings.BASE_CURRENCY_ID,
            currency_refresh_at=f"{settings.CURRENCY_REFRESH_HOUR:02d}:{settings.CURRENCY_REFRESH_MINUTE:02d}",
            group_valuation_at=f"{settings.GROUP_VALUATION_HOUR:02d}:{settings.GROUP_VALUATION_MINUTE:02d}",
            skin_sync_interval_hours=settings.SKIN_SYNC_INTERVAL_HOURS,
        )

        # Blocks until shutdown
        await scheduler_task
    except KeyboardInterrupt:
        logger.info("steam_storage_interrupted_by_user")
    except Exception as e:
        logger.error(
            "steam_storage_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()
        logger.info("steam_storage_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
