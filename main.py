"""Main entrypoint for the Artifact Archiver bot."""
import asyncio
import contextlib

from bot.app import build_application
from config.settings import load_settings
from core.cleanup import cleanup_loop
from core.logging_utils import configure_logging, get_logger
from storage.db import get_engine, get_session_factory, init_db


async def main() -> None:
    """Initialize configuration and logging, then run the bot until cancelled."""

    settings = load_settings()
    configure_logging(settings)
    logger = get_logger(__name__)

    logger.info(
        "Settings loaded environment=%s debug_mode=%s default_layout=%s "
        "max_traversal_depth=%s export_root=%s db_path=%s",
        settings.environment,
        settings.debug_mode,
        settings.default_layout.value,
        settings.max_traversal_depth,
        settings.export_root,
        settings.db_path,
    )
    engine = get_engine(settings)
    init_db(engine)
    session_factory = get_session_factory(engine)

    application = build_application(settings, session_factory=session_factory)
    cleanup_task: asyncio.Task | None = None

    try:
        await application.initialize()
        await application.start()
        await application.updater.start_polling()
        logger.info("Application started, entering idle state")

        if settings.export_retention_days and settings.export_retention_days > 0:
            cleanup_task = asyncio.create_task(
                cleanup_loop(settings, session_factory=session_factory)
            )

        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            logger.info("Main loop cancelled, shutting down")
    finally:
        if cleanup_task:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task
        if application.updater:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
