"""Telegram application setup for the Artifact Archiver bot."""
from sqlalchemy.orm import Session, sessionmaker
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from bot.handlers_basic import help_handler, ping_handler, start_handler
from bot.handlers_export import (
    handle_transcript_document,
    history_handler,
    settings_callback_handler,
    settings_handler,
)
from config.settings import Settings
from core.export_service import ExportService
from core.logging_utils import get_logger

logger = get_logger(__name__)


def build_application(
    settings: Settings, *, session_factory: sessionmaker[Session]
) -> Application:
    """Create and configure the Telegram Application instance."""

    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN must be provided in settings")
    export_service = ExportService(settings, session_factory)

    application = ApplicationBuilder().token(settings.telegram_bot_token).build()
    application.bot_data["export_service"] = export_service
    application.bot_data["session_factory"] = session_factory
    application.bot_data["settings"] = settings

    application.add_handler(CommandHandler("ping", ping_handler))
    application.add_handler(CommandHandler("start", start_handler))
    application.add_handler(CommandHandler("help", help_handler))
    application.add_handler(CommandHandler("settings", settings_handler))
    application.add_handler(CommandHandler("history", history_handler))
    application.add_handler(MessageHandler(filters.Document.ALL, handle_transcript_document))
    application.add_handler(CallbackQueryHandler(settings_callback_handler, pattern=r"^settings"))

    logger.info("Telegram application initialized with export handlers")
    return application
