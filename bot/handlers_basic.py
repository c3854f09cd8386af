"""Basic command handlers for the Telegram bot."""
from telegram import Update
from telegram.ext import ContextTypes

from bot import texts
from core.logging_utils import get_logger

logger = get_logger(__name__)


def _log_command(update: Update, command: str) -> None:
    user = update.effective_user
    chat = update.effective_chat
    logger.info(
        "Received /%s",
        command,
        extra={
            "stage": "BOT",
            "command": command,
            "user_id": user.id if user else None,
            "chat_id": chat.id if chat else None,
        },
    )


async def ping_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply with a simple 'pong' message and log the request."""

    _log_command(update, "ping")
    if update.message:
        await update.message.reply_text(texts.PING_RESPONSE)


async def start_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    _log_command(update, "start")
    if update.message:
        await update.message.reply_text(texts.START_MESSAGE)


async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Provide usage instructions for the bot."""

    _log_command(update, "help")
    if update.message:
        await update.message.reply_text(texts.HELP_MESSAGE)
