import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Update
from telegram.ext import ContextTypes

from bot import texts
from bot.formatting import format_export_caption, format_history
from config.settings import Settings
from core.export_service import ExportError, ExportService, naming_options_for_chat
from core.logging_utils import get_logger, log_with_context
from storage.models import ChatSettings, ErrorType, LayoutPolicy
from storage.repositories import ChatSettingsRepository, ExportRunRepository

logger = get_logger(__name__)

JSON_MIME_TYPES = {"application/json", "text/json"}


def _get_export_service(context: ContextTypes.DEFAULT_TYPE) -> ExportService:
    export_service = context.application.bot_data.get("export_service")
    if export_service is None:
        raise RuntimeError("ExportService is not configured in bot_data")
    return export_service


def _get_session_factory(context: ContextTypes.DEFAULT_TYPE):
    session_factory = context.application.bot_data.get("session_factory")
    if session_factory is None:
        raise RuntimeError("Session factory missing in bot_data")
    return session_factory


def _get_settings(context: ContextTypes.DEFAULT_TYPE) -> Settings:
    settings = context.application.bot_data.get("settings")
    if settings is None:
        raise RuntimeError("Settings missing in bot_data")
    return settings


def _load_chat_settings(chat_id: str | int, session_factory) -> ChatSettings:
    session = session_factory()
    try:
        repo = ChatSettingsRepository(session)
        return repo.get_or_create(chat_id)
    finally:
        session.close()


def _is_json_document(file_name: str | None, mime_type: str | None) -> bool:
    if mime_type and mime_type.lower() in JSON_MIME_TYPES:
        return True
    return bool(file_name) and file_name.lower().endswith(".json")


def _build_settings_keyboard(chat_settings: ChatSettings, settings: Settings) -> InlineKeyboardMarkup:
    def mark(label: str, selected: bool) -> str:
        return f"{'✅ ' if selected else ''}{label}"

    layout = chat_settings.layout or settings.default_layout.value
    if chat_settings.include_index is None:
        index_label = texts.INDEX_DEFAULT
    elif chat_settings.include_index:
        index_label = texts.INDEX_ON
    else:
        index_label = texts.INDEX_OFF
    nesting_label = texts.NESTING_ON if chat_settings.nest_directories else texts.NESTING_OFF

    rows: list[list[InlineKeyboardButton]] = [
        [
            InlineKeyboardButton(
                mark(texts.LAYOUT_FLAT, layout == LayoutPolicy.FLAT.value),
                callback_data=f"settings|layout|{LayoutPolicy.FLAT.value}",
            ),
            InlineKeyboardButton(
                mark(texts.LAYOUT_DIRECTORY, layout == LayoutPolicy.DIRECTORY_STRUCTURE.value),
                callback_data=f"settings|layout|{LayoutPolicy.DIRECTORY_STRUCTURE.value}",
            ),
        ],
        [InlineKeyboardButton(index_label, callback_data="settings|index|cycle")],
        [InlineKeyboardButton(nesting_label, callback_data="settings|nesting|toggle")],
    ]
    return InlineKeyboardMarkup(rows)


async def handle_transcript_document(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Export the artifacts of an uploaded conversation and reply with the zip."""

    message = update.effective_message
    chat = update.effective_chat
    user = update.effective_user
    if not message or not chat or not message.document:
        return

    settings = _get_settings(context)
    document = message.document
    if not _is_json_document(document.file_name, document.mime_type):
        await message.reply_text(texts.ERROR_NOT_JSON_DOCUMENT)
        return

    export_service = _get_export_service(context)
    if document.file_size and document.file_size > export_service.max_upload_bytes:
        await message.reply_text(
            texts.failure_message(ErrorType.SIZE_LIMIT.value, max_mb=settings.max_upload_size_mb)
        )
        return

    await message.reply_text(
        texts.EXPORT_STARTED.format(filename=document.file_name or "transcript")
    )

    telegram_file = await document.get_file()
    raw = bytes(await telegram_file.download_as_bytearray())

    chat_settings = _load_chat_settings(chat.id, _get_session_factory(context))
    options = naming_options_for_chat(chat_settings, settings)

    try:
        outcome = export_service.export_transcript(
            raw,
            options=options,
            chat_id=chat.id,
            user_id=user.id if user else None,
            source_name=document.file_name,
        )
    except ExportError as exc:
        log_with_context(
            logger,
            level=logging.INFO,
            message="Export failed",
            stage="BOT",
            chat_id=chat.id,
            error_type=exc.error_type.value,
            error=str(exc),
        )
        await message.reply_text(
            texts.failure_message(exc.error_type.value, max_mb=settings.max_upload_size_mb)
        )
        return

    caption = format_export_caption(
        outcome.result, options.layout, max_depth=settings.max_traversal_depth
    )
    with open(outcome.archive_path, "rb") as fp:
        await message.reply_document(
            document=InputFile(fp, filename=outcome.archive_name),
            caption=caption,
        )

    log_with_context(
        logger,
        level=logging.INFO,
        message="Delivered archive to Telegram",
        stage="BOT",
        chat_id=chat.id,
        run_id=outcome.run_id,
        artifacts=outcome.result.artifact_count,
    )


async def history_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat = update.effective_chat
    message = update.effective_message
    if not chat or not message:
        return

    session_factory = _get_session_factory(context)
    session = session_factory()
    try:
        runs = ExportRunRepository(session).list_recent_for_chat(chat.id, limit=5)
        text = format_history(runs)
    finally:
        session.close()

    await message.reply_text(text)


async def settings_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat = update.effective_chat
    if not chat:
        return
    chat_settings = _load_chat_settings(chat.id, _get_session_factory(context))
    keyboard = _build_settings_keyboard(chat_settings, _get_settings(context))

    if update.callback_query:
        await update.callback_query.edit_message_text(texts.SETTINGS_TITLE, reply_markup=keyboard)
    elif update.effective_message:
        await update.effective_message.reply_text(texts.SETTINGS_TITLE, reply_markup=keyboard)


async def settings_callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query:
        return
    await query.answer()
    parts = (query.data or "").split("|")
    if parts[0] != "settings":
        return

    if len(parts) == 1:
        await settings_handler(update, context)
        return

    chat = update.effective_chat
    if not chat:
        return

    action = parts[1]
    value = parts[2] if len(parts) > 2 else None
    session_factory = _get_session_factory(context)
    session = session_factory()
    try:
        repo = ChatSettingsRepository(session)
        if action == "layout" and value:
            chat_settings = repo.set_layout(chat.id, LayoutPolicy(value))
        elif action == "index":
            chat_settings = repo.cycle_index_mode(chat.id)
        elif action == "nesting":
            chat_settings = repo.toggle_nesting(chat.id)
        else:
            chat_settings = repo.get_or_create(chat.id)
        log_with_context(
            logger,
            level=logging.INFO,
            message="Chat settings updated",
            stage="SETTINGS",
            chat_id=chat.id,
            user_id=update.effective_user.id if update.effective_user else None,
            action=action,
            value=value,
        )
    except Exception as exc:  # pragma: no cover - defensive
        session.rollback()
        log_with_context(
            logger,
            level=logging.ERROR,
            message="Failed to update settings",
            stage="SETTINGS",
            chat_id=chat.id,
            error=str(exc),
        )
        await query.edit_message_text(texts.SETTINGS_UPDATE_ERROR)
        return
    finally:
        session.close()

    keyboard = _build_settings_keyboard(chat_settings, _get_settings(context))
    await query.edit_message_text(
        f"{texts.SETTINGS_TITLE}\n{texts.SETTINGS_UPDATED}",
        reply_markup=keyboard,
    )
