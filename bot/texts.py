"""User-facing texts for the Telegram bot."""

START_MESSAGE = (
    "Hi! I'm the Artifact Archiver bot.\n\n"
    "Send me an exported conversation (.json) and I'll reply with a zip of every "
    "artifact in it, with stable, collision-free file names."
)

HELP_MESSAGE = (
    "Send a conversation export as a .json document to get its artifacts as a zip.\n"
    "- /settings to choose flat or directory layout and numeric prefixes\n"
    "- /history to see your latest exports"
)

PING_RESPONSE = "pong"

EXPORT_STARTED = "📦 Extracting artifacts from {filename}..."
EXPORT_CAPTION = "✅ {count} artifact(s) from {messages} message(s)\nLayout: {layout}"
EXPORT_DEPTH_WARNING = "⚠️ The conversation is deeper than {max_depth} replies; deeper messages were skipped."

ERROR_NOT_JSON_DOCUMENT = "❌ Please send the conversation as a .json document."
ERROR_GENERIC = "❌ Export failed (type: {error_type}). Please try again."

FAILURE_MESSAGES = {
    "PARSER_ERROR": "❌ That file doesn't look like a conversation export.",
    "NO_ARTIFACTS": "ℹ️ No artifacts were found in this conversation.",
    "SIZE_LIMIT": "❌ The file is larger than the allowed {max_mb} MB.",
    "STORAGE_ERROR": "❌ The archive could not be saved. Please try again later.",
}

SETTINGS_TITLE = "⚙️ Naming settings"
SETTINGS_UPDATED = "Settings updated."
SETTINGS_UPDATE_ERROR = "Something went wrong while updating settings. Please try again."

LAYOUT_FLAT = "📄 Flat"
LAYOUT_DIRECTORY = "📁 Directories"
INDEX_DEFAULT = "🔢 Prefixes: layout default"
INDEX_ON = "🔢 Prefixes: on"
INDEX_OFF = "🔢 Prefixes: off"
NESTING_ON = "🗂️ Directories: nested"
NESTING_OFF = "🗂️ Directories: joined with _"

HISTORY_HEADER = "🕘 Latest exports:\n"
HISTORY_EMPTY = "No exports yet."
HISTORY_LINE = "#{run_id} | {name} | {count} file(s) | {status_label}"

STATUS_LABELS = {
    "PENDING": "pending ⏳",
    "RUNNING": "running ⚙️",
    "COMPLETED": "done ✅",
    "FAILED": "failed ❌",
}

LAYOUT_LABELS = {
    "FLAT": "flat",
    "DIRECTORY_STRUCTURE": "directories",
}


def status_label(status: str | None) -> str:
    if not status:
        return "unknown"
    return STATUS_LABELS.get(status, str(status))


def layout_label(layout: str | None) -> str:
    if not layout:
        return "default"
    return LAYOUT_LABELS.get(layout, str(layout))


def failure_message(error_type: str | None, *, max_mb: int) -> str:
    template = FAILURE_MESSAGES.get(error_type or "")
    if template is None:
        return ERROR_GENERIC.format(error_type=error_type or "unknown")
    return template.format(max_mb=max_mb)
