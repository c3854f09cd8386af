"""Language tag to file extension mapping."""
from __future__ import annotations

DEFAULT_EXTENSION = ".txt"

LANGUAGE_EXTENSIONS: dict[str, str] = {
    "javascript": ".js",
    "typescript": ".ts",
    "html": ".html",
    "css": ".css",
    "python": ".py",
    "java": ".java",
    "c": ".c",
    "cpp": ".cpp",
    "ruby": ".rb",
    "php": ".php",
    "swift": ".swift",
    "go": ".go",
    "rust": ".rs",
    "shell": ".sh",
    "bash": ".sh",
    "sql": ".sql",
    "kotlin": ".kt",
    "scala": ".scala",
    "r": ".r",
    "matlab": ".m",
    "csharp": ".cs",
    "markdown": ".md",
    "json": ".json",
    "yaml": ".yaml",
    "xml": ".xml",
    "svg": ".svg",
    "jsx": ".jsx",
    "tsx": ".tsx",
    "mermaid": ".mmd",
    "text": ".txt",
    "txt": ".txt",
}

MIME_LANGUAGES: dict[str, str] = {
    "text/html": "html",
    "text/markdown": "markdown",
    "text/plain": "text",
    "image/svg+xml": "svg",
    "application/vnd.ant.react": "tsx",
    "application/vnd.ant.mermaid": "mermaid",
}


def resolve_extension(language: str | None) -> str:
    """Return the extension (with leading dot) for a language tag.

    Lookup is case-insensitive; anything unknown or empty maps to ``.txt``.
    """

    if not language or not isinstance(language, str):
        return DEFAULT_EXTENSION
    return LANGUAGE_EXTENSIONS.get(language.strip().lower(), DEFAULT_EXTENSION)


def language_for_mime_type(mime_type: str | None) -> str | None:
    if not mime_type or not isinstance(mime_type, str):
        return None
    return MIME_LANGUAGES.get(mime_type.strip().lower())
