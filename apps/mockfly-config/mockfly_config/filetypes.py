"""File extension helpers shared by the loader and the blob responder."""

from __future__ import annotations

import mimetypes

CONTENT_TYPES: dict[str, str] = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
}

# Files with these extensions are streamed as downloads instead of parsed.
BLOB_EXTENSIONS: frozenset[str] = frozenset(
    {".xlsx", ".xls", ".docx", ".doc", ".pdf", ".zip", ".png", ".jpg", ".jpeg", ".gif", ".txt"}
)

# Extensions served through a data-source provider, mapped to the provider type.
DATA_FILE_TYPES: dict[str, str] = {
    ".csv": "csv",
    ".db": "sqlite",
    ".sqlite": "sqlite",
    ".sqlite3": "sqlite",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(extension: str) -> str:
    ext = extension.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f"file{ext}")
    return guessed or DEFAULT_CONTENT_TYPE
