"""File records shared by the local index, the Drive provider and the delivery sessions."""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Literal, Union

DEFAULT_MIME_TYPE = "application/octet-stream"

# Document type sent to WhatsApp, keyed by file extension.
MIME_TYPES: Dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".txt": "text/plain",
    ".rtf": "application/rtf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".py": "text/x-python",
    ".java": "text/x-java-source",
    ".cpp": "text/x-c++src",
    ".c": "text/x-csrc",
    ".json": "application/json",
    ".xml": "application/xml",
    ".csv": "text/csv",
    ".md": "text/markdown",
}


def guess_mime_type(file_name: str) -> str:
    ext = os.path.splitext(file_name)[1].lower()
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


@dataclass(frozen=True)
class LocalFile:
    """A file read from the local share directory."""

    name: str
    relative_path: str
    path: str
    size_bytes: int | None
    mime_type: str = DEFAULT_MIME_TYPE
    modified: datetime | None = None
    source: Literal["local"] = "local"

    @property
    def size_label(self) -> str:
        return format_size(self.size_bytes)


@dataclass(frozen=True)
class RemoteFile:
    """A file listed from a Google Drive folder tree. size_bytes is None when Drive omits it."""

    name: str
    relative_path: str
    file_id: str
    download_url: str
    view_url: str
    size_bytes: int | None
    mime_type: str = DEFAULT_MIME_TYPE
    source: Literal["remote"] = "remote"

    @property
    def size_label(self) -> str:
        return format_size(self.size_bytes)


FileEntry = Union[LocalFile, RemoteFile]


@dataclass(frozen=True)
class DownloadedFile:
    data: bytes
    name: str
    mime_type: str


def format_size(size_bytes: int | None) -> str:
    if size_bytes is None:
        return "unknown size"
    if size_bytes == 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{round(size, 2):g} {units[unit_index]}"
