import asyncio
from typing import List

import pytest

from tools.data_store import DataStore
from tools.drive_service import DownloadError
from tools.file_entry import DownloadedFile, LocalFile, RemoteFile


def make_remote(name: str, size: int | None = 100, file_id: str | None = None, folder: str = "Courses") -> RemoteFile:
    file_id = file_id or f"id-{name}"
    return RemoteFile(
        name=name,
        relative_path=f"{folder}/{name}",
        file_id=file_id,
        download_url=f"https://drive.google.com/uc?export=download&id={file_id}",
        view_url=f"https://drive.google.com/file/d/{file_id}/view",
        size_bytes=size,
        mime_type="application/pdf" if name.endswith(".pdf") else "application/octet-stream",
    )


def make_local(name: str, size: int | None = 100) -> LocalFile:
    return LocalFile(name=name, relative_path=name, path=f"/srv/files/{name}", size_bytes=size,
                     mime_type="application/pdf" if name.endswith(".pdf") else "application/octet-stream")


class FakeTransport:
    """Records everything the bot would send to WhatsApp."""

    def __init__(self):
        self.texts: List[tuple] = []
        self.documents: List[tuple] = []
        self.gate: asyncio.Event | None = None
        self.mentions: List[tuple] = []

    async def send_text(self, chat_id, text, mentions=None):
        self.texts.append((chat_id, text))
        self.mentions.append((chat_id, mentions))

    async def send_document(self, chat_id, data, file_name, mime_type):
        if self.gate is not None:
            await self.gate.wait()
        self.documents.append((chat_id, file_name, data))

    def document_names(self, chat_id=None) -> List[str]:
        return [name for cid, name, _ in self.documents if chat_id is None or cid == chat_id]

    def last_text(self) -> str:
        return self.texts[-1][1] if self.texts else ""


class FakeDrive:
    """Stands in for DriveService: fixed search results and in-memory downloads."""

    def __init__(self, files: List[RemoteFile] | None = None, failing: set | None = None):
        self.files = list(files or [])
        self.failing = failing or set()
        self.search_calls: List[str] = []
        self.raise_on_search: Exception | None = None

    async def search_by_subject_code(self, code):
        self.search_calls.append(code)
        if self.raise_on_search:
            raise self.raise_on_search
        needle = code.lower()
        return [f for f in self.files if needle in f.name.lower() or needle in f.relative_path.lower()]

    async def search_by_query(self, query):
        return await self.search_by_subject_code(query)

    async def download(self, entry):
        if entry.name in self.failing:
            raise DownloadError("Download failed: HTTP 500")
        return DownloadedFile(data=b"x" * (entry.size_bytes or 1), name=entry.name, mime_type=entry.mime_type)

    def get_cached_file_count(self):
        return len(self.files)

    def get_folder_ids(self):
        return ["root-folder"]

    async def refresh_cache(self, force=False):
        return self.files


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def settings_store(tmp_path):
    return DataStore("settings", data_dir=str(tmp_path))


@pytest.fixture
def warnings_store(tmp_path):
    return DataStore("warnings", data_dir=str(tmp_path))


@pytest.fixture
def files_dir(tmp_path):
    root = tmp_path / "files"
    root.mkdir()
    return root
