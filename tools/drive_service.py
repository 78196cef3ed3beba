# --- START OF FULL tools/drive_service.py ---

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Set, Tuple
from urllib.parse import urljoin

import httplib2
import requests
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from tools.logger import log_info, log_error, log_warning
from tools.config import GDRIVE_FOLDER_LINKS, GOOGLE_API_KEY
from tools.file_entry import RemoteFile, DownloadedFile, guess_mime_type

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
LIST_FIELDS = "nextPageToken, files(id, name, mimeType, size)"
PAGE_SIZE = 1000
MAX_DEPTH = 20
CACHE_TTL_SECONDS = 30 * 60
PAGE_DELAY_SECONDS = 0.1
SUBFOLDER_DELAY_SECONDS = 0.1
ROOT_FOLDER_DELAY_SECONDS = 0.5
LIST_TIMEOUT_SECONDS = 30
DOWNLOAD_TIMEOUT_SECONDS = (10, 120) # (connect, read)
MAX_REDIRECTS = 5

DOWNLOAD_URL_TEMPLATE = "https://drive.google.com/uc?export=download&id={file_id}"
VIEW_URL_TEMPLATE = "https://drive.google.com/file/d/{file_id}/view"

FOLDER_ID_PATTERNS = [
    re.compile(r'/folders/([a-zA-Z0-9_-]+)'),
    re.compile(r'[?&]id=([a-zA-Z0-9_-]+)'),
    re.compile(r'/d/([a-zA-Z0-9_-]+)'),
]
RAW_FOLDER_ID_RE = re.compile(r'^[a-zA-Z0-9_-]{20,50}$')
# The virus-scan interstitial carries the token either in a link or in a hidden form field.
CONFIRM_TOKEN_PATTERNS = [
    re.compile(r'confirm=([a-zA-Z0-9_-]+)'),
    re.compile(r'name="confirm"\s+value="([a-zA-Z0-9_-]+)"'),
]


class DownloadError(Exception):
    """Raised when a Drive download cannot produce the file bytes."""


def extract_folder_id(link: str) -> str | None:
    """Accepts a Drive folder URL or a bare folder id."""
    link = (link or "").strip()
    if not link:
        return None
    for pattern in FOLDER_ID_PATTERNS:
        match = pattern.search(link)
        if match:
            return match.group(1)
    if RAW_FOLDER_ID_RE.match(link):
        return link
    return None


def parse_folder_ids(links: List[str]) -> List[str]:
    folder_ids: List[str] = []
    for link in links:
        folder_id = extract_folder_id(link)
        if folder_id is None:
            log_warning("drive_service", "parse_folder_ids", f"Could not extract a folder id from '{link}'")
        elif folder_id not in folder_ids:
            folder_ids.append(folder_id)
    return folder_ids


def _parse_size(raw_size: Any) -> int | None:
    if raw_size in (None, ""):
        return None
    try:
        return int(raw_size)
    except (TypeError, ValueError):
        return None


@dataclass
class RemoteFileCache:
    files: List[RemoteFile] = field(default_factory=list)
    last_updated: float | None = None


class DriveService:
    """
    Lists and downloads study files kept in public Google Drive folders.

    The whole folder tree is walked once and cached for CACHE_TTL_SECONDS. Searches run
    against the cache; a search with no hits on a cache that was not just walked forces
    one refresh and retries. Concurrent refreshes share a single walk.
    """

    def __init__(self, folder_ids: List[str] | None = None, api_key: str | None = None,
                 service: Any = None,
                 http_session_factory: Callable[[], requests.Session] = requests.Session,
                 clock: Callable[[], float] = time.monotonic,
                 page_delay: float = PAGE_DELAY_SECONDS,
                 subfolder_delay: float = SUBFOLDER_DELAY_SECONDS,
                 root_folder_delay: float = ROOT_FOLDER_DELAY_SECONDS):
        self.folder_ids = folder_ids if folder_ids is not None else parse_folder_ids(GDRIVE_FOLDER_LINKS)
        self.api_key = api_key if api_key is not None else GOOGLE_API_KEY
        self._service = service
        self._http_session_factory = http_session_factory
        self._clock = clock
        self.page_delay = page_delay
        self.subfolder_delay = subfolder_delay
        self.root_folder_delay = root_folder_delay
        self._cache = RemoteFileCache()
        self._refresh_lock = asyncio.Lock()
        self._walk_generation = 0

        if not self.folder_ids:
            log_warning("DriveService", "__init__", "No Google Drive folders configured. Remote search disabled.")
        elif not self.api_key and service is None:
            log_warning("DriveService", "__init__", "GOOGLE_API_KEY not set. Drive listing will fail.")

    # --- Listing ---

    def _get_service(self) -> Any:
        if self._service is None:
            self._service = build(
                "drive", "v3", developerKey=self.api_key,
                http=httplib2.Http(timeout=LIST_TIMEOUT_SECONDS), cache_discovery=False,
            )
            log_info("DriveService", "_get_service", "Drive v3 service built.")
        return self._service

    def _list_page(self, folder_id: str, page_token: str | None) -> dict:
        request = self._get_service().files().list(
            q=f"'{folder_id}' in parents",
            fields=LIST_FIELDS,
            pageSize=PAGE_SIZE,
            pageToken=page_token,
        )
        return request.execute()

    async def _list_folder(self, folder_id: str, folder_path: str = "", depth: int = 0,
                           visited: Set[str] | None = None) -> List[RemoteFile]:
        fn_name = "_list_folder"
        visited = visited if visited is not None else set()
        if folder_id in visited:
            log_warning("DriveService", fn_name, f"Folder {folder_id} at '{folder_path}' already walked. Skipping.")
            return []
        visited.add(folder_id)
        if depth > MAX_DEPTH:
            log_warning("DriveService", fn_name, f"Max depth reached at '{folder_path}'. Skipping deeper folders.")
            return []

        files: List[RemoteFile] = []
        subfolders: List[Tuple[str, str]] = []
        page_token: str | None = None
        while True:
            response = await asyncio.to_thread(self._list_page, folder_id, page_token)
            for item in response.get("files", []):
                name = item.get("name", "")
                item_path = f"{folder_path}/{name}" if folder_path else name
                if item.get("mimeType") == FOLDER_MIME_TYPE:
                    subfolders.append((item["id"], item_path))
                    continue
                files.append(RemoteFile(
                    name=name,
                    relative_path=item_path,
                    file_id=item["id"],
                    download_url=DOWNLOAD_URL_TEMPLATE.format(file_id=item["id"]),
                    view_url=VIEW_URL_TEMPLATE.format(file_id=item["id"]),
                    size_bytes=_parse_size(item.get("size")),
                    mime_type=guess_mime_type(name),
                ))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
            await asyncio.sleep(self.page_delay)

        for subfolder_id, subfolder_path in subfolders:
            files.extend(await self._list_folder(subfolder_id, subfolder_path, depth + 1, visited))
            await asyncio.sleep(self.subfolder_delay)
        return files

    async def _walk_all_roots(self) -> List[RemoteFile]:
        fn_name = "_walk_all_roots"
        all_files: List[RemoteFile] = []
        visited: Set[str] = set()
        for index, folder_id in enumerate(self.folder_ids):
            if index:
                await asyncio.sleep(self.root_folder_delay)
            try:
                folder_files = await self._list_folder(folder_id, visited=visited)
                all_files.extend(folder_files)
                log_info("DriveService", fn_name, f"Folder {folder_id}: {len(folder_files)} files.")
            except HttpError as e:
                log_error("DriveService", fn_name, f"Drive API error listing folder {folder_id}: {e}", e)
            except (httplib2.HttpLib2Error, OSError) as e:
                log_error("DriveService", fn_name, f"Network error listing folder {folder_id}: {e}", e)
        return all_files

    def _cache_is_valid(self) -> bool:
        if not self._cache.files or self._cache.last_updated is None:
            return False
        return (self._clock() - self._cache.last_updated) < CACHE_TTL_SECONDS

    async def _load_files(self, force: bool = False) -> Tuple[List[RemoteFile], bool]:
        """Returns (files, walked) where walked is True when this call produced a fresh walk."""
        if not force and self._cache_is_valid():
            return self._cache.files, False
        generation = self._walk_generation
        async with self._refresh_lock:
            # Another caller finished a walk while we waited for the lock.
            if self._walk_generation != generation:
                return self._cache.files, True
            if not force and self._cache_is_valid():
                return self._cache.files, False
            if not self.folder_ids:
                return [], True
            log_info("DriveService", "refresh_cache", f"Walking {len(self.folder_ids)} Drive folder(s) (force={force})...")
            files = await self._walk_all_roots()
            self._cache = RemoteFileCache(files=files, last_updated=self._clock())
            self._walk_generation += 1
            log_info("DriveService", "refresh_cache", f"Drive cache refreshed with {len(files)} files.")
            return files, True

    async def refresh_cache(self, force: bool = False) -> List[RemoteFile]:
        files, _ = await self._load_files(force=force)
        return files

    # --- Search ---

    async def _search(self, needle: str) -> List[RemoteFile]:
        fn_name = "_search"
        needle = needle.strip().lower()
        if not needle or not self.folder_ids:
            return []
        try:
            files, walked = await self._load_files()
            hits = [f for f in files if needle in f.name.lower() or needle in f.relative_path.lower()]
            if not hits and not walked:
                log_info("DriveService", fn_name, f"No cached hits for '{needle}'. Forcing one refresh.")
                files, _ = await self._load_files(force=True)
                hits = [f for f in files if needle in f.name.lower() or needle in f.relative_path.lower()]
            return hits
        except Exception as e:
            log_error("DriveService", fn_name, f"Drive search for '{needle}' failed: {e}", e)
            return []

    async def search_by_subject_code(self, subject_code: str) -> List[RemoteFile]:
        return await self._search(subject_code)

    async def search_by_query(self, query: str) -> List[RemoteFile]:
        return await self._search(query)

    def get_cached_file_count(self) -> int:
        return len(self._cache.files)

    def get_folder_ids(self) -> List[str]:
        return list(self.folder_ids)

    # --- Download ---

    def download_file(self, entry: RemoteFile) -> DownloadedFile:
        """Downloads a Drive file, following redirects and the large-file virus-scan confirmation page."""
        # Downloads run on worker threads, so each one gets its own session.
        with self._http_session_factory() as http:
            return self._download_with(http, entry)

    def _download_with(self, http: requests.Session, entry: RemoteFile) -> DownloadedFile:
        fn_name = "download_file"
        url = entry.download_url
        for _ in range(MAX_REDIRECTS + 1):
            try:
                response = http.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS, allow_redirects=False)
            except requests.RequestException as e:
                raise DownloadError(f"Download request failed for {entry.name}: {e}") from e

            if response.is_redirect or 300 <= response.status_code < 400:
                location = response.headers.get("Location")
                if not location:
                    raise DownloadError(f"Redirect without location for {entry.name}")
                url = urljoin(url, location)
                continue

            if response.status_code != 200:
                raise DownloadError(f"Download failed: HTTP {response.status_code}")

            content_type = response.headers.get("Content-Type", "")
            if "text/html" in content_type:
                token = self._extract_confirm_token(response.text)
                if not token:
                    raise DownloadError("Download returned HTML instead of file")
                log_info("DriveService", fn_name, f"Virus-scan confirmation for {entry.name}, retrying with token.")
                url = f"{entry.download_url}&confirm={token}"
                continue

            data = response.content
            if not data:
                raise DownloadError(f"Downloaded file is empty: {entry.name}")
            if entry.size_bytes is not None and len(data) != entry.size_bytes:
                log_warning("DriveService", fn_name, f"Size mismatch for {entry.name}: listed {entry.size_bytes}, got {len(data)}")
            return DownloadedFile(data=data, name=entry.name, mime_type=entry.mime_type)

        raise DownloadError("Too many redirects")

    @staticmethod
    def _extract_confirm_token(html: str) -> str | None:
        for pattern in CONFIRM_TOKEN_PATTERNS:
            match = pattern.search(html)
            if match:
                return match.group(1)
        return None

    async def download(self, entry: RemoteFile) -> DownloadedFile:
        return await asyncio.to_thread(self.download_file, entry)

# --- END OF FULL tools/drive_service.py ---
