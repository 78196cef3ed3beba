import asyncio

import httplib2
import pytest
from googleapiclient.errors import HttpError

from tools.drive_service import (
    CACHE_TTL_SECONDS,
    MAX_DEPTH,
    DownloadError,
    DriveService,
    FOLDER_MIME_TYPE,
    MAX_REDIRECTS,
    extract_folder_id,
    parse_folder_ids,
)
from conftest import make_remote

ROOT_ID = "1AbCdEfGhIjKlMnOpQrStUv"


class FakeListRequest:
    def __init__(self, resource, folder_id, page_token):
        self.resource = resource
        self.folder_id = folder_id
        self.page_token = page_token

    def execute(self):
        self.resource.calls.append((self.folder_id, self.page_token))
        if self.resource.error:
            raise self.resource.error
        return self.resource.pages.get((self.folder_id, self.page_token), {"files": []})


class FakeFilesResource:
    """Mimics service.files().list(...).execute() for a folder tree held in memory."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []
        self.error = None

    def list(self, q, fields, pageSize, pageToken=None):
        folder_id = q.split("'")[1]
        return FakeListRequest(self, folder_id, pageToken)


class FakeDriveApi:
    def __init__(self, pages):
        self.resource = FakeFilesResource(pages)

    def files(self):
        return self.resource


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def tree_pages():
    return {
        (ROOT_ID, None): {
            "files": [
                {"id": "f1", "name": "CS101 Handout.pdf", "mimeType": "application/pdf", "size": "2048"},
                {"id": "sub1", "name": "Quizzes", "mimeType": FOLDER_MIME_TYPE},
            ],
            "nextPageToken": "page2",
        },
        (ROOT_ID, "page2"): {
            "files": [
                {"id": "f2", "name": "MTH302 notes.docx", "mimeType": "application/msword"},
            ],
        },
        ("sub1", None): {
            "files": [
                {"id": "f3", "name": "Grand Quiz.pdf", "mimeType": "application/pdf", "size": "512"},
            ],
        },
    }


def build_drive(pages=None, clock=None, http_session=None, folder_ids=None):
    api = FakeDriveApi(pages if pages is not None else tree_pages())
    drive = DriveService(folder_ids=folder_ids or [ROOT_ID], api_key="test-key", service=api,
                         http_session_factory=lambda: http_session,
                         clock=clock or FakeClock(), page_delay=0, subfolder_delay=0, root_folder_delay=0)
    return drive, api.resource


@pytest.mark.parametrize("link, expected", [
    ("https://drive.google.com/drive/folders/1AbCdEfGhIjKlMnOpQrStUv?usp=sharing", "1AbCdEfGhIjKlMnOpQrStUv"),
    ("https://drive.google.com/open?id=1AbCdEfGhIjKlMnOpQrStUv", "1AbCdEfGhIjKlMnOpQrStUv"),
    ("https://drive.google.com/file/d/1AbCdEfGhIjKlMnOpQrStUv/view", "1AbCdEfGhIjKlMnOpQrStUv"),
    ("1AbCdEfGhIjKlMnOpQrStUv", "1AbCdEfGhIjKlMnOpQrStUv"),
    ("not a link", None),
    ("", None),
])
def test_extract_folder_id(link, expected):
    assert extract_folder_id(link) == expected


def test_parse_folder_ids_skips_bad_links_and_duplicates():
    links = ["https://drive.google.com/drive/folders/1AbCdEfGhIjKlMnOpQrStUv", "1AbCdEfGhIjKlMnOpQrStUv", "???"]
    assert parse_folder_ids(links) == ["1AbCdEfGhIjKlMnOpQrStUv"]


@pytest.mark.asyncio
async def test_refresh_walks_pages_and_subfolders():
    drive, resource = build_drive()
    files = await drive.refresh_cache()

    by_name = {f.name: f for f in files}
    assert set(by_name) == {"CS101 Handout.pdf", "MTH302 notes.docx", "Grand Quiz.pdf"}
    assert by_name["Grand Quiz.pdf"].relative_path == "Quizzes/Grand Quiz.pdf"
    assert by_name["CS101 Handout.pdf"].size_bytes == 2048
    assert by_name["CS101 Handout.pdf"].download_url == "https://drive.google.com/uc?export=download&id=f1"
    assert by_name["CS101 Handout.pdf"].view_url == "https://drive.google.com/file/d/f1/view"
    assert by_name["MTH302 notes.docx"].size_bytes is None
    assert resource.calls == [(ROOT_ID, None), (ROOT_ID, "page2"), ("sub1", None)]
    assert drive.get_cached_file_count() == 3


@pytest.mark.asyncio
async def test_cache_is_reused_until_ttl_expires():
    clock = FakeClock()
    drive, resource = build_drive(clock=clock)

    assert [f.name for f in await drive.search_by_subject_code("cs101")] == ["CS101 Handout.pdf"]
    walk_calls = len(resource.calls)
    assert [f.name for f in await drive.search_by_query("quizzes")] == ["Grand Quiz.pdf"]
    assert len(resource.calls) == walk_calls

    clock.now += CACHE_TTL_SECONDS + 1
    await drive.search_by_subject_code("CS101")
    assert len(resource.calls) == walk_calls * 2


@pytest.mark.asyncio
async def test_zero_hits_force_one_refresh_and_retry():
    pages = tree_pages()
    drive, resource = build_drive(pages=pages)
    await drive.refresh_cache()
    walk_calls = len(resource.calls)

    pages[("sub1", None)]["files"].append({"id": "f9", "name": "CS999 Handout.pdf", "mimeType": "application/pdf", "size": "10"})
    hits = await drive.search_by_subject_code("CS999")
    assert [f.name for f in hits] == ["CS999 Handout.pdf"]
    assert len(resource.calls) == walk_calls * 2

    # Still missing after the forced walk: no further retries.
    assert await drive.search_by_subject_code("ZZZ000") == []
    assert len(resource.calls) == walk_calls * 3


@pytest.mark.asyncio
async def test_concurrent_cold_searches_share_one_walk():
    drive, resource = build_drive()
    first, second = await asyncio.gather(
        drive.search_by_subject_code("CS101"),
        drive.search_by_subject_code("MTH302"),
    )
    assert [f.name for f in first] == ["CS101 Handout.pdf"]
    assert [f.name for f in second] == ["MTH302 notes.docx"]
    assert len(resource.calls) == 3


@pytest.mark.asyncio
async def test_listing_errors_are_treated_as_no_files():
    drive, resource = build_drive()
    resource.error = HttpError(httplib2.Response({"status": "403"}), b"forbidden")
    assert await drive.search_by_subject_code("CS101") == []
    assert await drive.refresh_cache(force=True) == []


@pytest.mark.asyncio
async def test_no_folders_configured_returns_nothing():
    drive = DriveService(folder_ids=[], api_key="", service=FakeDriveApi({}))
    assert await drive.search_by_subject_code("CS101") == []


@pytest.mark.asyncio
async def test_mime_type_follows_file_extension():
    pages = {
        (ROOT_ID, None): {"files": [
            {"id": "f1", "name": "CS101 Handout.pdf", "mimeType": "application/octet-stream", "size": "10"},
            {"id": "f2", "name": "CS101 notes.docx", "mimeType": "application/vnd.google-apps.document"},
            {"id": "f3", "name": "CS101 scan", "mimeType": "image/png"},
        ]},
    }
    drive, _ = build_drive(pages=pages)
    mime_types = {f.name: f.mime_type for f in await drive.refresh_cache()}
    assert mime_types == {
        "CS101 Handout.pdf": "application/pdf",
        "CS101 notes.docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "CS101 scan": "application/octet-stream",
    }


@pytest.mark.asyncio
async def test_folder_listing_itself_is_walked_once():
    pages = {
        (ROOT_ID, None): {"files": [
            {"id": ROOT_ID, "name": "Loop", "mimeType": FOLDER_MIME_TYPE},
            {"id": "f1", "name": "CS101 Handout.pdf", "mimeType": "application/pdf", "size": "10"},
        ]},
    }
    drive, resource = build_drive(pages=pages)
    files = await drive.refresh_cache()
    assert [f.name for f in files] == ["CS101 Handout.pdf"]
    assert drive.get_cached_file_count() == 1
    assert resource.calls == [(ROOT_ID, None)]


@pytest.mark.asyncio
async def test_root_nested_in_another_root_is_not_listed_twice():
    pages = {
        (ROOT_ID, None): {"files": [{"id": "shared", "name": "Shared", "mimeType": FOLDER_MIME_TYPE}]},
        ("shared", None): {"files": [{"id": "f1", "name": "MTH302 notes.pdf", "mimeType": "application/pdf"}]},
    }
    drive, _ = build_drive(pages=pages, folder_ids=[ROOT_ID, "shared"])
    assert [f.name for f in await drive.refresh_cache()] == ["MTH302 notes.pdf"]


@pytest.mark.asyncio
async def test_deep_trees_stop_at_max_depth():
    pages = {}
    for level in range(MAX_DEPTH + 5):
        folder_id = ROOT_ID if level == 0 else f"level{level}"
        pages[(folder_id, None)] = {"files": [
            {"id": f"file{level}", "name": f"CS101 part {level}.pdf", "mimeType": "application/pdf"},
            {"id": f"level{level + 1}", "name": f"L{level + 1}", "mimeType": FOLDER_MIME_TYPE},
        ]}
    drive, resource = build_drive(pages=pages)
    files = await drive.refresh_cache()
    assert len(files) == MAX_DEPTH + 1
    assert len(resource.calls) == MAX_DEPTH + 1


# --- Downloads ---

class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None, text=""):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.text = text

    @property
    def is_redirect(self):
        return "Location" in self.headers and self.status_code in (301, 302, 303, 307, 308)


class FakeHttp:
    def __init__(self, responses):
        self.responses = list(responses)
        self.urls = []
        self.opened = 0
        self.closed = 0

    def __enter__(self):
        self.opened += 1
        return self

    def __exit__(self, *exc_info):
        self.closed += 1
        return False

    def get(self, url, timeout=None, allow_redirects=True):
        assert timeout is not None
        assert allow_redirects is False
        self.urls.append(url)
        return self.responses.pop(0)


VIRUS_SCAN_PAGE = """<html><body>Google Drive can't scan this file for viruses.
<a id="uc-download-link" href="/uc?export=download&amp;confirm=t0K3n_9&amp;id=big">Download anyway</a></body></html>"""


def test_download_retries_with_confirm_token():
    entry = make_remote("CS101 Lectures.zip", size=5, file_id="big")
    http = FakeHttp([
        FakeResponse(200, headers={"Content-Type": "text/html; charset=utf-8"}, text=VIRUS_SCAN_PAGE),
        FakeResponse(200, content=b"12345", headers={"Content-Type": "application/zip"}),
    ])
    drive, _ = build_drive(http_session=http)

    downloaded = drive.download_file(entry)
    assert downloaded.data == b"12345"
    assert len(downloaded.data) == entry.size_bytes
    assert downloaded.name == "CS101 Lectures.zip"
    assert http.urls == [entry.download_url, f"{entry.download_url}&confirm=t0K3n_9"]


def test_download_follows_redirects():
    entry = make_remote("CS101 Handout.pdf", size=3)
    http = FakeHttp([
        FakeResponse(303, headers={"Location": "https://drive.usercontent.google.com/download?id=x"}),
        FakeResponse(200, content=b"pdf", headers={"Content-Type": "application/pdf"}),
    ])
    drive, _ = build_drive(http_session=http)
    assert drive.download_file(entry).data == b"pdf"
    assert http.urls[1] == "https://drive.usercontent.google.com/download?id=x"


def test_download_gives_up_after_too_many_redirects():
    entry = make_remote("CS101 Handout.pdf")
    http = FakeHttp([FakeResponse(302, headers={"Location": "/loop"}) for _ in range(MAX_REDIRECTS + 1)])
    drive, _ = build_drive(http_session=http)
    with pytest.raises(DownloadError, match="Too many redirects"):
        drive.download_file(entry)


def test_download_rejects_html_without_token():
    entry = make_remote("CS101 Handout.pdf")
    http = FakeHttp([FakeResponse(200, headers={"Content-Type": "text/html"}, text="<html>Sign in</html>")])
    drive, _ = build_drive(http_session=http)
    with pytest.raises(DownloadError, match="HTML instead of file"):
        drive.download_file(entry)


def test_download_rejects_non_200():
    entry = make_remote("CS101 Handout.pdf")
    http = FakeHttp([FakeResponse(404, headers={"Content-Type": "text/html"})])
    drive, _ = build_drive(http_session=http)
    with pytest.raises(DownloadError, match="HTTP 404"):
        drive.download_file(entry)


@pytest.mark.asyncio
async def test_async_download_wraps_blocking_call():
    entry = make_remote("CS101 Handout.pdf", size=4)
    http = FakeHttp([FakeResponse(200, content=b"data", headers={"Content-Type": "application/pdf"})])
    drive, _ = build_drive(http_session=http)
    downloaded = await drive.download(entry)
    assert downloaded.data == b"data"


def test_each_download_uses_its_own_session():
    sessions = []

    def new_session():
        http = FakeHttp([FakeResponse(200, content=b"pdf", headers={"Content-Type": "application/pdf"})])
        sessions.append(http)
        return http

    drive = DriveService(folder_ids=[ROOT_ID], api_key="test-key", service=FakeDriveApi({}),
                         http_session_factory=new_session)
    drive.download_file(make_remote("CS101 Handout.pdf", size=3))
    drive.download_file(make_remote("CS101 Quiz.pdf", size=3))
    assert len(sessions) == 2
    assert all(http.opened == 1 and http.closed == 1 for http in sessions)
