import pytest

from tools.file_entry import format_size, guess_mime_type
from tools.local_files import LocalFileIndex


@pytest.fixture
def index(files_dir):
    (files_dir / "CS101 Handout.pdf").write_bytes(b"a" * 10)
    (files_dir / "README.md").write_text("share notes")
    (files_dir / ".hidden.pdf").write_bytes(b"h")
    quizzes = files_dir / "MTH302"
    quizzes.mkdir()
    (quizzes / "Grand Quiz.docx").write_bytes(b"b" * 20)
    return LocalFileIndex(str(files_dir))


def test_list_files_skips_dotfiles_and_readme(index):
    names = [f.relative_path for f in index.list_files()]
    assert names == ["CS101 Handout.pdf", "MTH302/Grand Quiz.docx"]
    assert index.get_file_count() == 2


def test_entries_carry_size_and_mime_type(index):
    entry = index.get_file("cs101 handout.pdf")
    assert entry.size_bytes == 10
    assert entry.mime_type == "application/pdf"
    assert entry.source == "local"
    assert index.read_file(entry) == b"a" * 10


def test_search_matches_name_or_folder(index):
    assert [f.name for f in index.search_files("cs101")] == ["CS101 Handout.pdf"]
    assert [f.name for f in index.get_files_by_subject_code("MTH302")] == ["Grand Quiz.docx"]
    assert index.search_files("   ") == []


def test_traversal_names_are_rejected(index):
    assert index.get_file("../secrets.txt") is None
    assert not index.is_valid_file_name("../../etc/passwd")
    assert not index.is_valid_file_name("")
    assert index.is_valid_file_name("MTH302/Grand Quiz.docx")


def test_missing_root_is_created(tmp_path):
    root = tmp_path / "new-files"
    index = LocalFileIndex(str(root))
    assert root.is_dir()
    assert index.list_files() == []
    assert "No files available" in index.format_file_list()


def test_format_file_list_truncates(index):
    text = index.format_file_list(limit=1)
    assert "(2)" in text
    assert "1. CS101 Handout.pdf (10 B)" in text
    assert "...and 1 more" in text


@pytest.mark.parametrize("name, expected", [
    ("notes.PDF", "application/pdf"),
    ("slides.pptx", "application/vnd.openxmlformats-officedocument.presentationml.presentation"),
    ("archive.7z", "application/octet-stream"),
])
def test_guess_mime_type(name, expected):
    assert guess_mime_type(name) == expected


@pytest.mark.parametrize("size, expected", [
    (None, "unknown size"),
    (0, "0 B"),
    (512, "512 B"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
])
def test_format_size(size, expected):
    assert format_size(size) == expected
