# --- START OF FULL tools/local_files.py ---

import os
from datetime import datetime
from typing import List

from tools.logger import log_info, log_error, log_warning
from tools.config import FILES_DIR
from tools.file_entry import LocalFile, guess_mime_type

RESERVED_NAMES = {"readme.md"}


class LocalFileIndex:
    """Read-only view of the files shared from a local directory tree."""

    def __init__(self, root_dir: str = FILES_DIR):
        self.root_dir = os.path.abspath(root_dir)
        if not os.path.isdir(self.root_dir):
            try:
                os.makedirs(self.root_dir, exist_ok=True)
                log_info("LocalFileIndex", "__init__", f"Created files directory: {self.root_dir}")
            except OSError as e:
                log_error("LocalFileIndex", "__init__", f"Could not create files directory {self.root_dir}", e)

    def list_files(self) -> List[LocalFile]:
        """Walks the root directory, skipping dotfiles and the readme."""
        fn_name = "list_files"
        files: List[LocalFile] = []
        try:
            for dir_path, dir_names, file_names in os.walk(self.root_dir):
                dir_names[:] = sorted(d for d in dir_names if not d.startswith("."))
                for file_name in sorted(file_names):
                    if file_name.startswith(".") or file_name.lower() in RESERVED_NAMES:
                        continue
                    full_path = os.path.join(dir_path, file_name)
                    try:
                        stat = os.stat(full_path)
                    except OSError as e_stat:
                        log_warning("LocalFileIndex", fn_name, f"Cannot stat {full_path}: {e_stat}")
                        continue
                    relative_path = os.path.relpath(full_path, self.root_dir).replace(os.sep, "/")
                    files.append(LocalFile(
                        name=file_name,
                        relative_path=relative_path,
                        path=full_path,
                        size_bytes=stat.st_size,
                        mime_type=guess_mime_type(file_name),
                        modified=datetime.fromtimestamp(stat.st_mtime),
                    ))
        except OSError as e:
            log_error("LocalFileIndex", fn_name, f"Error walking {self.root_dir}", e)
            return []
        return files

    def search_files(self, query: str) -> List[LocalFile]:
        """Case-insensitive substring match against name and relative path."""
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            f for f in self.list_files()
            if needle in f.name.lower() or needle in f.relative_path.lower()
        ]

    def get_files_by_subject_code(self, subject_code: str) -> List[LocalFile]:
        return self.search_files(subject_code)

    def get_file(self, file_name: str) -> LocalFile | None:
        """Finds a file by exact name (case-insensitive). Names that try to leave the root are rejected."""
        if not self.is_valid_file_name(file_name):
            log_warning("LocalFileIndex", "get_file", f"Rejected file name: '{file_name}'")
            return None
        lowered = file_name.lower()
        for f in self.list_files():
            if f.name.lower() == lowered or f.relative_path.lower() == lowered:
                return f
        return None

    def is_valid_file_name(self, file_name: str) -> bool:
        if not file_name or "\x00" in file_name:
            return False
        resolved = os.path.realpath(os.path.join(self.root_dir, file_name))
        root = os.path.realpath(self.root_dir)
        return os.path.commonpath([resolved, root]) == root and resolved != root

    def read_file(self, entry: LocalFile) -> bytes:
        """Reads a listed file into memory. The path must still be inside the root."""
        if not self.is_valid_file_name(os.path.relpath(entry.path, self.root_dir)):
            raise ValueError(f"File is outside the shared directory: {entry.name}")
        with open(entry.path, "rb") as f:
            return f.read()

    def get_file_count(self) -> int:
        return len(self.list_files())

    def format_file_list(self, limit: int = 50) -> str:
        files = self.list_files()
        if not files:
            return "📂 No files available right now."
        lines = [f"📂 *Available files* ({len(files)})", ""]
        for index, f in enumerate(files[:limit], start=1):
            lines.append(f"{index}. {f.relative_path} ({f.size_label})")
        if len(files) > limit:
            lines.append("")
            lines.append(f"...and {len(files) - limit} more. Send a subject code (e.g. CS101) to get files.")
        return "\n".join(lines)

# --- END OF FULL tools/local_files.py ---
