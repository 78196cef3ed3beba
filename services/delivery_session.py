# --- START OF FULL services/delivery_session.py ---
"""
Subject-code file search and paced, resumable delivery to a chat.

search() gathers matching files from the local share and Google Drive, ranks them,
stores a DeliverySession for the chat and starts a background drain that sends one
file per iteration until the batch limit, a pause, or the end of the list.
"""

import asyncio
from typing import Any, List, Literal, Protocol, Sequence, Set

from tools.logger import log_info, log_error, log_warning
from tools.config import FILE_BATCH_SIZE, FILE_SEND_DELAY, OWNER_HELP_NUMBER, BOT_PREFIX, get_message, normalize_user_id, user_jid
from tools.file_entry import FileEntry, LocalFile, RemoteFile, DownloadedFile
from tools.local_files import LocalFileIndex
from tools.drive_service import DriveService
from services import file_categorizer
from services import stats_service
from services.session_registry import DeliverySession, SessionRegistry

MORE_INCREMENT = 10


class ChatTransport(Protocol):
    async def send_text(self, chat_id: str, text: str, mentions: List[str] | None = None) -> None: ...
    async def send_document(self, chat_id: str, data: bytes, file_name: str, mime_type: str) -> None: ...


class DeliverySessionManager:

    def __init__(self, transport: ChatTransport, local_index: LocalFileIndex,
                 drive: DriveService | None = None, registry: SessionRegistry | None = None,
                 inter_file_delay: float = FILE_SEND_DELAY, page_size: int = FILE_BATCH_SIZE,
                 owner_number: str = OWNER_HELP_NUMBER):
        self.transport = transport
        self.local_index = local_index
        self.drive = drive
        self.registry = registry if registry is not None else SessionRegistry()
        self.inter_file_delay = inter_file_delay
        self.page_size = page_size
        self.owner_number = owner_number
        self._drain_tasks: Set[asyncio.Task] = set()

    # --- Search ---

    async def _gather_matches(self, subject_code: str) -> List[FileEntry]:
        fn_name = "_gather_matches"
        lookups: List[Any] = [asyncio.to_thread(self.local_index.search_files, subject_code)]
        if self.drive is not None:
            lookups.append(self.drive.search_by_subject_code(subject_code))
        results = await asyncio.gather(*lookups, return_exceptions=True)

        merged: List[FileEntry] = []
        for source_name, result in zip(("local", "drive"), results):
            if isinstance(result, BaseException):
                log_error("DeliverySessionManager", fn_name, f"{source_name} search for {subject_code} failed: {result}", result)
                continue
            merged.extend(result)
        return merged

    async def find_files(self, subject_code: str, keywords: Sequence[str] = ()) -> List[FileEntry]:
        """All matching files, keyword filtered and de-duplicated by name (local copies win)."""
        matches = await self._gather_matches(subject_code)
        matches = file_categorizer.filter_by_keywords(matches, keywords)
        return file_categorizer.dedupe_by_name(matches)

    async def search(self, chat_id: str, subject_code: str, keywords: Sequence[str] = (),
                     limit: int | Literal["all"] | None = None) -> DeliverySession | None:
        fn_name = "search"
        subject_code = subject_code.upper()
        keywords = list(keywords or [])
        if limit is None:
            limit = self.page_size
        log_info("DeliverySessionManager", fn_name, f"Chat {chat_id}: searching {subject_code} keywords={keywords} limit={limit}")

        unique = await self.find_files(subject_code, keywords)
        if not unique:
            keyword_note = f' with keywords "{" ".join(keywords)}"' if keywords else ""
            await self._notify(chat_id, get_message(
                "files_not_found",
                "❌ *No files found* for *{code}*{keyword_note}\n\n👤 Please contact the Owner for assistance:\n@{owner}",
                code=subject_code, keyword_note=keyword_note, owner=normalize_user_id(self.owner_number),
            ), mentions=[user_jid(self.owner_number)] if self.owner_number else None)
            return None

        categorized = file_categorizer.categorize(unique)
        if limit == "all":
            files = file_categorizer.ordered_files(categorized)
            batch_limit = None
        else:
            batch_limit = max(int(limit), 1)
            files = file_categorizer.ranked_files(categorized, cap=file_categorizer.DEFAULT_PRIORITY_CAP)

        session = DeliverySession(chat_id=chat_id, subject_code=subject_code, files=tuple(files), batch_limit=batch_limit)
        self.registry.put(session)

        sending = session.total if batch_limit is None else min(session.total, batch_limit)
        more_hint = ""
        if batch_limit is not None and session.total > batch_limit:
            more_hint = get_message("files_more_hint", '\n\n💡 _Type "send more" or "more files" to get additional files._')
        await self._notify(chat_id, get_message(
            "files_found",
            "📚 *Found {total} files* for {code}\n🚀 Sending {sending} files...{more_hint}\n\n⏳ *Please wait for files to arrive.*",
            total=session.total, code=subject_code,
            sending="ALL" if batch_limit is None else sending, more_hint=more_hint,
        ))

        self._spawn_drain(session)
        return session

    # --- Drain ---

    def _spawn_drain(self, session: DeliverySession) -> asyncio.Task | None:
        running = self.registry.running_task(session)
        if running is not None:
            # The live drain re-reads cursor/paused/batch_limit every iteration.
            return running
        task = asyncio.create_task(self._drain_session(session), name=f"drain:{session.chat_id}")
        self.registry.set_task(session, task)
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)
        return task

    async def drain(self, chat_id: str) -> None:
        """Sends files for the chat's current session until it completes, stalls or is paused.
        Joins the running drain instead of starting a second one."""
        session = self.registry.get(chat_id)
        if session is None:
            return
        task = self._spawn_drain(session)
        if task is not None:
            await task

    async def _fetch(self, entry: FileEntry) -> DownloadedFile:
        if isinstance(entry, LocalFile):
            data = await asyncio.to_thread(self.local_index.read_file, entry)
            return DownloadedFile(data=data, name=entry.name, mime_type=entry.mime_type)
        if isinstance(entry, RemoteFile):
            if self.drive is None:
                raise RuntimeError(f"No Drive provider configured for {entry.name}")
            return await self.drive.download(entry)
        raise TypeError(f"Unsupported file entry: {type(entry).__name__}")

    async def _drain_session(self, session: DeliverySession) -> None:
        fn_name = "_drain_session"
        chat_id = session.chat_id
        sent = 0
        # Re-checked every iteration: a newer search replaces the registered session.
        while self.registry.is_current(session) and session.can_advance():
            entry = session.files[session.cursor]
            try:
                downloaded = await self._fetch(entry)
                await self.transport.send_document(chat_id, downloaded.data, downloaded.name, downloaded.mime_type)
                stats_service.log_file_share(entry.name, chat_id, entry.source)
                sent += 1
            except Exception as e:
                log_error("DeliverySessionManager", fn_name, f"Failed to send {entry.name} ({entry.source})", e, chat_id=chat_id)
                await self._notify(chat_id, get_message("file_send_failed", "❌ Failed to send: {name}", name=entry.name))

            session.cursor += 1
            if session.can_advance() and self.inter_file_delay > 0:
                await asyncio.sleep(self.inter_file_delay)

        if not self.registry.is_current(session):
            log_info("DeliverySessionManager", fn_name, f"Chat {chat_id}: drain for {session.subject_code} superseded after {sent} files.")
        elif session.is_complete:
            self.registry.remove(chat_id, session)
            log_info("DeliverySessionManager", fn_name, f"Chat {chat_id}: session {session.subject_code} completed ({session.total} files).")
        else:
            log_info("DeliverySessionManager", fn_name, f"Chat {chat_id}: session {session.subject_code} {session.state} at {session.cursor}/{session.total}.")

    # --- Session controls ---

    async def stop(self, chat_id: str) -> bool:
        session = self.registry.get(chat_id)
        if session is None:
            await self._notify(chat_id, get_message("session_none_active", "❌ No active file sending session found."))
            return False
        session.paused = True
        await self._notify(chat_id, get_message(
            "session_paused",
            "⏸️ *File sending paused*\n\n📚 Subject: *{code}*\n📊 Progress: {sent}/{total} files sent\n\n▶️ Type `{prefix}resume {code}` to continue",
            code=session.subject_code, sent=session.cursor, total=session.total, prefix=BOT_PREFIX,
        ))
        return True

    async def resume(self, chat_id: str, subject_code: str) -> bool:
        subject_code = (subject_code or "").strip().upper()
        if not subject_code:
            await self._notify(chat_id, get_message(
                "resume_usage", "❌ Please specify subject code\n\nUsage: {prefix}resume CS101", prefix=BOT_PREFIX))
            return False
        session = self.registry.get(chat_id)
        if session is None:
            await self._notify(chat_id, get_message(
                "resume_no_session",
                "❌ No paused session found for *{code}*\n\nStart a new search by typing the subject code.",
                code=subject_code))
            return False
        if session.subject_code != subject_code:
            await self._notify(chat_id, get_message(
                "resume_mismatch",
                "❌ No paused session for *{code}*\n\nYou have a paused session for *{active}*\nUse: {prefix}resume {active}",
                code=subject_code, active=session.subject_code, prefix=BOT_PREFIX))
            return False

        session.paused = False
        await self._notify(chat_id, get_message(
            "session_resumed",
            "▶️ *Resuming file sending*\n\n📚 Subject: *{code}*\n📊 Continuing from file {next}/{total}",
            code=session.subject_code, next=min(session.cursor + 1, session.total), total=session.total))
        self._spawn_drain(session)
        return True

    async def more(self, chat_id: str) -> bool:
        session = self.registry.get(chat_id)
        if session is None:
            await self._notify(chat_id, get_message("more_no_session", "❌ No previous search to continue."))
            return False
        if session.is_complete:
            self.registry.remove(chat_id, session)
            await self._notify(chat_id, get_message("more_all_sent", "✅ All files from previous search have been sent."))
            return False

        if session.batch_limit is not None:
            session.batch_limit = min(session.batch_limit + MORE_INCREMENT, session.total)
        session.paused = False
        await self._notify(chat_id, get_message(
            "more_sending", "🔄 Sending {count} more files...",
            count=min(MORE_INCREMENT, session.remaining)))
        self._spawn_drain(session)
        return True

    # --- Helpers ---

    async def _notify(self, chat_id: str, text: str, mentions: List[str] | None = None) -> None:
        try:
            await self.transport.send_text(chat_id, text, mentions=mentions)
        except Exception as e:
            log_warning("DeliverySessionManager", "_notify", f"Could not send text to chat: {e}", e, chat_id=chat_id)

    def get_session(self, chat_id: str) -> DeliverySession | None:
        return self.registry.get(chat_id)

    async def wait_for_drain(self, chat_id: str) -> None:
        task = self.registry.get_task(chat_id)
        if task is not None:
            await task

    async def shutdown(self) -> None:
        """Pauses every session and waits for drains to finish their current file."""
        for chat_id in self.registry.chat_ids():
            session = self.registry.get(chat_id)
            if session is not None:
                session.paused = True
        if self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)

# --- END OF FULL services/delivery_session.py ---
