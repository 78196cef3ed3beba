# --- START OF FULL services/session_registry.py ---
import asyncio
from dataclasses import dataclass
from typing import Dict, List, Tuple

from tools.logger import log_info
from tools.file_entry import FileEntry


@dataclass
class DeliverySession:
    """One chat's in-progress file delivery. batch_limit None means no limit."""
    chat_id: str
    subject_code: str
    files: Tuple[FileEntry, ...]
    batch_limit: int | None
    cursor: int = 0
    paused: bool = False

    @property
    def total(self) -> int:
        return len(self.files)

    @property
    def remaining(self) -> int:
        return self.total - self.cursor

    @property
    def is_complete(self) -> bool:
        return self.cursor >= self.total

    @property
    def at_batch_limit(self) -> bool:
        return self.batch_limit is not None and self.cursor >= self.batch_limit

    def can_advance(self) -> bool:
        return not self.paused and not self.is_complete and not self.at_batch_limit

    @property
    def state(self) -> str:
        if self.is_complete:
            return "completed"
        if self.paused:
            return "paused"
        if self.at_batch_limit:
            return "stalled"
        return "active"


class SessionRegistry:
    """
    Holds at most one DeliverySession per chat plus the drain task working on it.
    All access happens on the event loop thread.
    """

    def __init__(self):
        self._sessions: Dict[str, DeliverySession] = {}
        self._tasks: Dict[str, Tuple[DeliverySession, asyncio.Task]] = {}

    def get(self, chat_id: str) -> DeliverySession | None:
        return self._sessions.get(chat_id)

    def put(self, session: DeliverySession) -> None:
        replaced = self._sessions.get(session.chat_id)
        self._sessions[session.chat_id] = session
        if replaced is not None:
            log_info("SessionRegistry", "put", f"Chat {session.chat_id}: session {replaced.subject_code} replaced by {session.subject_code}.")

    def remove(self, chat_id: str, session: DeliverySession | None = None) -> bool:
        """Removes the chat's session. When session is given, only removes it if it is still the current one."""
        current = self._sessions.get(chat_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[chat_id]
        return True

    def is_current(self, session: DeliverySession) -> bool:
        return self._sessions.get(session.chat_id) is session

    # --- Drain task slot ---

    def running_task(self, session: DeliverySession) -> asyncio.Task | None:
        """Returns the live drain task for this exact session object, if any."""
        slot = self._tasks.get(session.chat_id)
        if slot is None:
            return None
        slot_session, task = slot
        if slot_session is not session or task.done():
            return None
        return task

    def set_task(self, session: DeliverySession, task: asyncio.Task) -> None:
        self._tasks[session.chat_id] = (session, task)
        task.add_done_callback(lambda t, chat_id=session.chat_id: self._clear_task(chat_id, t))

    def _clear_task(self, chat_id: str, task: asyncio.Task) -> None:
        slot = self._tasks.get(chat_id)
        if slot is not None and slot[1] is task:
            del self._tasks[chat_id]

    def get_task(self, chat_id: str) -> asyncio.Task | None:
        slot = self._tasks.get(chat_id)
        return slot[1] if slot else None

    def chat_ids(self) -> List[str]:
        return list(self._sessions.keys())

# --- END OF FULL services/session_registry.py ---
