# --- START OF FULL services/security_service.py ---

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List

from tools.logger import log_info, log_warning
from tools.config import MAX_MESSAGES_PER_MINUTE, MAX_MESSAGE_LENGTH, BLOCKED_USERS, normalize_user_id
from tools.data_store import DataStore, get_store

RATE_WINDOW_SECONDS = 60
RATE_HISTORY_MAX_AGE_SECONDS = 3600
BLOCKED_USERS_KEY = "blocked_users"


def sanitize_input(text: str | None, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Drops null bytes, trims and caps the length of an incoming message."""
    if not isinstance(text, str):
        return ""
    return text.replace("\x00", "").strip()[:max_length]


class SecurityGuard:
    """
    Per-user rate limiting and the bot-wide blocked-users list.
    Users are keyed by phone number digits. The blocked list is kept in the settings
    store, seeded from BLOCKED_USERS.
    """

    def __init__(self, settings: DataStore | None = None, max_per_minute: int = MAX_MESSAGES_PER_MINUTE,
                 window_seconds: float = RATE_WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic,
                 seed_blocked: List[str] | None = None):
        self.settings = settings or get_store("settings")
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[float]] = {}

        seed = BLOCKED_USERS if seed_blocked is None else seed_blocked
        stored = self.settings.get(BLOCKED_USERS_KEY, [])
        merged = sorted(set(stored) | {normalize_user_id(n) for n in seed if normalize_user_id(n)})
        if merged != sorted(stored):
            self.settings.set(BLOCKED_USERS_KEY, merged)

    # --- Rate limiting ---

    def check_rate_limit(self, user_id: str) -> bool:
        """Records one message for the user. False when they already hit the limit in the window."""
        number = normalize_user_id(user_id)
        if not number:
            return True
        now = self._clock()
        with self._lock:
            history = self._history.setdefault(number, deque())
            while history and history[0] <= now - self.window_seconds:
                history.popleft()
            if len(history) >= self.max_per_minute:
                limited = True
            else:
                history.append(now)
                limited = False
        if limited:
            log_warning("SecurityGuard", "check_rate_limit", f"Rate limit exceeded for {number} ({self.max_per_minute}/min).")
        return not limited

    def cleanup(self, max_age_seconds: float = RATE_HISTORY_MAX_AGE_SECONDS) -> int:
        """Forgets users with no messages in max_age_seconds. Returns how many were dropped."""
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            stale = [number for number, history in self._history.items() if not history or history[-1] <= cutoff]
            for number in stale:
                del self._history[number]
        return len(stale)

    # --- Blocked users ---

    def get_blocked(self) -> List[str]:
        return list(self.settings.get(BLOCKED_USERS_KEY, []))

    def is_blocked(self, user_id: str) -> bool:
        number = normalize_user_id(user_id)
        return bool(number) and number in self.get_blocked()

    def block_user(self, user_id: str) -> bool:
        number = normalize_user_id(user_id)
        blocked = self.get_blocked()
        if not number or number in blocked:
            return False
        self.settings.set(BLOCKED_USERS_KEY, sorted(blocked + [number]))
        log_info("SecurityGuard", "block_user", f"User blocked: {number}")
        return True

    def unblock_user(self, user_id: str) -> bool:
        number = normalize_user_id(user_id)
        blocked = self.get_blocked()
        if number not in blocked:
            return False
        self.settings.set(BLOCKED_USERS_KEY, [n for n in blocked if n != number])
        log_info("SecurityGuard", "unblock_user", f"User unblocked: {number}")
        return True

# --- END OF FULL services/security_service.py ---
