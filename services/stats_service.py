# --- START OF FULL services/stats_service.py ---
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List

from tools.logger import set_error_sink

MAX_LOG_ENTRIES = 100

_stats_lock = threading.Lock()
_started_at = datetime.now(timezone.utc)
_counters: Dict[str, int] = {
    "messages": 0,
    "commands": 0,
    "files_shared": 0,
    "links_blocked": 0,
    "ai_replies": 0,
    "errors": 0,
}
_command_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_LOG_ENTRIES)
_file_share_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_LOG_ENTRIES)
_error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_LOG_ENTRIES)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')

def increment(counter: str, amount: int = 1):
    with _stats_lock:
        _counters[counter] = _counters.get(counter, 0) + amount

def log_command(command: str, chat_id: str, sender_id: str | None = None):
    with _stats_lock:
        _counters["commands"] += 1
        _command_log.append({"command": command, "chat_id": chat_id, "sender_id": sender_id, "at": _now_iso()})

def log_file_share(file_name: str, chat_id: str, source: str):
    with _stats_lock:
        _counters["files_shared"] += 1
        _file_share_log.append({"file_name": file_name, "chat_id": chat_id, "source": source, "at": _now_iso()})

def log_error(module: str, func: str, message: str, chat_id: str | None = None):
    with _stats_lock:
        _counters["errors"] += 1
        _error_log.append({"where": f"{module}:{func}", "message": message, "chat_id": chat_id, "at": _now_iso()})

def get_uptime() -> str:
    delta = datetime.now(timezone.utc) - _started_at
    total_minutes = int(delta.total_seconds() // 60)
    days, rem_minutes = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem_minutes, 60)
    return f"{days}d {hours}h {minutes}m"

def get_stats() -> Dict[str, Any]:
    with _stats_lock:
        return {
            "counters": dict(_counters),
            "uptime": get_uptime(),
            "recent_commands": list(_command_log)[-5:],
            "recent_files": list(_file_share_log)[-5:],
            "recent_errors": list(_error_log)[-5:],
        }

def get_error_log() -> List[Dict[str, Any]]:
    with _stats_lock:
        return list(_error_log)

def format_stats() -> str:
    stats = get_stats()
    counters = stats["counters"]
    lines = [
        "📊 *Bot Statistics*",
        "",
        f"⏱️ Uptime: {stats['uptime']}",
        f"💬 Messages: {counters['messages']}",
        f"⌨️ Commands: {counters['commands']}",
        f"📁 Files shared: {counters['files_shared']}",
        f"🚫 Links blocked: {counters['links_blocked']}",
        f"🤖 AI replies: {counters['ai_replies']}",
        f"⚠️ Errors: {counters['errors']}",
    ]
    if stats["recent_files"]:
        lines.append("")
        lines.append("*Recent files:*")
        lines.extend(f"• {entry['file_name']}" for entry in reversed(stats["recent_files"]))
    return "\n".join(lines)

def reset_stats():
    global _started_at
    with _stats_lock:
        for key in _counters:
            _counters[key] = 0
        _command_log.clear()
        _file_share_log.clear()
        _error_log.clear()
        _started_at = datetime.now(timezone.utc)


set_error_sink(log_error)

# --- END OF FULL services/stats_service.py ---
