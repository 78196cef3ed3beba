# --- START OF FULL tools/logger.py ---
import os
import pytz
from datetime import datetime, timezone
import traceback

# === Config ===
DEBUG_MODE = os.getenv("DEBUG_MODE", "True").lower() in ('true', '1', 't', 'yes', 'y')
LOG_DIR = "logs"
LOG_FILE = os.path.join(LOG_DIR, "studyshare.log") # For file logging if DEBUG_MODE is False

LOG_TIMEZONE_STR = os.getenv("LOG_TIMEZONE", "Asia/Karachi")
try:
    LOG_TIMEZONE_PYTZ = pytz.timezone(LOG_TIMEZONE_STR)
except pytz.UnknownTimeZoneError:
    print(f"[{datetime.now(timezone.utc).isoformat(timespec='seconds')}] [ERROR] [logger:init] Unknown LOG_TIMEZONE '{LOG_TIMEZONE_STR}'. Defaulting to UTC.")
    LOG_TIMEZONE_PYTZ = pytz.utc

try:
    os.makedirs(LOG_DIR, exist_ok=True)
except OSError as e:
    print(f"[{datetime.now(timezone.utc).isoformat(timespec='seconds')}] [ERROR] [logger:init] Failed to create log directory '{LOG_DIR}': {e}")

# Set by services.stats_service so errors show up in the `stats` command.
_error_sink = None

def set_error_sink(sink_func):
    """Registers a callable(module, func, message, chat_id) that receives every logged error."""
    global _error_sink
    _error_sink = sink_func

# === Helpers ===
def _format_log_entry(level: str, module: str, func: str, message: str):
    """Formats a log entry with the configured LOG_TIMEZONE_PYTZ."""
    ts_aware = datetime.now(LOG_TIMEZONE_PYTZ)
    # Format: YYYY-MM-DD HH:MM:SS TZN (e.g., 2025-05-07 10:30:00 PKT)
    ts_formatted = ts_aware.strftime("%Y-%m-%d %H:%M:%S %Z")
    return f"[{ts_formatted}] [{level.upper()}] [{module}:{func}] {message}"

def _write_entry(entry: str, traceback_str: str | None = None):
    if DEBUG_MODE:
        print(entry)
        if traceback_str: print(traceback_str)
        return
    try:
        with open(LOG_FILE, "a", encoding="utf-8") as f:
            f.write(entry + "\n")
            if traceback_str: f.write(traceback_str + "\n")
    except OSError as file_log_e:
        print(f"[{datetime.now(LOG_TIMEZONE_PYTZ).strftime('%Y-%m-%d %H:%M:%S %Z')}] [CRITICAL] [logger:_write_entry] Failed to write to log file {LOG_FILE}: {file_log_e}")
        print(entry)

# === Log functions ===
def log_info(module: str, func: str, message: str):
    """Logs informational messages. Prints only if DEBUG_MODE is True."""
    entry = _format_log_entry("INFO", module, func, message)
    if DEBUG_MODE:
        print(entry)


def log_warning(module: str, func: str, message: str, exception: Exception = None, chat_id: str | None = None):
    """Logs warning messages to console (DEBUG_MODE) or the log file."""
    traceback_str = None
    if exception:
        traceback_str = f"Warning Exception Info:\n{traceback.format_exc()}"
    if chat_id:
        message = f"[chat {chat_id}] {message}"
    _write_entry(_format_log_entry("WARNING", module, func, message), traceback_str)


def log_error(module: str, func: str, message: str, exception: Exception = None, chat_id: str | None = None):
    """Logs error messages to console/file AND forwards them to the registered error sink."""
    traceback_str = None
    if exception:
        traceback_str = traceback.format_exc()
    if chat_id:
        message = f"[chat {chat_id}] {message}"
    _write_entry(_format_log_entry("ERROR", module, func, message), traceback_str)

    if _error_sink:
        try:
            detail = f"{message}: {exception}" if exception else message
            _error_sink(module, func, detail, chat_id)
        except Exception as sink_err:
            print(f"[{datetime.now(timezone.utc).isoformat(timespec='seconds')}] [CRITICAL] [logger:log_error] Error sink failed: {sink_err}")

# --- END OF FULL tools/logger.py ---
