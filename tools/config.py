# --- START OF FULL tools/config.py ---

import os
import re
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

from tools.logger import log_error, log_warning

load_dotenv() # Load .env variables first

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ('true', '1', 't', 'yes', 'y', 'on')

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log_warning("config", "_env_int", f"Invalid integer for {name}: '{raw}'. Using {default}.")
        return default

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log_warning("config", "_env_float", f"Invalid number for {name}: '{raw}'. Using {default}.")
        return default

def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]

# --- Bot identity ---
BOT_NAME = os.getenv("BOT_NAME", "StudyShare Bot")
BOT_PREFIX = os.getenv("BOT_PREFIX", "!")
COMMAND_PREFIXES = ("!", ".")
ADMIN_NUMBERS = [re.sub(r'\D', '', n) for n in _env_list("ADMIN_NUMBERS")]
OWNER_HELP_NUMBER = os.getenv("OWNER_HELP_NUMBER", "")

# --- Paths ---
FILES_DIR = os.getenv("FILES_DIR", "files")
DATA_DIR = os.getenv("DATA_DIR", "data")
MESSAGES_PATH = os.path.join("config", "messages.yaml")

# --- Features ---
FEATURE_FILE_SHARING = _env_bool("FEATURE_FILE_SHARING", True)
FEATURE_LINK_MODERATION = _env_bool("FEATURE_LINK_MODERATION", True)
FEATURE_AI = _env_bool("FEATURE_AI", False)
AUTO_HANDLE_GROUP = _env_bool("AUTO_HANDLE_GROUP", False)
WARNING_LIMIT = _env_int("WARNING_LIMIT", 3)

# --- Abuse protection ---
MAX_MESSAGES_PER_MINUTE = _env_int("MAX_MESSAGES_PER_MINUTE", 20)
MAX_MESSAGE_LENGTH = _env_int("MAX_MESSAGE_LENGTH", 2000)
BLOCKED_USERS = [re.sub(r'\D', '', n) for n in _env_list("BLOCKED_USERS")]

# --- File delivery ---
FILE_BATCH_SIZE = _env_int("FILE_BATCH_SIZE", 10)
FILE_SEND_DELAY = _env_float("FILE_SEND_DELAY", 1.0)

# --- Google Drive ---
GDRIVE_FOLDER_LINKS = _env_list("GDRIVE_FOLDER_LINKS")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
DRIVE_CACHE_REFRESH_MINUTES = _env_int("DRIVE_CACHE_REFRESH_MINUTES", 30)

# --- AI ---
AI_API_KEY = os.getenv("AI_API_KEY") or os.getenv("OPENAI_API_KEY", "")
AI_BASE_URL = os.getenv("AI_BASE_URL") or None
AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")

# --- Server ---
PORT = _env_int("PORT", 8000)
APP_ENV = os.getenv("APP_ENV", "production").lower()


def normalize_user_id(user_id_from_bridge: str | None) -> str:
    """Digits of a WhatsApp id: "923001112223:12@c.us" -> "923001112223"."""
    if not user_id_from_bridge: return ""
    temp_id = user_id_from_bridge.split('@')[0].split(':')[0]
    return re.sub(r'\D', '', temp_id)

def user_jid(number: str | None) -> str:
    """Mention id the WhatsApp client resolves, e.g. "923001112223@s.whatsapp.net"."""
    digits = normalize_user_id(number)
    return f"{digits}@s.whatsapp.net" if digits else ""

def is_admin_number(number: str | None) -> bool:
    if not number:
        return False
    return re.sub(r'\D', '', number) in ADMIN_NUMBERS


# --- User-facing messages ---
_messages: Dict[str, Any] | None = None

def load_messages(path: str = MESSAGES_PATH) -> Dict[str, Any]:
    global _messages
    try:
        if os.path.exists(path):
            with open(path, 'r', encoding="utf-8") as f:
                _messages = yaml.safe_load(f) or {}
        else:
            _messages = {}
    except (OSError, yaml.YAMLError) as e_msg_load:
        _messages = {}
        log_error("config", "load_messages", f"Failed to load {path}: {e_msg_load}", e_msg_load)
    return _messages

def get_message(key: str, default: str, **fmt: Any) -> str:
    """Returns the messages.yaml text for key (or default), formatted with fmt."""
    messages = _messages if _messages is not None else load_messages()
    template = messages.get(key, default)
    if not fmt:
        return template
    try:
        return template.format(**fmt)
    except (KeyError, IndexError, ValueError) as e_fmt:
        log_warning("config", "get_message", f"Bad placeholders in message '{key}': {e_fmt}")
        return default.format(**fmt)

# --- END OF FULL tools/config.py ---
