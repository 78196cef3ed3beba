# --- START OF FULL services/link_moderator.py ---

import re
from dataclasses import dataclass
from typing import Dict, List, Pattern, Tuple

from tools.logger import log_info
from tools.config import FEATURE_LINK_MODERATION, WARNING_LIMIT, normalize_user_id
from tools.data_store import DataStore, get_store
from services import stats_service

WHATSAPP_GROUP_RE = re.compile(r'chat\.whatsapp\.com/[A-Za-z0-9]+', re.IGNORECASE)
WHATSAPP_CHANNEL_RE = re.compile(r'whatsapp\.com/channel/[A-Za-z0-9_-]+', re.IGNORECASE)
YOUTUBE_RE = re.compile(r'\b(youtube\.com|youtu\.be)/\S*', re.IGNORECASE)

SOCIAL_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'\b(facebook\.com|fb\.com|fb\.me|m\.facebook\.com)/\S*', re.IGNORECASE), "Facebook"),
    (re.compile(r'\b(instagram\.com|instagr\.am)/\S*', re.IGNORECASE), "Instagram"),
    (re.compile(r'\b(tiktok\.com|vm\.tiktok\.com)/\S*', re.IGNORECASE), "TikTok"),
    (re.compile(r'\b(twitter\.com|x\.com|t\.co)/\S*', re.IGNORECASE), "Twitter/X"),
    (re.compile(r'\b(t\.me|telegram\.me)/\S*', re.IGNORECASE), "Telegram"),
    (re.compile(r'\bsnapchat\.com/\S*', re.IGNORECASE), "Snapchat"),
]

STATUS_MENTION_PATTERNS = [
    re.compile(r'check\s*(my|out)?\s*status', re.IGNORECASE),
    re.compile(r'see\s*(my)?\s*status', re.IGNORECASE),
    re.compile(r'view\s*(my)?\s*status', re.IGNORECASE),
    re.compile(r'dekho\s*(mera)?\s*status', re.IGNORECASE),
    re.compile(r'status\s*dekho', re.IGNORECASE),
    re.compile(r'status\s*lagaya', re.IGNORECASE),
    re.compile(r'dp\s*(dekho|check)', re.IGNORECASE),
]

GROUP_LINK_WARNING = "⚠️ *WhatsApp Group links are not allowed!*\n\n🚫 Your message was deleted.\n📌 Please follow group rules."
CHANNEL_LINK_WARNING = "⚠️ *WhatsApp Channel links are restricted!*\n\n📝 Your message was sent without the channel link.\n💡 Please share content directly instead of channel links."
SOCIAL_LINK_WARNING = "⚠️ *{name} links are not allowed!*\n\n🚫 Your message was deleted.\n📌 Only YouTube links are permitted."
STATUS_MENTION_WARNING = "⚠️ *Status mentions are not allowed!*\n\n🚫 Please don't ask people to check your status.\n📌 Share content directly in the group if needed."


@dataclass
class ModerationResult:
    blocked: bool = False
    violation_type: str | None = None
    should_delete: bool = False
    warning_message: str | None = None
    clean_message: str | None = None
    warnings: int = 0
    warning_limit: int = 0
    should_remove: bool = False


def check_message(text: str) -> ModerationResult:
    """Pure link check. YouTube links are always allowed."""
    if not text:
        return ModerationResult()

    if WHATSAPP_GROUP_RE.search(text):
        return ModerationResult(blocked=True, violation_type="whatsapp_group", should_delete=True,
                                warning_message=GROUP_LINK_WARNING)

    if WHATSAPP_CHANNEL_RE.search(text):
        return ModerationResult(blocked=True, violation_type="whatsapp_channel", should_delete=True,
                                warning_message=CHANNEL_LINK_WARNING,
                                clean_message=WHATSAPP_CHANNEL_RE.sub("[Channel Link Removed]", text))

    for pattern, name in SOCIAL_PATTERNS:
        if pattern.search(text):
            return ModerationResult(blocked=True, violation_type="social_media", should_delete=True,
                                    warning_message=SOCIAL_LINK_WARNING.format(name=name))
    return ModerationResult()


def has_status_mention(text: str) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in STATUS_MENTION_PATTERNS)


MIN_WARNING_LIMIT = 1
MAX_WARNING_LIMIT = 10


class LinkModerator:
    """
    Applies link and status-mention rules per group and counts warnings per member.
    Warnings live in the warnings store under "<chat_id>.<member number>"; a group can
    override the warning limit with its "<chat_id>.warningLimit" setting.
    """

    def __init__(self, settings: DataStore | None = None, warnings: DataStore | None = None,
                 warning_limit: int = WARNING_LIMIT):
        self.settings = settings or get_store("settings")
        self.warnings = warnings or get_store("warnings")
        self.warning_limit = warning_limit

    def _warning_key(self, chat_id: str, sender_id: str) -> str:
        return f"{chat_id}.{normalize_user_id(sender_id)}"

    def get_warning_limit(self, chat_id: str) -> int:
        return int(self.settings.get(f"{chat_id}.warningLimit", self.warning_limit))

    def set_warning_limit(self, chat_id: str, limit: int) -> None:
        if not MIN_WARNING_LIMIT <= limit <= MAX_WARNING_LIMIT:
            raise ValueError(f"Warning limit must be between {MIN_WARNING_LIMIT} and {MAX_WARNING_LIMIT}")
        self.settings.set(f"{chat_id}.warningLimit", limit)

    def is_enabled(self, chat_id: str) -> bool:
        return bool(self.settings.get(f"{chat_id}.antilink", FEATURE_LINK_MODERATION))

    def evaluate(self, chat_id: str, sender_id: str, text: str) -> ModerationResult:
        fn_name = "evaluate"
        if not self.is_enabled(chat_id):
            return ModerationResult()

        result = check_message(text)
        if not result.blocked and has_status_mention(text):
            result = ModerationResult(blocked=True, violation_type="status_mention", should_delete=True,
                                      warning_message=STATUS_MENTION_WARNING)
        if not result.blocked:
            return result

        stats_service.increment("links_blocked")
        warning_key = self._warning_key(chat_id, sender_id)
        limit = self.get_warning_limit(chat_id)
        count = int(self.warnings.get(warning_key, 0)) + 1
        result.warnings = count
        result.warning_limit = limit
        if count >= limit:
            result.should_remove = True
            self.warnings.delete(warning_key)
            log_info("LinkModerator", fn_name, f"{sender_id} reached {count} warnings in {chat_id}. Removal requested.")
        else:
            self.warnings.set(warning_key, count)
            log_info("LinkModerator", fn_name, f"{result.violation_type} from {sender_id} in {chat_id}. Warning {count}/{limit}.")
        return result

    def get_warnings(self, chat_id: str, sender_id: str) -> int:
        return int(self.warnings.get(self._warning_key(chat_id, sender_id), 0))

    def reset_warnings(self, chat_id: str, sender_id: str) -> bool:
        return self.warnings.delete(self._warning_key(chat_id, sender_id))

    def list_warnings(self, chat_id: str) -> Dict[str, int]:
        """Member number -> warning count for every warned member of the chat."""
        prefix = f"{chat_id}."
        return {
            key[len(prefix):]: int(count)
            for key, count in self.warnings.get_all().items()
            if key.startswith(prefix) and int(count) > 0
        }

    def reset_all_warnings(self, chat_id: str) -> int:
        members = self.list_warnings(chat_id)
        for number in members:
            self.warnings.delete(f"{chat_id}.{number}")
        return len(members)

# --- END OF FULL services/link_moderator.py ---
