# --- START OF FULL bridge/request_router.py ---

import re
from dataclasses import dataclass, field
from typing import Any, List

from tools.logger import log_info, log_error, log_warning
from tools.config import COMMAND_PREFIXES, is_admin_number, normalize_user_id
from tools.data_store import get_store
from tools.local_files import LocalFileIndex
from tools.drive_service import DriveService
from services.delivery_session import DeliverySessionManager
from services.link_moderator import LinkModerator
from services.security_service import SecurityGuard, sanitize_input
from services.commands import BotContext, CommandRequest, handle_command, is_feature_enabled
from services import ai_service
from services import stats_service

SUBJECT_CODE_RE = re.compile(r'\b([A-Z]{2,4}\d{2,4})\b', re.IGNORECASE)
FILE_INTENT_RE = re.compile(r'\b(file|files|note|notes|handout|handouts|paper|papers|quiz|assignment|gdb|solution|mid|final)\b', re.IGNORECASE)
DEMAND_RE = re.compile(r'\b(send|give|want|need|chahiye|bhejo|share|upload|please|plz|kindly|me)\b', re.IGNORECASE)
NOISE_RE = re.compile(
    r'\b(send|give|want|need|chahiye|bhejo|share|upload|please|plz|kindly|me|us|mujhe|hamen|sir|mam|bhai|admin|bot|'
    r'yaar|help|urgent|asap|jhat|file|files|pdf|doc|link|notes|handout|handouts|paper|papers|sol|solution)\b',
    re.IGNORECASE)
ALL_FLAG_RE = re.compile(r'\b(all|sab|sari|everything|sara|sare|tamam)\b', re.IGNORECASE)
MORE_RE = re.compile(r'^(send )?(more|aur|next|baki|all|sab|sari)( files?)?$', re.IGNORECASE)
SHORT_MESSAGE_WORDS = 10
BARE_CODE_WORDS = 3


@dataclass
class FileRequest:
    subject_code: str
    keywords: List[str] = field(default_factory=list)
    send_all: bool = False


@dataclass
class IncomingMessage:
    chat_id: str
    sender_id: str
    text: str
    message_id: str | None = None
    sender_is_admin: bool = False
    from_me: bool = False
    mentions: List[str] = field(default_factory=list)

    @property
    def is_group(self) -> bool:
        return self.chat_id.endswith("@g.us")


def is_more_request(text: str) -> bool:
    return bool(MORE_RE.match(text.strip()))


def detect_file_request(text: str) -> FileRequest | None:
    """
    Recognises "CS101", "cs101 handouts", "please send all MTH302 past papers".
    Up to 3 words with a code always counts; up to 10 words needs a file word;
    longer messages need a file word and a demand word.
    """
    clean = " ".join(text.split())
    match = SUBJECT_CODE_RE.search(clean)
    if not match:
        return None

    word_count = len(clean.split(" "))
    has_file_word = bool(FILE_INTENT_RE.search(clean))
    if word_count <= SHORT_MESSAGE_WORDS:
        is_request = has_file_word or word_count <= BARE_CODE_WORDS
    else:
        is_request = has_file_word and bool(DEMAND_RE.search(clean))
    if not is_request:
        return None

    remainder = clean[:match.start()] + " " + clean[match.end():]
    remainder = NOISE_RE.sub("", remainder)
    remainder = re.sub(r'[^\w\s]', '', remainder)
    remainder = ALL_FLAG_RE.sub("", remainder)
    keywords = remainder.split()
    return FileRequest(
        subject_code=match.group(1).upper(),
        keywords=keywords,
        send_all=bool(ALL_FLAG_RE.search(clean)),
    )


# --- Wiring ---
current_bridge_router: Any = None
_context: BotContext | None = None
_moderator: LinkModerator | None = None

def set_bridge(bridge_instance: Any, local_index: LocalFileIndex | None = None,
               drive: DriveService | None = None, moderator: LinkModerator | None = None,
               sessions: DeliverySessionManager | None = None, security: SecurityGuard | None = None):
    """Connects the router to a bridge and builds the services that reply through it."""
    global current_bridge_router, _context, _moderator
    current_bridge_router = bridge_instance
    local_index = local_index or LocalFileIndex()
    drive = drive if drive is not None else DriveService()
    settings = get_store("settings")
    sessions = sessions or DeliverySessionManager(bridge_instance, local_index, drive)
    _moderator = moderator or LinkModerator(settings=settings)
    _context = BotContext(sessions=sessions, local_index=local_index, drive=drive, settings=settings,
                          moderator=_moderator, security=security or SecurityGuard(settings=settings))
    log_info("request_router", "set_bridge", f"Bridge set to: {type(bridge_instance).__name__}")

def get_context() -> BotContext | None:
    return _context


async def send_message(chat_id: str, message_body: str, mentions: List[str] | None = None):
    fn_name = "send_message_router"
    if not chat_id or not message_body:
        log_warning("request_router", fn_name, f"Empty message or invalid chat_id ({chat_id}). Not sending.")
        return
    if current_bridge_router is None:
        log_error("request_router", fn_name, "No bridge configured. Cannot send message.")
        return
    try:
        await current_bridge_router.send_text(chat_id, message_body, mentions=mentions)
    except Exception as e_bridge_send:
        log_error("request_router", fn_name, "Bridge error sending message", e_bridge_send, chat_id=chat_id)


async def _apply_moderation(incoming: IncomingMessage) -> bool:
    """Returns True when the message was blocked and needs no further handling."""
    if _moderator is None:
        return False
    result = _moderator.evaluate(incoming.chat_id, incoming.sender_id, incoming.text)
    if not result.blocked:
        return False

    if result.should_delete and incoming.message_id:
        await current_bridge_router.delete_message(incoming.chat_id, incoming.message_id, incoming.sender_id)
    sender_number = normalize_user_id(incoming.sender_id)
    if result.clean_message:
        await send_message(incoming.chat_id, f"@{sender_number}: {result.clean_message}", mentions=[incoming.sender_id])
    warning = f"@{sender_number}\n{result.warning_message}\n\n⚠️ Warning {result.warnings}/{result.warning_limit}"
    await send_message(incoming.chat_id, warning, mentions=[incoming.sender_id])
    if result.should_remove:
        await send_message(incoming.chat_id, f"🚫 @{sender_number} removed after {result.warning_limit} warnings.", mentions=[incoming.sender_id])
        await current_bridge_router.remove_participant(incoming.chat_id, incoming.sender_id)
    return True


async def handle_incoming_message(incoming: IncomingMessage) -> None:
    fn_name = "handle_incoming_message"
    if _context is None:
        log_error("request_router", fn_name, "Router used before set_bridge(). Message dropped.")
        return

    text = sanitize_input(incoming.text)
    if not text:
        return
    incoming.text = text
    stats_service.increment("messages")
    chat_id = incoming.chat_id
    is_owner = incoming.from_me or is_admin_number(normalize_user_id(incoming.sender_id))

    # 1. Moderation (groups only, admins and owner exempt)
    if incoming.is_group and not is_owner and not incoming.sender_is_admin:
        if await _apply_moderation(incoming):
            return

    # 2. Blocked users and flooding
    if not is_owner:
        if _context.security.is_blocked(incoming.sender_id):
            log_info("request_router", fn_name, f"Ignoring blocked user {incoming.sender_id} in {chat_id}")
            return
        if not _context.security.check_rate_limit(incoming.sender_id):
            return

    # 3. Prefixed commands
    if text.startswith(COMMAND_PREFIXES):
        parts = text[1:].strip().split()
        if parts:
            request = CommandRequest(chat_id=chat_id, sender_id=incoming.sender_id, is_group=incoming.is_group,
                                     is_admin=incoming.sender_is_admin, is_owner=is_owner,
                                     mentions=incoming.mentions)
            log_info("request_router", fn_name, f"Command '{parts[0]}' from {incoming.sender_id} in {chat_id}")
            reply = await handle_command(_context, request, parts[0], parts[1:])
            if reply:
                await send_message(chat_id, reply)
            return

    # 4. "more" / "send more files"
    if is_more_request(text):
        if is_feature_enabled(_context.settings, chat_id, "filesharing"):
            await _context.sessions.more(chat_id)
        return

    # 5. Subject-code file request
    file_request = detect_file_request(text)
    if file_request:
        if not is_feature_enabled(_context.settings, chat_id, "filesharing"):
            log_info("request_router", fn_name, f"File sharing disabled in {chat_id}. Ignoring {file_request.subject_code}.")
            return
        log_info("request_router", fn_name, f"File search: code={file_request.subject_code} keywords={file_request.keywords} all={file_request.send_all}")
        await _context.sessions.search(chat_id, file_request.subject_code, file_request.keywords,
                                       limit="all" if file_request.send_all else None)
        return

    # 6. AI answers (direct chats, or groups that opted in)
    if not ai_service.is_ai_enabled():
        return
    if not is_feature_enabled(_context.settings, chat_id, "ai"):
        return
    if incoming.is_group and not is_feature_enabled(_context.settings, chat_id, "autohandle"):
        return
    if ai_service.should_use_ai(text):
        answer = await ai_service.generate_response(text)
        if answer:
            await send_message(chat_id, answer)

# --- END OF FULL bridge/request_router.py ---
