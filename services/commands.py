# --- START OF FULL services/commands.py ---

from dataclasses import dataclass, field
from typing import Dict, List

from tools.logger import log_info, log_error, log_warning
from tools.config import BOT_NAME, BOT_PREFIX, FEATURE_FILE_SHARING, FEATURE_LINK_MODERATION, FEATURE_AI, AUTO_HANDLE_GROUP, normalize_user_id
from tools.data_store import DataStore
from tools.local_files import LocalFileIndex
from tools.drive_service import DriveService
from services.delivery_session import DeliverySessionManager
from services.link_moderator import LinkModerator, MIN_WARNING_LIMIT, MAX_WARNING_LIMIT
from services.security_service import SecurityGuard
from services import ai_service
from services import stats_service

# Per-chat feature toggles: setting suffix -> (display name, default)
FEATURES: Dict[str, tuple] = {
    "filesharing": ("File Sharing & Search", FEATURE_FILE_SHARING),
    "antilink": ("Link Moderation", FEATURE_LINK_MODERATION),
    "ai": ("AI Replies", FEATURE_AI),
    "autohandle": ("AI Replies in Group", AUTO_HANDLE_GROUP),
}
SEARCH_RESULT_LIMIT = 20


@dataclass
class BotContext:
    """Shared services the command handlers work with."""
    sessions: DeliverySessionManager
    local_index: LocalFileIndex
    drive: DriveService | None
    settings: DataStore
    moderator: LinkModerator | None = None
    security: SecurityGuard | None = None


@dataclass
class CommandRequest:
    chat_id: str
    sender_id: str
    is_group: bool = False
    is_admin: bool = False
    is_owner: bool = False
    mentions: List[str] = field(default_factory=list)

    @property
    def can_manage(self) -> bool:
        return self.is_owner or self.is_admin or not self.is_group


def is_feature_enabled(settings: DataStore, chat_id: str, feature: str) -> bool:
    _, default = FEATURES[feature]
    return bool(settings.get(f"{chat_id}.{feature}", default))


# --- Private Handler Functions ---

def _handle_help() -> str:
    p = BOT_PREFIX
    return f"""🤖 *{BOT_NAME}*

📚 *Files*
Send a subject code (e.g. CS101) to get files
CS101 all - send every file
more - next batch of files
{p}files - list local files
{p}search <text> - search file names
{p}stop - pause sending
{p}resume <code> - continue sending

⚙️ *Admin*
{p}filesharing on|off
{p}antilink on|off
{p}autohandle on|off
{p}showwarn @user - warnings of a member
{p}warnlist - all warnings in this group
{p}resetwarn @user|all - clear warnings
{p}setwarnlimit <1-10> - removal threshold
{p}botzero / {p}botall
{p}features - feature status
{p}allfiles - file counts
{p}refreshdrive - reload Drive files
{p}stats - bot statistics

👑 *Owner*
{p}block <number> / {p}unblock <number>
{p}blocklist - blocked users

🤖 {p}ask <question> - ask the AI"""


def _handle_files(ctx: BotContext, request: CommandRequest) -> str:
    if not is_feature_enabled(ctx.settings, request.chat_id, "filesharing"):
        return "❌ File sharing is currently disabled."
    return ctx.local_index.format_file_list()


async def _handle_search(ctx: BotContext, request: CommandRequest, args: List[str]) -> str:
    fn_name = "_handle_search"
    if not is_feature_enabled(ctx.settings, request.chat_id, "filesharing"):
        return "❌ File sharing is currently disabled."
    query = " ".join(args).strip()
    if not query:
        return f"❌ Please specify what to search for\n\nUsage: {BOT_PREFIX}search data structures"

    names: List[str] = [f.relative_path for f in ctx.local_index.search_files(query)]
    if ctx.drive is not None:
        names.extend(f.relative_path for f in await ctx.drive.search_by_query(query))
    log_info("commands", fn_name, f"Search '{query}' in {request.chat_id}: {len(names)} hits.")
    if not names:
        return f"❌ No files found matching *{query}*"
    lines = [f"🔎 *{len(names)} files* matching *{query}*", ""]
    lines.extend(f"{i}. {name}" for i, name in enumerate(names[:SEARCH_RESULT_LIMIT], start=1))
    if len(names) > SEARCH_RESULT_LIMIT:
        lines.append(f"...and {len(names) - SEARCH_RESULT_LIMIT} more")
    return "\n".join(lines)


def _handle_allfiles(ctx: BotContext) -> str:
    local_count = ctx.local_index.get_file_count()
    drive_count = ctx.drive.get_cached_file_count() if ctx.drive is not None else 0
    return (
        "📁 *ALL AVAILABLE FILES*\n━━━━━━━━━━━━━━━━━━━━━\n\n"
        f"📂 *Local Storage:* {local_count} files\n"
        f"☁️ *Google Drive:* {drive_count} files\n"
        f"📊 *Total:* {local_count + drive_count} files"
    )


def _handle_toggle(ctx: BotContext, request: CommandRequest, feature: str, args: List[str]) -> str:
    display_name, _ = FEATURES[feature]
    if not args or args[0].lower() not in ("on", "off"):
        state = "ON ✅" if is_feature_enabled(ctx.settings, request.chat_id, feature) else "OFF ❌"
        return f"⚙️ *{display_name}* is {state}\n\nUsage: {BOT_PREFIX}{feature} on|off"
    enabled = args[0].lower() == "on"
    ctx.settings.set(f"{request.chat_id}.{feature}", enabled)
    log_info("commands", "_handle_toggle", f"{feature} set to {enabled} in {request.chat_id} by {request.sender_id}")
    return f"{'✅' if enabled else '❌'} *{display_name}* {'enabled' if enabled else 'disabled'}."


def _handle_set_all(ctx: BotContext, request: CommandRequest, enabled: bool) -> str:
    for feature in FEATURES:
        ctx.settings.set(f"{request.chat_id}.{feature}", enabled)
    if enabled:
        return "🔊 *ALL FEATURES ENABLED*\n\nBot is now fully operational! 🤖"
    return f"🔇 *COMPLETE SILENCE MODE*\n\nAll features have been disabled in this chat.\n✅ Owner commands still work\n📝 Use {BOT_PREFIX}botall to enable everything again."


def _handle_features(ctx: BotContext, request: CommandRequest) -> str:
    lines = ["⚙️ *Feature Status*", ""]
    for feature, (display_name, _) in FEATURES.items():
        mark = "✅" if is_feature_enabled(ctx.settings, request.chat_id, feature) else "❌"
        lines.append(f"{mark} {display_name} ({BOT_PREFIX}{feature})")
    return "\n".join(lines)


async def _handle_ask(ctx: BotContext, request: CommandRequest, args: List[str]) -> str:
    question = " ".join(args).strip()
    if not question:
        return f"❌ Please ask a question\n\nUsage: {BOT_PREFIX}ask what is recursion?"
    if not ai_service.is_ai_enabled() or not is_feature_enabled(ctx.settings, request.chat_id, "ai"):
        return "❌ AI replies are disabled."
    answer = await ai_service.generate_response(question)
    return answer or "❌ Sorry, I couldn't answer that right now."


async def _handle_refresh_drive(ctx: BotContext) -> str:
    if ctx.drive is None or not ctx.drive.get_folder_ids():
        return "❌ Google Drive is not configured."
    files = await ctx.drive.refresh_cache(force=True)
    return f"☁️ Drive refreshed: {len(files)} files cached."


def _target_number(request: CommandRequest, args: List[str]) -> str:
    """The member a command is about: the first mention, else a number given as argument."""
    if request.mentions:
        return normalize_user_id(request.mentions[0])
    return normalize_user_id(args[0]) if args else ""


def _warning_precheck(ctx: BotContext, request: CommandRequest) -> str | None:
    if not request.is_group:
        return "❌ This command only works in groups."
    if ctx.moderator is None:
        return "❌ Link moderation is not available."
    return None


def _handle_showwarn(ctx: BotContext, request: CommandRequest, args: List[str]) -> str:
    error = _warning_precheck(ctx, request)
    if error:
        return error
    number = _target_number(request, args) or normalize_user_id(request.sender_id)
    count = ctx.moderator.get_warnings(request.chat_id, number)
    limit = ctx.moderator.get_warning_limit(request.chat_id)
    return f"⚠️ *Warnings for @{number}:* {count}/{limit}"


def _handle_warnlist(ctx: BotContext, request: CommandRequest) -> str:
    error = _warning_precheck(ctx, request)
    if error:
        return error
    warned = ctx.moderator.list_warnings(request.chat_id)
    if not warned:
        return "✅ No warnings in this group."
    limit = ctx.moderator.get_warning_limit(request.chat_id)
    lines = ["⚠️ *Warning List*", ""]
    for number, count in sorted(warned.items(), key=lambda item: item[1], reverse=True):
        lines.append(f"• @{number}: {count}/{limit}")
    return "\n".join(lines)


def _handle_resetwarn(ctx: BotContext, request: CommandRequest, args: List[str]) -> str:
    error = _warning_precheck(ctx, request)
    if error:
        return error
    if args and args[0].lower() == "all":
        cleared = ctx.moderator.reset_all_warnings(request.chat_id)
        log_info("commands", "_handle_resetwarn", f"{cleared} warnings cleared in {request.chat_id} by {request.sender_id}")
        return f"✅ Cleared warnings for {cleared} members."
    number = _target_number(request, args)
    if not number:
        return f"❌ Mention a member or use *all*\n\nUsage: {BOT_PREFIX}resetwarn @user"
    if not ctx.moderator.reset_warnings(request.chat_id, number):
        return f"ℹ️ @{number} has no warnings."
    return f"✅ Warnings reset for @{number}."


def _handle_setwarnlimit(ctx: BotContext, request: CommandRequest, args: List[str]) -> str:
    error = _warning_precheck(ctx, request)
    if error:
        return error
    usage = f"❌ Please give a number from {MIN_WARNING_LIMIT} to {MAX_WARNING_LIMIT}\n\nUsage: {BOT_PREFIX}setwarnlimit 3"
    if not args or not args[0].isdigit():
        return usage
    try:
        ctx.moderator.set_warning_limit(request.chat_id, int(args[0]))
    except ValueError:
        return usage
    return f"✅ Warning limit set to {int(args[0])}. Members are removed when they reach it."


def _handle_block(ctx: BotContext, request: CommandRequest, args: List[str], block: bool) -> str:
    if ctx.security is None:
        return "❌ User blocking is not available."
    number = _target_number(request, args)
    if not number:
        return f"❌ Please give a phone number\n\nUsage: {BOT_PREFIX}{'block' if block else 'unblock'} 923001234567"
    if block:
        if ctx.security.block_user(number):
            return f"🚫 {number} is now blocked."
        return f"ℹ️ {number} is already blocked."
    if ctx.security.unblock_user(number):
        return f"✅ {number} is unblocked."
    return f"ℹ️ {number} is not blocked."


def _handle_blocklist(ctx: BotContext) -> str:
    if ctx.security is None:
        return "❌ User blocking is not available."
    blocked = ctx.security.get_blocked()
    if not blocked:
        return "✅ No blocked users."
    return "\n".join(["🚫 *Blocked Users*", ""] + [f"{i}. {number}" for i, number in enumerate(blocked, start=1)])


ADMIN_COMMANDS = {"allfiles", "filesharing", "antilink", "autohandle", "ai", "botzero", "botall", "stats", "refreshdrive",
                  "showwarn", "warnings", "warnlist", "resetwarn", "setwarnlimit"}
OWNER_COMMANDS = {"botzero", "botall", "block", "unblock", "blocklist"}


async def handle_command(ctx: BotContext, request: CommandRequest, command: str, args: List[str]) -> str | None:
    """
    Runs a prefixed command. Returns the reply text, or None when the handler already
    replied itself (session commands) or the command is unknown.
    """
    fn_name = "handle_command"
    command = command.lower()
    stats_service.log_command(command, request.chat_id, request.sender_id)

    if command in OWNER_COMMANDS and not request.is_owner:
        return "❌ Only the Bot Owner can use this command."
    if command in ADMIN_COMMANDS and not request.can_manage:
        return "❌ This command is for group admins and bot owner only."

    try:
        if command == "help": return _handle_help()
        elif command == "files": return _handle_files(ctx, request)
        elif command == "search": return await _handle_search(ctx, request, args)
        elif command == "stop":
            await ctx.sessions.stop(request.chat_id); return None
        elif command == "resume":
            await ctx.sessions.resume(request.chat_id, args[0] if args else ""); return None
        elif command == "more":
            await ctx.sessions.more(request.chat_id); return None
        elif command == "allfiles": return _handle_allfiles(ctx)
        elif command in FEATURES: return _handle_toggle(ctx, request, command, args)
        elif command == "botzero": return _handle_set_all(ctx, request, False)
        elif command == "botall": return _handle_set_all(ctx, request, True)
        elif command == "features": return _handle_features(ctx, request)
        elif command == "stats": return stats_service.format_stats()
        elif command == "ask": return await _handle_ask(ctx, request, args)
        elif command == "refreshdrive": return await _handle_refresh_drive(ctx)
        elif command in ("showwarn", "warnings"): return _handle_showwarn(ctx, request, args)
        elif command == "warnlist": return _handle_warnlist(ctx, request)
        elif command == "resetwarn": return _handle_resetwarn(ctx, request, args)
        elif command == "setwarnlimit": return _handle_setwarnlimit(ctx, request, args)
        elif command == "block": return _handle_block(ctx, request, args, block=True)
        elif command == "unblock": return _handle_block(ctx, request, args, block=False)
        elif command == "blocklist": return _handle_blocklist(ctx)
        else:
            log_warning("commands", fn_name, f"Unknown command '{command}' from {request.sender_id} in {request.chat_id}")
            return None
    except Exception as e:
        log_error("commands", fn_name, f"Command '{command}' failed", e, chat_id=request.chat_id)
        return "❌ Something went wrong while running that command."

# --- END OF FULL services/commands.py ---
