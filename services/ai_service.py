# --- START OF FULL services/ai_service.py ---

import asyncio
import re

from openai import OpenAI, OpenAIError

from tools.logger import log_info, log_error, log_warning
from tools.config import AI_API_KEY, AI_BASE_URL, AI_MODEL, FEATURE_AI, COMMAND_PREFIXES
from services import stats_service

AI_TIMEOUT_SECONDS = 30
MAX_REPLY_CHARS = 1500

SYSTEM_PROMPT = """You are a helpful, knowledgeable assistant for a WhatsApp study group.
Answer the question concisely and accurately. Keep the response under 500 characters.
Be friendly and use emojis occasionally. If you don't know something, say so honestly.
Respond in the same language as the question (English, Urdu, or Hindi)."""

QUESTION_PATTERNS = [
    re.compile(r'\?$'),
    re.compile(r'^(what|who|where|when|why|how|which|can|could|would|should|is|are|do|does|did|will|explain|tell|describe)\b', re.IGNORECASE),
    re.compile(r'^(kya|kaise|kyun|kab|kahan|kaun|batao|bata|samjhao)\b', re.IGNORECASE), # Urdu/Hindi
]

_client: OpenAI | None = None

def get_client() -> OpenAI | None:
    global _client
    if _client is None:
        if not AI_API_KEY:
            log_warning("ai_service", "get_client", "AI_API_KEY not set. AI replies disabled.")
            return None
        _client = OpenAI(api_key=AI_API_KEY, base_url=AI_BASE_URL, timeout=AI_TIMEOUT_SECONDS)
        log_info("ai_service", "get_client", f"OpenAI client ready (model={AI_MODEL}, base_url={AI_BASE_URL or 'default'}).")
    return _client

def is_ai_enabled() -> bool:
    return FEATURE_AI and bool(AI_API_KEY)

def should_use_ai(message: str) -> bool:
    """Heuristic: only questions of a reasonable length get an AI answer."""
    if not message:
        return False
    text = message.strip().lower()
    if text.startswith(COMMAND_PREFIXES) or len(text) < 10:
        return False
    return any(pattern.search(text) for pattern in QUESTION_PATTERNS)

def _complete(question: str) -> str | None:
    fn_name = "_complete"
    client = get_client()
    if client is None:
        return None
    try:
        response = client.chat.completions.create(
            model=AI_MODEL,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": question},
            ],
            temperature=0.4,
            max_tokens=400,
        )
    except OpenAIError as e:
        log_error("ai_service", fn_name, f"AI request failed: {e}", e)
        return None
    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        log_warning("ai_service", fn_name, "AI returned an empty answer.")
        return None
    log_info("ai_service", fn_name, f"AI answered '{question[:50]}' ({len(content)} chars).")
    return content.strip()[:MAX_REPLY_CHARS]

async def generate_response(question: str) -> str | None:
    answer = await asyncio.to_thread(_complete, question)
    if answer:
        stats_service.increment("ai_replies")
    return answer

# --- END OF FULL services/ai_service.py ---
