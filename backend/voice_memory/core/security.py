from __future__ import annotations

import re

SECRET_PATTERN = re.compile(r"(sk-[A-Za-z0-9_\-]{6,})")
BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]{8,}")
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


def redact_secrets(text: str) -> str:
    """Redact API keys and bearer tokens from a string."""

    text = SECRET_PATTERN.sub("sk-***", text)
    return BEARER_PATTERN.sub(r"\1***", text)


def sanitize_text(text: str, max_length: int) -> str:
    """Trim and clamp user-provided text to a safe length."""

    cleaned = text.strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def is_safe_session_id(session_id: str) -> bool:
    """Return True when the id can be used as a file name component."""

    return bool(SESSION_ID_PATTERN.match(session_id or ""))
