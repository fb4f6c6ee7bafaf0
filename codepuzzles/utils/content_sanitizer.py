"""
Content sanitization utilities.

Redacts credential-shaped tokens from fetched source files before they are
cached or shown, and strips reasoning blocks that some models prepend to
their answers.
"""

import logging
import re

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Applied in order; every occurrence of each pattern is replaced.
SECRET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),  # AWS access key id
    re.compile(r"\bghp_[a-zA-Z0-9]{36}\b"),  # GitHub personal token
    re.compile(r"\bgho_[a-zA-Z0-9]{36}\b"),  # GitHub OAuth token
    re.compile(r"\bgithub_pat_[a-zA-Z0-9_]{22,}\b"),  # GitHub fine-grained token
    re.compile(r"\bsk-[a-zA-Z0-9]{20,}\b"),  # OpenAI-style secret key
    re.compile(r"\bgsk_[a-zA-Z0-9]{20,}\b"),  # Groq key
    re.compile(r"[\"']?[0-9a-fA-F]{32}[\"']?"),  # 32-char hex secret, optionally quoted
]

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def sanitize_content(content: str) -> str:
    """
    Replace every credential-like token in ``content`` with ``[REDACTED]``.

    Args:
        content: Raw file content

    Returns:
        Content with secrets redacted; identical to input when nothing matched
    """
    if not content:
        return content

    sanitized = content
    for pattern in SECRET_PATTERNS:
        sanitized = pattern.sub(REDACTED, sanitized)

    if sanitized != content:
        logger.debug("🔒 Redacted secret-shaped tokens from file content")

    return sanitized


def strip_think_tags(text: str) -> str:
    """Remove closed ``<think>...</think>`` blocks (case-insensitive) and trim."""
    if not text:
        return ""
    return _THINK_BLOCK.sub("", text).strip()
