"""
Prompt validation.

Length bounds and prompt-injection heuristics, checked in a fixed order:
1. Empty input
2. Too short
3. Too long
4. Suspicious content (first matching pattern wins)
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

MIN_PROMPT_LENGTH = 1
MAX_PROMPT_LENGTH = 500

HARMFUL_CONTENT_MESSAGE = "Prompt contains potentially harmful content"


@dataclass(frozen=True)
class SuspiciousPattern:
    """A named heuristic that rejects a prompt when it matches."""
    name: str
    pattern: Pattern[str]
    message: str = HARMFUL_CONTENT_MESSAGE

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a prompt."""
    is_valid: bool
    message: Optional[str] = None


DEFAULT_SUSPICIOUS_PATTERNS = (
    SuspiciousPattern("system_override", re.compile(r"system\s*(prompt|override|ignore)", re.IGNORECASE)),
    SuspiciousPattern("ignore_instructions", re.compile(r"ignore\s*(previous|instructions|prompt)", re.IGNORECASE)),
    SuspiciousPattern("role_reassignment", re.compile(r"you\s*are\s*now", re.IGNORECASE)),
    SuspiciousPattern("forget_context", re.compile(r"forget\s*(everything|all|instructions)", re.IGNORECASE)),
)


def validate_prompt(
    text,
    patterns: Sequence[SuspiciousPattern] = DEFAULT_SUSPICIOUS_PATTERNS,
    min_length: int = MIN_PROMPT_LENGTH,
    max_length: int = MAX_PROMPT_LENGTH
) -> ValidationResult:
    """Validate sanitized prompt text.

    Args:
        text: Sanitized prompt
        patterns: Injection heuristics to apply; extend the defaults to add more
        min_length: Minimum trimmed length
        max_length: Maximum trimmed length

    Returns:
        ValidationResult with a human-readable message when invalid
    """
    if not text or not isinstance(text, str):
        return ValidationResult(False, "Prompt cannot be empty")

    trimmed = text.strip()

    if len(trimmed) < min_length:
        return ValidationResult(
            False,
            f"Prompt is too short (minimum {min_length} character{'s' if min_length != 1 else ''})"
        )

    if len(trimmed) > max_length:
        return ValidationResult(
            False,
            f"Prompt is too long (maximum {max_length} characters, got {len(trimmed)})"
        )

    for suspicious in patterns:
        if suspicious.matches(trimmed):
            return ValidationResult(False, suspicious.message)

    return ValidationResult(True)
