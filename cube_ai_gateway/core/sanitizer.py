"""
Prompt sanitization.

Normalizes raw user text before validation. Pure function, never raises.
"""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HORIZONTAL_WHITESPACE = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_TAG = re.compile(r"<\s*/?\s*script[^<>]*>?", re.IGNORECASE)

# &amp; must come after &lt;/&gt; so "&amp;lt;" decodes one level only
_HTML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#x27;", "'"),
)


def sanitize_prompt(text) -> str:
    """Strip unsafe content from raw user text.

    Steps, in order: trim, drop control characters (newline and tab are
    kept), collapse whitespace runs, remove ``<script>`` blocks and any other
    tags, decode the common HTML entities, trim again.

    Args:
        text: Raw user input; anything that is not a string yields ""

    Returns:
        Cleaned text
    """
    if not text or not isinstance(text, str):
        return ""

    sanitized = text.strip()
    sanitized = _CONTROL_CHARS.sub("", sanitized)
    sanitized = _HORIZONTAL_WHITESPACE.sub(" ", sanitized)
    sanitized = _EXCESS_NEWLINES.sub("\n\n", sanitized)
    sanitized = _SCRIPT_BLOCK.sub("", sanitized)
    sanitized = _HTML_TAG.sub("", sanitized)

    for entity, literal in _HTML_ENTITIES:
        sanitized = sanitized.replace(entity, literal)

    # Entity decoding can reassemble a script tag; unterminated ones too
    sanitized = _SCRIPT_BLOCK.sub("", sanitized)
    while _SCRIPT_TAG.search(sanitized):
        sanitized = _SCRIPT_TAG.sub("", sanitized)

    return sanitized.strip()
