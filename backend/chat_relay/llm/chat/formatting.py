"""Cosmetic reformatting of assistant replies before delivery."""

import re

# Keyword -> decoration. Order matters: headers take the first keyword found.
EMOJI_MAP: dict[str, str] = {
    "recipe": "👩‍🍳",
    "ingredients": "🥘",
    "instructions": "📝",
    "tip": "💡",
    "note": "📌",
    "warning": "⚠️",
    "important": "❗",
    "success": "✅",
    "steps": "📋",
    "time": "⏰",
    "temperature": "🌡️",
    "serving": "🍽️",
}

_HEADER_RE = re.compile(r"^#+[ \t]*(.*)", re.MULTILINE)
_BULLET_RE = re.compile(r"^\*[ \t]+(.+)", re.MULTILINE)
_SECTION_RE = re.compile(
    r"^(For|Step \d+|Instructions|Ingredients|Note|Tip):", re.MULTILINE
)
_BLANK_RUN_RE = re.compile(r"\n\n+")


def _header_emoji(content: str) -> str:
    lowered = content.lower()
    for keyword, emoji in EMOJI_MAP.items():
        if keyword in lowered:
            return emoji
    return ""


def _format_header(match: re.Match[str]) -> str:
    content = match.group(1)
    emoji = _header_emoji(content)
    return f"\n{emoji} {content.upper()} {emoji}\n"


def _format_section(match: re.Match[str]) -> str:
    label = match.group(1).lower()
    return f"\n{EMOJI_MAP.get(label, '')}  {match.group(0)}"


def format_response(text: str) -> str:
    """Decorate a raw model reply for display.

    Headers are upper-cased and wrapped in the emoji of the first keyword
    they mention, ``* `` bullets become ``• ``, known section labels get an
    emoji on a line of their own, and runs of blank lines collapse to one.
    Never fails; text without markup only has its blank lines collapsed.
    """
    formatted = _HEADER_RE.sub(_format_header, text)
    formatted = _BULLET_RE.sub(r"• \1", formatted)
    formatted = _SECTION_RE.sub(_format_section, formatted)
    return _BLANK_RUN_RE.sub("\n\n", formatted)
