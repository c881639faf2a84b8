"""
Number and text helpers shared by the plan model, detectors and renderers.
"""

from __future__ import annotations


def format_number(num: int | float) -> str:
    """
    Compact count formatting: 12_300_000 -> "12.3M", 4_500 -> "4.5K".

    Values under a thousand are rendered as plain integers.
    """
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(int(num))


def truncate(text: str | None, max_len: int) -> str:
    """Cut text to max_len characters, ending with "..." when shortened."""
    if text is None:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max(max_len - 3, 0)] + "..."


def truncate_fragment(text: str, max_len: int = 200) -> str:
    """Keep the first max_len characters of a SQL fragment and mark the cut."""
    if len(text) > max_len:
        return text[:max_len] + "..."
    return text


def wrap_text(text: str, indent: int = 3, width: int = 80) -> str:
    """Greedy word wrap with a fixed left indent on every line."""
    prefix = " " * indent
    lines: list[str] = []
    current: list[str] = []
    current_len = indent

    for word in text.split():
        if current and current_len + len(word) > width - 3:
            lines.append(prefix + " ".join(current))
            current = []
            current_len = indent
        current.append(word)
        current_len += len(word) + 1

    if current:
        lines.append(prefix + " ".join(current))

    return "\n".join(lines)


def indent_code(code: str, spaces: int = 3) -> str:
    """Indent every line of a code block."""
    prefix = " " * spaces
    return "\n".join(prefix + line for line in code.split("\n"))

