"""Display-only text wrapping for the transcript view."""

from __future__ import annotations

MIN_WRAP_WIDTH = 10


def wrap(text: str, width: int) -> str:
    """Greedily wrap each line of ``text`` to ``width`` columns.

    Widths of ``MIN_WRAP_WIDTH`` or less leave the text unchanged. Lines that
    already fit are kept verbatim; longer lines are re-flowed on whitespace,
    and a single word wider than ``width`` is placed on a line of its own.
    """
    if width <= MIN_WRAP_WIDTH:
        return text

    result: list[str] = []
    for line in text.split("\n"):
        if len(line) <= width:
            result.append(line)
            continue

        words = line.split()
        if not words:
            result.append("")
            continue

        current = words[0]
        for word in words[1:]:
            if len(current) + 1 + len(word) > width:
                result.append(current)
                current = word
            else:
                current = f"{current} {word}"
        result.append(current)
    return "\n".join(result)
