"""
Continuity between lesson parts.

Each lesson part after the first is told what earlier parts already covered,
so the model continues instead of starting over.
"""
from __future__ import annotations

import re

SUMMARY_MAX_CHARS = 200
MAX_HEADINGS = 5
MAX_SENTENCES = 3
MIN_SENTENCE_CHARS = 20

_HEADING = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def summarize_for_continuity(previous_output: str) -> str:
    """
    Short summary of a previous lesson part.

    The first five markdown headings joined by ", "; when the part has no
    headings, its last three substantial sentences. Capped at 200 characters.
    """
    text = previous_output.strip()
    if not text:
        return ""

    headings = [h.strip() for h in _HEADING.findall(text) if h.strip()]
    if headings:
        summary = ", ".join(headings[:MAX_HEADINGS])
    else:
        sentences = [
            s.strip() for s in _SENTENCE_SPLIT.split(text)
            if len(s.strip()) > MIN_SENTENCE_CHARS
        ]
        summary = " ".join(sentences[-MAX_SENTENCES:])

    return summary[:SUMMARY_MAX_CHARS].rstrip()


def build_continuity_hint(summary: str, part_number: int, total_parts: int) -> str:
    """
    Instructions prefixed to the prompt of lesson part `part_number` (1-based).

    Args:
        summary: summarize_for_continuity() of the previous part
        part_number: This part's position
        total_parts: Number of parts in the lesson
    """
    covered = summary or "the previous sections"
    return (
        f"CRITICAL INSTRUCTIONS FOR PART {part_number} OF {total_parts}:\n"
        f"- Previous parts already covered: {covered}\n"
        "- Do NOT repeat or rehash those concepts\n"
        "- Continue with NEW material from the content below\n"
        "- Use ONLY facts explicitly stated in the content below\n"
        "- Keep the same tone, heading style and formatting as earlier parts\n\n"
        "Content for this part:"
    )
