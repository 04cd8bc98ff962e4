"""Cleans scraped page text before it is handed to the model."""

import logging
import re

logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 4

# Boilerplate phrases found on most recipe sites
BOILERPLATE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"print\s+recipe",
        r"share\s+on\s+facebook",
        r"pin\s+to\s+pinterest",
        r"tweet\s+this",
        r"share\s+on\s+twitter",
        r"subscribe\s+to\s+(?:our\s+)?newsletter",
        r"sign\s+up\s+for\s+(?:our\s+)?newsletter",
        r"advertisement",
        r"sponsored\s+content",
        r"follow\s+us\s+on",
        r"like\s+us\s+on",
        r"(?:get|download)\s+our\s+app",
        r"privacy\s+policy",
        r"terms\s+of\s+service",
        r"cookie\s+policy",
        r"we\s+use\s+cookies",
        r"accept\s+(?:all\s+)?cookies",
        r"all\s+rights\s+reserved",
        r"copyright\s+\d{4}",
        r"\d{4}\s+copyright",
        r"related\s+recipes",
        r"more\s+recipes",
        r"you\s+might\s+also\s+like",
        r"recommended\s+for\s+you",
        r"popular\s+recipes",
        r"trending\s+now",
        r"leave\s+a\s+comment",
        r"rate\s+this\s+recipe",
        r"save\s+recipe",
        r"add\s+to\s+favorites",
        r"jump\s+to\s+recipe",
        r"print\s+friendly",
        r"nutrition\s+facts",
        r"calories\s+per\s+serving",
        r"prep\s+time:",
        r"cook\s+time:",
        r"total\s+time:",
        r"serves:\s*\d+",
        r"difficulty:\s*\w+",
    )
]

_NOISE_CHARS = re.compile(r"[^\w\s\-.,;:()\[\]/]")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")


def clean(raw_text: str) -> str:
    """Removes boilerplate, noise characters and duplicate lines.

    Line order is preserved; a line is kept the first time it is seen
    (compared case-insensitively) and dropped afterwards.
    """
    if not raw_text or not isinstance(raw_text, str):
        return ""

    cleaned = raw_text
    for pattern in BOILERPLATE_PATTERNS:
        cleaned = pattern.sub(" ", cleaned)

    cleaned = _NOISE_CHARS.sub(" ", cleaned)
    cleaned = _HORIZONTAL_SPACE.sub(" ", cleaned)

    unique_lines = []
    seen = set()
    for line in cleaned.split("\n"):
        line = line.strip()
        if len(line) < MIN_LINE_LENGTH:
            continue
        key = line.lower()
        if key in seen:
            continue
        seen.add(key)
        unique_lines.append(line)

    result = "\n".join(unique_lines)
    logger.debug(f"Cleaned text: {len(result)} characters ({len(raw_text) - len(result)} removed)")
    return result
