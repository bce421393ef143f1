import re

import structlog

logger = structlog.get_logger(__name__)

# Paired quotation marks used for dialogue in Korean and English prose.
QUOTE_PATTERN = re.compile(
    r"\"([^\"\n]+)\"|“([^”\n]+)”|「([^」\n]+)」|『([^』\n]+)』|‘([^’\n]+)’"
)

_PUNCTUATION_RE = re.compile(r"[^\w\s가-힣]")
_TOKEN_RE = re.compile(r"[가-힣]+|[^\s가-힣]+")
_SENTENCE_RE = re.compile(r"([^\.!?。\n]+(?:[\.!?。]+|$))")

_TIME_REFERENCE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:\d+|one|two|three|four|five|six|seven|several|a few)\s+"
        r"(?:minutes?|hours?|days?|weeks?|months?|years?)\s+(?:later|ago|after)\b",
        r"\bthe (?:next|following) (?:morning|day|night|week|year)\b",
        r"\b(?:meanwhile|that night|at dawn|years ago)\b",
        r"\d+\s*(?:분|시간|일|주|개월|달|년)\s*(?:후|뒤|전)",
        r"(?:다음|이튿|그다음)\s*날",
        r"(?:그날\s*밤|그\s*사이|한편|새벽|어느덧)",
    )
]


def get_text_segments(
    text: str, segment_level: str = "paragraph"
) -> list[tuple[str, int, int]]:
    """Segment text into paragraphs or sentences with offsets."""
    segments: list[tuple[str, int, int]] = []

    if not text.strip():
        return segments

    if segment_level == "paragraph":
        for match in re.finditer(r"[^\r\n]+", text):
            stripped = match.group(0).strip()
            if stripped:
                segments.append((stripped, match.start(), match.end()))
    elif segment_level == "sentence":
        for match in _SENTENCE_RE.finditer(text):
            sent_text_stripped = match.group(1).strip()
            if sent_text_stripped:
                segments.append((sent_text_stripped, match.start(), match.end()))
    else:
        raise ValueError(
            f"Unsupported segment_level for get_text_segments: {segment_level}"
        )

    if not segments and text.strip():
        segments.append((text.strip(), 0, len(text)))
    return segments


def iter_quoted_spans(text: str) -> list[tuple[str, int, int]]:
    """Return ``(content, start, end)`` for every quoted span in ``text``."""
    spans = []
    for match in QUOTE_PATTERN.finditer(text):
        content = next(g for g in match.groups() if g is not None).strip()
        if content:
            spans.append((content, match.start(), match.end()))
    return spans


def strip_quoted_spans(text: str) -> str:
    """Replace quoted dialogue with a space, leaving narration only."""
    return QUOTE_PATTERN.sub(" ", text)


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation and split on whitespace and script boundaries."""
    if not text:
        return []
    cleaned = _PUNCTUATION_RE.sub("", text.lower())
    return _TOKEN_RE.findall(cleaned)


def find_time_references(text: str) -> list[str]:
    """Collect temporal phrases such as "다음 날" or "three days later"."""
    found: list[str] = []
    for pattern in _TIME_REFERENCE_PATTERNS:
        for match in pattern.finditer(text):
            phrase = match.group(0).strip()
            if phrase and phrase not in found:
                found.append(phrase)
    return found
