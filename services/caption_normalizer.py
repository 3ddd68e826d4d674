# snapcaption_backend/services/caption_normalizer.py
import re
from typing import List, Optional

STYLES = ("Fun", "Professional", "Dramatic", "Minimal", "Adventurous", "Wholesome")

DEFAULT_LIMIT = 140
MINIMAL_LIMIT = 100
HASHTAG_ROOM = 10
MIN_HASHTAGS = 3
MAX_HASHTAGS = 4
MAX_HASHTAG_LENGTH = 20  # including the leading '#'
MIN_WORD_BOUNDARY = 30

QUOTE_CHARS = "'\"`“”‘’"
TERMINAL_PUNCTUATION = (".", "!", "?")
CLAUSE_PUNCTUATION = ",;:-"

# Padding used when the caption body yields no usable words.
FALLBACK_HASHTAGS = ("#photo", "#moments", "#daily", "#snapshot")

STOPWORDS = frozenset([
    "the", "and", "for", "with", "this", "that", "over", "under",
    "into", "from", "your", "been", "are", "was", "were", "a", "an",
    "on", "of", "in", "to", "it", "its", "is",
])

_HASHTAG_RE = re.compile(r"^#[A-Za-z0-9_]+$")
_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")


def caption_limit(style: Optional[str]) -> int:
    """Overall character budget for a caption in the given style."""
    return MINIMAL_LIMIT if style == "Minimal" else DEFAULT_LIMIT


def pick_additional_hashtags(body: str, existing: List[str], needed: int) -> List[str]:
    """
    Builds up to `needed` hashtags out of the caption body.

    Words are lowercased and reduced to ASCII letters and digits; stopwords,
    words shorter than 3 characters and words already used as a hashtag are
    skipped. First-seen order is preserved.
    """
    if needed <= 0:
        return []

    used = {h.lower() for h in existing}
    words = _NON_WORD_RE.sub(" ", body.lower()).split()

    picked = []
    seen = set()
    for word in words:
        if word in STOPWORDS or len(word) < 3:
            continue
        if len(word) >= MAX_HASHTAG_LENGTH:
            continue
        if word in seen or f"#{word}" in used:
            continue
        seen.add(word)
        picked.append(f"#{word}")
        if len(picked) >= needed:
            break
    return picked


def _split_body_and_hashtags(text: str):
    tokens = text.split()
    first_hash = next(
        (i for i, token in enumerate(tokens) if token.startswith("#")), None
    )
    if first_hash is None:
        return text, []

    body = " ".join(tokens[:first_hash])
    hashtags = [t for t in tokens[first_hash:] if _HASHTAG_RE.match(t)]
    return body, hashtags


def _dedupe_hashtags(hashtags: List[str]) -> List[str]:
    seen = set()
    unique = []
    for tag in hashtags:
        low = tag.lower()
        if low in seen:
            continue
        seen.add(low)
        if len(tag) <= MAX_HASHTAG_LENGTH:
            unique.append(tag)
    return unique


def _pad_with_fallback(hashtags: List[str]) -> List[str]:
    used = {h.lower() for h in hashtags}
    padded = list(hashtags)
    for tag in FALLBACK_HASHTAGS:
        if len(padded) >= MIN_HASHTAGS:
            break
        if tag not in used:
            padded.append(tag)
            used.add(tag)
    return padded


def _truncate_body(body: str, budget: int) -> str:
    if len(body) <= budget:
        return body

    room = budget - 1  # the closing period must fit too
    if room <= 0:
        return ""

    slice_point = body.rfind(" ", 0, room + 1)
    cut_index = slice_point if slice_point > MIN_WORD_BOUNDARY else room
    body = body[:cut_index].rstrip().rstrip(CLAUSE_PUNCTUATION).rstrip()
    if body and not body.endswith(TERMINAL_PUNCTUATION):
        body += "."
    return body


def normalize_caption(raw_text: Optional[str], style: Optional[str] = "Fun") -> str:
    """
    Turns raw model output into a publishable caption.

    The result is the caption body followed by 3 or 4 unique hashtags and
    never exceeds the style's character budget. Any input, including an
    empty one, produces a well-formed caption.
    """
    text = (raw_text or "").strip().strip(QUOTE_CHARS).strip()

    body, hashtags = _split_body_and_hashtags(text)
    hashtags = _dedupe_hashtags(hashtags)[:MAX_HASHTAGS]

    if len(hashtags) < MIN_HASHTAGS:
        hashtags += pick_additional_hashtags(body, hashtags, MIN_HASHTAGS - len(hashtags))

    if len(hashtags) < MIN_HASHTAGS:
        hashtags = _pad_with_fallback(hashtags)

    if len(hashtags) == MIN_HASHTAGS:
        hashtags += pick_additional_hashtags(body, hashtags, 1)

    hashtags = hashtags[:MAX_HASHTAGS]
    hashtag_block = " ".join(hashtags)

    limit = caption_limit(style)
    budget = min(limit - HASHTAG_ROOM, limit - len(hashtag_block) - 1)
    body = _truncate_body(body.strip(), budget)

    # '#' left in the body would read as a second hashtag run
    body = " ".join(body.replace("#", "").split())

    return f"{body} {hashtag_block}".strip()
