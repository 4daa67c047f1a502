"""
Heuristics for preferring English-language metadata in catalog results.

These are character-class checks, not language detection: accented Latin
letters count against the ratio and mixed-script text may go either way.
"""

import re
from typing import Optional

from .models import CatalogEntry

LATIN_COMPATIBLE_PATTERN = re.compile(r"[a-zA-Z\s\-'.,]", re.ASCII)
CJK_PATTERN = re.compile(r"[\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af]")
WHITESPACE_PATTERN = re.compile(r"\s", re.ASCII)

ENGLISH_RATIO_THRESHOLD = 0.8


def contains_cjk_characters(text: str) -> bool:
    """Check for Chinese, Japanese (kana) or Korean (hangul) characters."""
    return bool(CJK_PATTERN.search(text))


def is_likely_english(text: Optional[str]) -> bool:
    """
    Guess whether a title or name is written in English.

    Args:
        text: Candidate text

    Returns:
        True when more than 80% of the non-whitespace characters fall in the
        Latin-compatible class and no CJK character is present
    """
    if not text or not text.strip():
        return False

    latin_chars = len(LATIN_COMPATIBLE_PATTERN.findall(text))
    total_chars = len(WHITESPACE_PATTERN.sub("", text))

    if total_chars == 0:
        return False

    # whitespace counts towards latin_chars but not total_chars
    ratio = latin_chars / total_chars
    return ratio > ENGLISH_RATIO_THRESHOLD and not contains_cjk_characters(text)


def best_title(entry: CatalogEntry) -> Optional[str]:
    """
    Pick the most English-looking title for a catalog entry.

    Title suggestions win over the primary title when one looks English; if the
    result still does not look English, the first English alternate title is used.
    """
    title = entry.title

    english_suggestion = next((t for t in entry.title_suggestions if is_likely_english(t)), None)
    if english_suggestion:
        title = english_suggestion

    if not is_likely_english(title) and entry.alternate_titles:
        english_alt = next((t for t in entry.alternate_titles if is_likely_english(t)), None)
        if english_alt:
            title = english_alt

    return title


def best_author(entry: CatalogEntry) -> Optional[str]:
    """Pick the first English-looking author name, defaulting to the first listed."""
    if not entry.author_names:
        return None

    author = entry.author_names[0]
    if len(entry.author_names) > 1:
        english_author = next((name for name in entry.author_names if is_likely_english(name)), None)
        if english_author:
            author = english_author

    return author
