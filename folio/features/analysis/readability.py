"""Readability metrics (Flesch reading ease, Flesch-Kincaid grade) for chapter text."""

import hashlib
import re
from typing import List

from pydantic import BaseModel, ConfigDict

_MARKUP_CHARS = re.compile(r"[#*_`~\[\]]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_VOWEL_GROUPS = re.compile(r"[aeiouy]+")


class ReadabilityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    word_count: int
    sentence_count: int
    syllable_count: int
    avg_sentence_length: float
    avg_word_length: float
    flesch_reading_ease: float
    flesch_kincaid_grade: float
    grade_level: int


def content_hash(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if len(word) <= 3:
        return 1
    syllables = len(_VOWEL_GROUPS.findall(word)) or 1
    if word.endswith("e"):
        syllables -= 1
    if word.endswith("le"):
        syllables += 1
    return max(1, syllables)


def _words(clean: str) -> List[str]:
    return [w for w in clean.split() if w]


def count_words(text: str) -> int:
    return len(_words(_MARKUP_CHARS.sub("", text or "")))


def calculate_readability_metrics(text: str) -> ReadabilityMetrics:
    """
    Approximate readability of `text`.

    Markup characters are stripped first. Empty text counts as one word in one
    sentence so the ratios stay defined.
    """
    clean = _MARKUP_CHARS.sub("", text or "")
    clean = re.sub(r"\n+", " ", clean).strip()

    sentences = [s for s in _SENTENCE_SPLIT.split(clean) if s.strip()]
    sentence_count = len(sentences) or 1
    words = _words(clean)
    word_count = len(words) or 1
    syllable_count = sum(count_syllables(w) for w in words)

    avg_sentence_length = word_count / sentence_count
    avg_word_length = sum(len(w) for w in words) / word_count
    syllables_per_word = syllable_count / word_count

    reading_ease = 206.835 - 1.015 * avg_sentence_length - 84.6 * syllables_per_word
    kincaid = 0.39 * avg_sentence_length + 11.8 * syllables_per_word - 15.59

    return ReadabilityMetrics(
        word_count=len(words),
        sentence_count=len(sentences),
        syllable_count=syllable_count,
        avg_sentence_length=round(avg_sentence_length, 1),
        avg_word_length=round(avg_word_length, 1),
        flesch_reading_ease=round(reading_ease, 1),
        flesch_kincaid_grade=round(kincaid, 1),
        grade_level=min(18, max(1, round(kincaid))),
    )
