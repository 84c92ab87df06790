# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Word similarity scoring for matching recognized words to reference words.

Recognizer errors cluster around near-homophones and single-character
substitutions. Edit distance alone under-rewards short near-misses, and
phonetic-style similarity alone over-rewards unrelated short words, so the
score is a ladder: the first rung that fits decides the tier.
"""

import math

from rapidfuzz.distance import JaroWinkler, Levenshtein

# Returned when two words should never be paired
NO_MATCH: float = -100.0

EXACT_MATCH: float = 3.0
PREFIX_MATCH: float = 2.0
# A word scoring at least this counts as confidently heard
STRONG_MATCH: float = 1.5

# (minimum Jaro-Winkler similarity, score) - checked top to bottom
JARO_WINKLER_TIERS: tuple[tuple[float, float], ...] = (
    (0.75, 1.2),
    (0.70, 0.9),
    (0.65, 0.7),
    (0.60, 0.5),
)


def score_word_match(a: str, b: str) -> float:
    """
    Score how well two normalized words match.

    Args:
        a: First normalized word (typically the reference word)
        b: Second normalized word (typically the recognized word)

    Returns:
        3.0 for an exact match, decreasing positive scores for near matches,
        or NO_MATCH when the words are unrelated or either is empty.
    """
    if not a or not b:
        return NO_MATCH
    if a == b:
        return EXACT_MATCH

    # "recog" vs "recognition", or a truncated interim word
    if a.startswith(b) or b.startswith(a):
        return PREFIX_MATCH

    dist: int = Levenshtein.distance(a, b)
    min_len: int = min(len(a), len(b))
    max_len: int = max(len(a), len(b))

    if dist == 1:
        return 2.0
    if dist == 2 and min_len > 4:
        return 1.5
    if dist == 2 and min_len > 3:
        return 1.2
    if dist <= math.ceil(min_len / 2) and min_len >= 5:
        return 1.0

    # Short words only get here when they are near-identical anyway
    if max_len >= 4:
        similarity: float = JaroWinkler.similarity(a, b, prefix_weight=0.1)
        for minimum, tier_score in JARO_WINKLER_TIERS:
            if similarity >= minimum:
                return tier_score

    return NO_MATCH


def is_match(score: float) -> bool:
    """Check whether a score from score_word_match counts as any kind of match."""
    return score >= 0
