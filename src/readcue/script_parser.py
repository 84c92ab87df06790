# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module that turns reference text into two representations:
1. Tokens - alternating word and whitespace runs with their source offsets
   (what a rendering layer lays out and what click positions refer to)
2. Reference words - the normalized form of each word token (what spoken
   words are compared against)

Word index ``i`` always means the i-th word token, so the tracker and any
renderer agree on positions without further mapping.
"""

import bisect
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# Curly single quotes are folded to a plain apostrophe so "don’t" == "don't"
_CURLY_QUOTES: re.Pattern[str] = re.compile(r"[‘’]")
# Anything that is not a letter, digit, apostrophe or whitespace.
# [^\W_] is "word character minus underscore", i.e. Unicode letters and digits.
_NON_WORD_UNICODE: re.Pattern[str] = re.compile(r"(?:[^\w\s']|_)+")
_NON_WORD_ASCII: re.Pattern[str] = re.compile(r"[^a-z0-9'\s]+")
_WHITESPACE_RUN: re.Pattern[str] = re.compile(r"\s+")


def _normalize_ascii(text: str) -> str:
    """Locale-unaware fallback: keeps only ASCII letters, digits and apostrophes."""
    folded = _NON_WORD_ASCII.sub(' ', text.lower())
    return _WHITESPACE_RUN.sub(' ', folded).strip()


def normalize_for_match(text: object) -> str:
    """Normalize text for matching (lowercase, strip punctuation).

    Curly quotes become ``'``, every character outside letters, digits,
    apostrophes and whitespace becomes a space, whitespace runs collapse and
    the result is trimmed. Never raises: non-string input gives ``""``.

    Examples:
        "Hello, World!" -> "hello world"
        "Don’t  stop" -> "don't stop"
        "naïve café" -> "naïve café"
    """
    if not isinstance(text, str):
        return ""
    try:
        folded = _CURLY_QUOTES.sub("'", text.lower())
        folded = _NON_WORD_UNICODE.sub(' ', folded)
        return _WHITESPACE_RUN.sub(' ', folded).strip()
    except (TypeError, ValueError, re.error):
        logger.debug("Unicode normalization failed, using ASCII fallback")
        return _normalize_ascii(text)


def split_words(text: object) -> list[str]:
    """Normalize a transcript and split it into its words."""
    norm = normalize_for_match(text)
    return [w for w in norm.split(' ') if w]


class TokenKind(Enum):
    """Whether a token is a word or a run of whitespace."""
    WORD = "word"
    WHITESPACE = "ws"


@dataclass(frozen=True)
class Token:
    """A run of the reference text as it appears in the source."""
    text: str
    kind: TokenKind
    source_offset: int  # Character offset of the token in the source text

    def __repr__(self) -> str:
        return f"Token({self.kind.value}@{self.source_offset}: '{self.text}')"


@dataclass
class TokenizedScript:
    """Complete tokenized representation of a reference text."""
    source_text: str
    tokens: list[Token] = field(default_factory=list)
    # Normalized form of each word token (may be "" for pure punctuation)
    words: list[str] = field(default_factory=list)
    # Character offset where each word starts
    word_starts: list[int] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        """Return the number of reference words."""
        return len(self.words)

    def word_index_at(self, char_offset: int) -> int:
        """Map a character offset to the word that contains or precedes it.

        Returns -1 for an empty script; offsets before the first word map to 0.
        """
        if not self.word_starts:
            return -1
        pos = bisect.bisect_right(self.word_starts, char_offset) - 1
        return max(0, pos)

    def word_text(self, index: int) -> str:
        """Return the original (un-normalized) text of a word, or "" if out of range."""
        if index < 0 or index >= len(self.words):
            return ""
        word_tokens = [t for t in self.tokens if t.kind is TokenKind.WORD]
        return word_tokens[index].text


def tokenize(text: object) -> TokenizedScript:
    """Split reference text into alternating word and whitespace tokens.

    Malformed (non-string) input produces an empty script rather than raising,
    so callers can always reset to a safe state.
    """
    if not isinstance(text, str):
        logger.warning("Ignoring non-string reference text of type %s",
                       type(text).__name__)
        return TokenizedScript(source_text="")

    script = TokenizedScript(source_text=text)
    for match in re.finditer(r'\s+|\S+', text):
        chunk: str = match.group(0)
        start: int = match.start()
        if chunk.isspace():
            script.tokens.append(Token(chunk, TokenKind.WHITESPACE, start))
        else:
            script.tokens.append(Token(chunk, TokenKind.WORD, start))
            script.word_starts.append(start)
            script.words.append(normalize_for_match(chunk))
    return script
