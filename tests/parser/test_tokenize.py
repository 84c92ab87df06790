"""
Tests for reference text normalization and tokenization.
"""

import pytest

from readcue.script_parser import (
    TokenKind,
    normalize_for_match,
    split_words,
    tokenize,
)


class TestNormalizeForMatch:
    """Tests for normalize_for_match."""

    @pytest.mark.parametrize("text,expected", [
        ("Hello, World!", "hello world"),
        ("Don’t  stop", "don't stop"),
        ("‘quoted’", "'quoted'"),
        ("naïve café", "naïve café"),
        ("snake_case", "snake case"),
        ("  spaced\tout\n", "spaced out"),
        ("--  ...  --", ""),
        ("", ""),
    ])
    def test_normalization(self, text: str, expected: str) -> None:
        assert normalize_for_match(text) == expected

    @pytest.mark.parametrize("value", [None, 42, 3.5, ["a"], b"bytes"])
    def test_non_string_gives_empty(self, value: object) -> None:
        assert normalize_for_match(value) == ""

    @pytest.mark.parametrize("text", [
        "Hello, World!",
        "It’s 9:30 -- time to go.",
        "Ünïcödé   wörds, with (brackets)",
        "under_score and-dash",
    ])
    def test_idempotent(self, text: str) -> None:
        once = normalize_for_match(text)
        assert normalize_for_match(once) == once

    def test_split_words(self) -> None:
        assert split_words("The quick, brown fox!") == ["the", "quick", "brown", "fox"]
        assert split_words(None) == []
        assert split_words("  ...  ") == []


class TestTokenize:
    """Tests for tokenize."""

    def test_tokens_alternate_and_keep_offsets(self) -> None:
        script = tokenize("Hello,  world!\n")
        assert [(t.text, t.kind, t.source_offset) for t in script.tokens] == [
            ("Hello,", TokenKind.WORD, 0),
            ("  ", TokenKind.WHITESPACE, 6),
            ("world!", TokenKind.WORD, 8),
            ("\n", TokenKind.WHITESPACE, 14),
        ]
        assert script.words == ["hello", "world"]
        assert script.word_starts == [0, 8]
        assert script.word_count == 2

    def test_tokens_reassemble_source(self) -> None:
        text = "  Leading space, and\ttabs\n\nplus paragraphs "
        script = tokenize(text)
        assert "".join(t.text for t in script.tokens) == text

    def test_word_index_is_word_token_index(self) -> None:
        script = tokenize("one two three")
        word_tokens = [t for t in script.tokens if t.kind is TokenKind.WORD]
        assert len(word_tokens) == len(script.words)

    def test_punctuation_only_word_normalizes_to_empty(self) -> None:
        script = tokenize("wait -- what")
        assert script.words == ["wait", "", "what"]

    def test_empty_text(self) -> None:
        script = tokenize("")
        assert script.tokens == []
        assert script.words == []
        assert script.word_index_at(3) == -1

    @pytest.mark.parametrize("value", [None, 17, {"text": "hi"}])
    def test_malformed_input_gives_empty_script(self, value: object) -> None:
        script = tokenize(value)
        assert script.source_text == ""
        assert script.word_count == 0

    def test_word_index_at(self) -> None:
        script = tokenize("Hello,  world!")
        assert script.word_index_at(0) == 0
        assert script.word_index_at(3) == 0
        assert script.word_index_at(7) == 0  # whitespace before "world!"
        assert script.word_index_at(8) == 1
        assert script.word_index_at(100) == 1
        assert script.word_index_at(-5) == 0

    def test_word_text_returns_original(self) -> None:
        script = tokenize("Hello,  world!")
        assert script.word_text(1) == "world!"
        assert script.word_text(2) == ""
        assert script.word_text(-1) == ""
