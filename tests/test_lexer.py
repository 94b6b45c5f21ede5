"""Tests for the command lexer."""
import pytest

from netd.errors import LexError
from netd.interpreter.lexer import classify, tokenize, tokenize_partial
from netd.interpreter.schema import TokenType


def types(text):
    return [t.type for t in tokenize(text)]


class TestClassify:
    """Tests for word classification."""

    def test_exact_keyword(self):
        """Whole-word keyword match."""
        assert classify("show") == TokenType.SHOW
        assert classify("inet6") == TokenType.INET6
        assert classify("tunnelfib") == TokenType.TUNNELFIB

    def test_address_alias(self):
        """"address" is the same keyword as "addr"."""
        assert classify("address") == TokenType.ADDR
        assert classify("addr") == TokenType.ADDR

    def test_keyword_prefix_is_word(self):
        """Longer words are never keywords."""
        assert classify("interfaces") == TokenType.WORD
        assert classify("inet6x") == TokenType.WORD
        assert classify("sho") == TokenType.WORD

    def test_number(self):
        assert classify("42") == TokenType.NUMBER
        assert classify("0") == TokenType.NUMBER

    def test_word(self):
        assert classify("em0") == TokenType.WORD
        assert classify("10.0.0.1") == TokenType.WORD


class TestTokenize:
    """Tests for tokenize()."""

    def test_always_ends_with_end(self):
        """Empty input still yields END."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.END
        assert tokens[0].position == 0

    def test_end_position_is_text_length(self):
        tokens = tokenize("show route  ")
        assert tokens[-1].type == TokenType.END
        assert tokens[-1].position == len("show route  ")

    def test_command_tokens(self):
        """A full set command tokenizes into keywords and generic tokens."""
        assert types("set route protocol static fib 1 inet 10.0.0.0/8 10.1.1.1") == [
            TokenType.SET, TokenType.ROUTE, TokenType.PROTOCOL, TokenType.STATIC,
            TokenType.FIB, TokenType.NUMBER, TokenType.INET, TokenType.WORD,
            TokenType.WORD, TokenType.END,
        ]

    def test_cidr_is_single_word(self):
        """Embedded slash stays inside the word."""
        tokens = tokenize("10.0.0.1/24")
        assert tokens[0].type == TokenType.WORD
        assert tokens[0].lexeme == "10.0.0.1/24"

    def test_ipv6_cidr_is_single_word(self):
        tokens = tokenize("2001:db8::1/64")
        assert tokens[0].type == TokenType.WORD
        assert tokens[0].lexeme == "2001:db8::1/64"

    def test_lone_slash(self):
        """A detached slash is a SLASH token."""
        assert types("10.0.0.1 / 24") == [
            TokenType.WORD, TokenType.SLASH, TokenType.NUMBER, TokenType.END,
        ]

    def test_positions(self):
        tokens = tokenize("show  route")
        assert tokens[0].position == 0
        assert tokens[1].position == 6

    def test_invalid_character_raises(self):
        """Unknown characters raise LexError with position."""
        with pytest.raises(LexError) as exc_info:
            tokenize("show route; rm")
        assert exc_info.value.position == 10
        assert exc_info.value.character == ";"

    def test_partial_does_not_raise(self):
        """tokenize_partial keeps ERROR tokens instead of raising."""
        tokens = tokenize_partial("show $")
        assert tokens[1].type == TokenType.ERROR
        assert tokens[-1].type == TokenType.END
