"""Lexer for the netd command language.

Splits raw command text into tokens. Words are whitespace-delimited runs of
identifier characters; an embedded "/" stays inside the word so CIDR
notation ("192.168.1.1/24") arrives as a single WORD. A lone "/" is a SLASH
token, which no grammar state accepts.
"""
import re

from ..errors import LexError
from .schema import KEYWORDS, Token, TokenType

_TOKEN_RE = re.compile(
    r"(?P<ws>\s+)"
    r"|(?P<word>[A-Za-z0-9_.:%\-]+(?:/[A-Za-z0-9_.:%\-]+)*)"
    r"|(?P<slash>/)"
    r"|(?P<error>.)",
    re.DOTALL,
)


def classify(word: str) -> TokenType:
    """Classify a complete word as keyword, NUMBER or WORD.

    Keywords need an exact match: "interfaces" or "inet6x" are WORDs.
    """
    keyword = KEYWORDS.get(word)
    if keyword is not None:
        return keyword
    if word.isdigit():
        return TokenType.NUMBER
    return TokenType.WORD


def _scan(text: str) -> list[Token]:
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup
        lexeme = match.group()
        position = match.start()
        if kind == "ws":
            continue
        if kind == "word":
            tokens.append(Token(classify(lexeme), lexeme, position))
        elif kind == "slash":
            tokens.append(Token(TokenType.SLASH, lexeme, position))
        else:
            tokens.append(Token(TokenType.ERROR, lexeme, position))
    tokens.append(Token(TokenType.END, "", len(text)))
    return tokens


def tokenize(text: str) -> list[Token]:
    """Tokenize command text.

    Args:
        text: Raw command line

    Returns:
        Token list, always terminated by an END token

    Raises:
        LexError: On the first unrecognized character
    """
    tokens = _scan(text)
    for token in tokens:
        if token.type == TokenType.ERROR:
            raise LexError(token.position, token.lexeme)
    return tokens


def tokenize_partial(text: str) -> list[Token]:
    """Tokenize without raising; ERROR tokens are left in the stream."""
    return _scan(text)
