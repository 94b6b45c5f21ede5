"""Command interpreter: lexer, grammar engine, command model and renderer."""
from .grammar import END_HINT, GrammarEngine, ParserState
from .lexer import classify, tokenize, tokenize_partial
from .renderer import render
from .schema import (
    AddressFamily,
    Command,
    InterfaceConfig,
    InterfaceQuery,
    RouteConfig,
    RouteProtocol,
    RouteQuery,
    StagedEntry,
    Target,
    Token,
    TokenType,
    Verb,
)

__all__ = [
    "END_HINT",
    "GrammarEngine",
    "ParserState",
    "classify",
    "tokenize",
    "tokenize_partial",
    "render",
    "AddressFamily",
    "Command",
    "InterfaceConfig",
    "InterfaceQuery",
    "RouteConfig",
    "RouteProtocol",
    "RouteQuery",
    "StagedEntry",
    "Target",
    "Token",
    "TokenType",
    "Verb",
]
