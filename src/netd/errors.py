"""Error taxonomy for the netd daemon.

Every error a client can trigger derives from NetdError. The daemon catches
NetdError at the request boundary and turns it into an error response, so
none of these ever take the process down.
"""
from typing import Optional


class NetdError(Exception):
    """Base class for all netd errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ParseError(NetdError):
    """Input could not be turned into a Command."""
    pass


class LexError(ParseError):
    """Input contains a character the lexer does not recognize."""

    def __init__(self, position: int, character: str):
        self.position = position
        self.character = character
        super().__init__(
            f"invalid character {character!r} at position {position}"
        )


class CommandSyntaxError(ParseError):
    """Token not accepted in the current parser state."""

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        lexeme: str = "",
        expected: Optional[list[str]] = None,
    ):
        self.position = position
        self.lexeme = lexeme
        self.expected = sorted(expected or [])
        if self.expected:
            message = f"{message} (expected: {', '.join(self.expected)})"
        super().__init__(message)


class SemanticError(ParseError):
    """Well-formed input carrying an invalid value."""
    pass


class UnknownTargetError(SemanticError):
    """Verb/target combination the dispatcher does not handle."""

    def __init__(self, verb: str, target: str):
        self.verb = verb
        self.target = target
        super().__init__(f"Unknown {verb} target '{target}'")


class StagingFullError(NetdError):
    """The staging buffer has reached its capacity."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(
            f"staging buffer full ({capacity} pending changes); "
            f"commit or discard first"
        )


class ApplyError(NetdError):
    """One or more staged changes failed to apply during commit."""

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)


class UnknownOperationError(NetdError):
    """RPC envelope is malformed or names an unsupported operation."""
    pass
