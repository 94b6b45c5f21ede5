"""Table-driven grammar engine for the netd command language.

The parser is a finite-state machine. Each engine builds its action table
once, at construction, as a read-only mapping:

    (state, token type) -> Action(next_state, handler, hint)

A missing entry is a syntax error. At END the parser accepts only if the
current state is a final state. The same table drives completion: replay the
tokens typed so far, then list every token type the reached state accepts.

Grammar:

    command    := show_cmd | set_cmd | delete_cmd | 'commit' | 'save'
                | 'discard' | 'help'
    show_cmd   := 'show' [ 'interface' [WORD] | 'route' route_filters ]
    set_cmd    := 'set' ( 'interface' [WORD] WORD family if_fib* 'addr' cidr if_fib*
                        | 'route' 'protocol' 'static' fib_clause* family addr addr
                          fib_clause* )
    delete_cmd := 'delete' 'route' 'protocol' 'static' fib_clause*
                  [family [cidr addr]] fib_clause*
    route_filters := ( 'fib' NUMBER | 'protocol' ('static'|'dynamic')
                     | 'inet' | 'inet6' )*
    fib_clause := 'fib' NUMBER
    if_fib     := fib_clause | 'tunnelfib' NUMBER
    family     := 'inet' | 'inet6'
"""
import logging
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Union

from ..errors import CommandSyntaxError
from .lexer import tokenize, tokenize_partial
from .schema import (
    KEYWORDS,
    AddressFamily,
    Command,
    InterfaceConfig,
    InterfaceQuery,
    RouteConfig,
    RouteProtocol,
    RouteQuery,
    Target,
    Token,
    TokenType,
    Verb,
)
from .values import (
    DEFAULT_MAX_FIBS,
    parse_address,
    parse_cidr,
    parse_fib,
    parse_interface_type,
)

logger = logging.getLogger(__name__)

# Completion marker for "the command may end here"
END_HINT = "<cr>"


class ParserState(IntEnum):
    """Positions in the grammar."""
    START = 0
    SHOW = 1
    SHOW_IF = 2
    SHOW_IF_FILTER = 3
    SHOW_ROUTE = 4
    SHOW_ROUTE_FIB = 5
    SHOW_ROUTE_PROTO = 6
    SET = 10
    SET_IF = 11
    SET_IF_NAME = 12
    SET_IF_TYPED_NAME = 13
    SET_IF_FAMILY = 14
    SET_IF_FIB_PRE = 15
    SET_IF_TFIB_PRE = 16
    SET_IF_ADDR = 17
    SET_IF_DONE = 18
    SET_IF_FIB_POST = 19
    SET_IF_TFIB_POST = 20
    SET_ROUTE = 30
    SET_ROUTE_PROTO = 31
    SET_ROUTE_STATIC = 32
    SET_ROUTE_FIB_PRE = 33
    SET_ROUTE_FAMILY = 34
    SET_ROUTE_DEST = 35
    SET_ROUTE_DONE = 36
    SET_ROUTE_FIB_POST = 37
    DELETE = 40
    DELETE_ROUTE = 41
    DELETE_ROUTE_PROTO = 42
    DELETE_ROUTE_STATIC = 43
    DELETE_ROUTE_FIB_PRE = 44
    DELETE_ROUTE_FAMILY = 45
    DELETE_ROUTE_DEST = 46
    DELETE_ROUTE_DONE = 47
    DELETE_ROUTE_FIB_POST = 48
    COMMIT = 50
    SAVE = 51
    DISCARD = 52
    HELP = 53


FINAL_STATES = frozenset({
    ParserState.SHOW,
    ParserState.SHOW_IF,
    ParserState.SHOW_IF_FILTER,
    ParserState.SHOW_ROUTE,
    ParserState.SET_IF_DONE,
    ParserState.SET_ROUTE_DONE,
    ParserState.DELETE_ROUTE_STATIC,
    ParserState.DELETE_ROUTE_FAMILY,
    ParserState.DELETE_ROUTE_DONE,
    ParserState.COMMIT,
    ParserState.SAVE,
    ParserState.DISCARD,
    ParserState.HELP,
})


@dataclass
class _Draft:
    """Fields collected while walking the table."""
    verb: Optional[Verb] = None
    target: Target = Target.NONE
    name: Optional[str] = None
    if_type: Optional[str] = None
    type_filter: str = ""
    family: Optional[AddressFamily] = None
    address: object = None
    prefix_len: Optional[int] = None
    gateway: object = None
    fib: Optional[int] = None
    tunnel_fib: Optional[int] = None
    protocol: Optional[RouteProtocol] = None


Handler = Callable[[_Draft, Token], None]


@dataclass(frozen=True)
class Action:
    """Shift to next_state, running handler on the consumed token."""
    next_state: ParserState
    handler: Optional[Handler] = None
    hint: Optional[str] = None


FAMILY_TOKENS = (TokenType.INET, TokenType.INET6)


class GrammarEngine:
    """Parse and complete netd commands.

    Usage:
        engine = GrammarEngine(max_fibs=16)
        command = engine.parse("set interface em0 inet addr 10.0.0.1/24")
        engine.complete("set interface em0 in")  # {"inet", "inet6"}
    """

    def __init__(self, max_fibs: int = DEFAULT_MAX_FIBS):
        self.max_fibs = max_fibs
        self._table = self._build_table()

    # === Table construction ===

    def _build_table(self) -> Mapping[ParserState, Mapping[TokenType, Action]]:
        table: dict[ParserState, dict[TokenType, Action]] = {
            state: {} for state in ParserState
        }

        def on(
            state: ParserState,
            tokens: Union[TokenType, Iterable[TokenType]],
            next_state: ParserState,
            handler: Optional[Handler] = None,
            hint: Optional[str] = None,
        ) -> None:
            if isinstance(tokens, TokenType):
                tokens = (tokens,)
            for token_type in tokens:
                table[state][token_type] = Action(next_state, handler, hint)

        S = ParserState
        T = TokenType

        # Top-level verbs
        on(S.START, T.SHOW, S.SHOW, self._verb(Verb.SHOW))
        on(S.START, T.SET, S.SET, self._verb(Verb.SET))
        on(S.START, T.DELETE, S.DELETE, self._verb(Verb.DELETE))
        on(S.START, T.COMMIT, S.COMMIT, self._verb(Verb.COMMIT))
        on(S.START, T.SAVE, S.SAVE, self._verb(Verb.SAVE))
        on(S.START, T.DISCARD, S.DISCARD, self._verb(Verb.DISCARD))
        on(S.START, T.HELP, S.HELP, self._verb(Verb.SHOW))

        # show interface [type]
        on(S.SHOW, T.INTERFACE, S.SHOW_IF, self._target(Target.INTERFACE))
        on(S.SHOW_IF, T.WORD, S.SHOW_IF_FILTER, self._set_type_filter, "<type>")

        # show route [fib N | protocol static|dynamic | inet | inet6]*
        on(S.SHOW, T.ROUTE, S.SHOW_ROUTE, self._target(Target.ROUTE))
        on(S.SHOW_ROUTE, T.FIB, S.SHOW_ROUTE_FIB)
        on(S.SHOW_ROUTE_FIB, T.NUMBER, S.SHOW_ROUTE, self._set_fib, "<fib>")
        on(S.SHOW_ROUTE, T.PROTOCOL, S.SHOW_ROUTE_PROTO)
        on(S.SHOW_ROUTE_PROTO, (T.STATIC, T.DYNAMIC), S.SHOW_ROUTE, self._set_protocol)
        on(S.SHOW_ROUTE, FAMILY_TOKENS, S.SHOW_ROUTE, self._set_family)

        # set interface [type] <name> <family> [fib N] addr <cidr> [fib N]
        on(S.SET, T.INTERFACE, S.SET_IF, self._target(Target.INTERFACE))
        on(S.SET_IF, T.WORD, S.SET_IF_NAME, self._set_name, "<ifname>")
        on(S.SET_IF_NAME, T.WORD, S.SET_IF_TYPED_NAME, self._set_typed_name, "<ifname>")
        on(S.SET_IF_NAME, FAMILY_TOKENS, S.SET_IF_FAMILY, self._set_family)
        on(S.SET_IF_TYPED_NAME, FAMILY_TOKENS, S.SET_IF_FAMILY, self._set_family)
        on(S.SET_IF_FAMILY, T.FIB, S.SET_IF_FIB_PRE)
        on(S.SET_IF_FIB_PRE, T.NUMBER, S.SET_IF_FAMILY, self._set_fib, "<fib>")
        on(S.SET_IF_FAMILY, T.TUNNELFIB, S.SET_IF_TFIB_PRE)
        on(S.SET_IF_TFIB_PRE, T.NUMBER, S.SET_IF_FAMILY, self._set_tunnel_fib, "<fib>")
        on(S.SET_IF_FAMILY, T.ADDR, S.SET_IF_ADDR)
        on(S.SET_IF_ADDR, T.WORD, S.SET_IF_DONE, self._set_cidr, "<address/prefix>")
        on(S.SET_IF_DONE, T.FIB, S.SET_IF_FIB_POST)
        on(S.SET_IF_FIB_POST, T.NUMBER, S.SET_IF_DONE, self._set_fib, "<fib>")
        on(S.SET_IF_DONE, T.TUNNELFIB, S.SET_IF_TFIB_POST)
        on(S.SET_IF_TFIB_POST, T.NUMBER, S.SET_IF_DONE, self._set_tunnel_fib, "<fib>")

        # set route protocol static [fib N] <family> <dest> <gw> [fib N]
        on(S.SET, T.ROUTE, S.SET_ROUTE, self._target(Target.ROUTE))
        on(S.SET_ROUTE, T.PROTOCOL, S.SET_ROUTE_PROTO)
        on(S.SET_ROUTE_PROTO, T.STATIC, S.SET_ROUTE_STATIC, self._set_protocol)
        on(S.SET_ROUTE_STATIC, T.FIB, S.SET_ROUTE_FIB_PRE)
        on(S.SET_ROUTE_FIB_PRE, T.NUMBER, S.SET_ROUTE_STATIC, self._set_fib, "<fib>")
        on(S.SET_ROUTE_STATIC, FAMILY_TOKENS, S.SET_ROUTE_FAMILY, self._set_family)
        on(S.SET_ROUTE_FAMILY, T.WORD, S.SET_ROUTE_DEST, self._set_cidr, "<destination>")
        on(S.SET_ROUTE_DEST, T.WORD, S.SET_ROUTE_DONE, self._set_gateway, "<gateway>")
        on(S.SET_ROUTE_DONE, T.FIB, S.SET_ROUTE_FIB_POST)
        on(S.SET_ROUTE_FIB_POST, T.NUMBER, S.SET_ROUTE_DONE, self._set_fib, "<fib>")

        # delete route protocol static [fib N] [<family> [<dest> <gw>]] [fib N]
        on(S.DELETE, T.ROUTE, S.DELETE_ROUTE, self._target(Target.ROUTE))
        on(S.DELETE_ROUTE, T.PROTOCOL, S.DELETE_ROUTE_PROTO)
        on(S.DELETE_ROUTE_PROTO, T.STATIC, S.DELETE_ROUTE_STATIC, self._set_protocol)
        on(S.DELETE_ROUTE_STATIC, T.FIB, S.DELETE_ROUTE_FIB_PRE)
        on(S.DELETE_ROUTE_FIB_PRE, T.NUMBER, S.DELETE_ROUTE_STATIC, self._set_fib, "<fib>")
        on(S.DELETE_ROUTE_STATIC, FAMILY_TOKENS, S.DELETE_ROUTE_FAMILY, self._set_family)
        on(S.DELETE_ROUTE_FAMILY, T.WORD, S.DELETE_ROUTE_DEST, self._set_cidr, "<destination>")
        on(S.DELETE_ROUTE_FAMILY, T.FIB, S.DELETE_ROUTE_FIB_POST)
        on(S.DELETE_ROUTE_DEST, T.WORD, S.DELETE_ROUTE_DONE, self._set_gateway, "<gateway>")
        on(S.DELETE_ROUTE_DONE, T.FIB, S.DELETE_ROUTE_FIB_POST)
        on(S.DELETE_ROUTE_FIB_POST, T.NUMBER, S.DELETE_ROUTE_DONE, self._set_fib, "<fib>")

        return MappingProxyType({
            state: MappingProxyType(actions) for state, actions in table.items()
        })

    # === Handlers ===

    @staticmethod
    def _verb(verb: Verb) -> Handler:
        def handler(draft: _Draft, token: Token) -> None:
            draft.verb = verb
        return handler

    @staticmethod
    def _target(target: Target) -> Handler:
        def handler(draft: _Draft, token: Token) -> None:
            draft.target = target
        return handler

    def _set_type_filter(self, draft: _Draft, token: Token) -> None:
        draft.type_filter = token.lexeme

    def _set_name(self, draft: _Draft, token: Token) -> None:
        draft.name = token.lexeme

    def _set_typed_name(self, draft: _Draft, token: Token) -> None:
        # Two words before the family: the first one was the interface type
        draft.if_type = parse_interface_type(draft.name)
        draft.name = token.lexeme

    def _set_family(self, draft: _Draft, token: Token) -> None:
        draft.family = AddressFamily(token.type.value)

    def _set_protocol(self, draft: _Draft, token: Token) -> None:
        draft.protocol = RouteProtocol(token.type.value)

    def _set_fib(self, draft: _Draft, token: Token) -> None:
        draft.fib = parse_fib(token.lexeme, self.max_fibs)

    def _set_tunnel_fib(self, draft: _Draft, token: Token) -> None:
        draft.tunnel_fib = parse_fib(token.lexeme, self.max_fibs)

    def _set_cidr(self, draft: _Draft, token: Token) -> None:
        draft.address, draft.prefix_len = parse_cidr(token.lexeme, draft.family)

    def _set_gateway(self, draft: _Draft, token: Token) -> None:
        draft.gateway = parse_address(token.lexeme, draft.family)

    # === Parsing ===

    def action(self, state: ParserState, token_type: TokenType) -> Optional[Action]:
        """Look up the table entry for (state, token type)."""
        return self._table[state].get(token_type)

    def expected(self, state: ParserState) -> list[str]:
        """Human-readable tokens acceptable in a state."""
        names = []
        for token_type, action in self._table[state].items():
            if token_type.is_keyword:
                names.append(token_type.value)
            else:
                names.append(action.hint or token_type.value)
        return names

    def parse(self, source: Union[str, list[Token]]) -> Command:
        """
        Parse command text (or a token list) into a Command.

        Args:
            source: Raw command text or the output of tokenize()

        Returns:
            Fully populated Command

        Raises:
            LexError: Unrecognized character
            CommandSyntaxError: Unexpected token or incomplete command
            SemanticError: Invalid address, FIB or interface type
        """
        tokens = tokenize(source) if isinstance(source, str) else source
        state = ParserState.START
        draft = _Draft()

        for token in tokens:
            if token.type == TokenType.END:
                break

            action = self.action(state, token.type)
            if action is None:
                if state == ParserState.START:
                    message = f"Unknown command '{token.lexeme}'"
                else:
                    message = f"Unexpected '{token.lexeme}' at position {token.position}"
                raise CommandSyntaxError(
                    message,
                    position=token.position,
                    lexeme=token.lexeme,
                    expected=self.expected(state),
                )

            if action.handler is not None:
                action.handler(draft, token)
            state = action.next_state

        if state == ParserState.START:
            raise CommandSyntaxError("Empty command")

        if state not in FINAL_STATES:
            raise CommandSyntaxError(
                "Incomplete command", expected=self.expected(state)
            )

        command = self._build(draft)
        logger.debug(f"Parsed {command}")
        return command

    @staticmethod
    def _build(draft: _Draft) -> Command:
        """Turn an accepted draft into a Command."""
        verb, target = draft.verb, draft.target

        if verb == Verb.SHOW and target == Target.INTERFACE:
            return Command(verb, target, InterfaceQuery(draft.type_filter))

        if verb == Verb.SHOW and target == Target.ROUTE:
            return Command(
                verb, target,
                RouteQuery(fib=draft.fib, protocol=draft.protocol, family=draft.family),
            )

        if verb == Verb.SET and target == Target.INTERFACE:
            return Command(verb, target, InterfaceConfig(
                name=draft.name,
                family=draft.family,
                address=draft.address,
                prefix_len=draft.prefix_len,
                fib=draft.fib if draft.fib is not None else 0,
                tunnel_fib=draft.tunnel_fib,
                if_type=draft.if_type,
            ))

        if target == Target.ROUTE and verb in (Verb.SET, Verb.DELETE):
            return Command(verb, target, RouteConfig(
                family=draft.family,
                destination=draft.address,
                prefix_len=draft.prefix_len,
                gateway=draft.gateway,
                fib=draft.fib,
                protocol=draft.protocol or RouteProtocol.STATIC,
            ))

        return Command(verb)

    # === Completion ===

    def complete(self, partial_text: str) -> set[str]:
        """
        List valid next tokens for partially typed input.

        Complete tokens are replayed through the table; the trailing word
        (if the text does not end in whitespace) filters the candidates by
        prefix. Keywords come back as lexemes, generic slots as a "<hint>"
        placeholder when nothing has been typed yet, and END_HINT marks a
        state where the command may end.
        """
        tokens = tokenize_partial(partial_text)[:-1]

        if partial_text and not partial_text[-1].isspace() and tokens:
            partial = tokens[-1].lexeme
            tokens = tokens[:-1]
        else:
            partial = ""

        state = ParserState.START
        for token in tokens:
            action = self.action(state, token.type)
            if action is None:
                return set()
            state = action.next_state

        candidates: set[str] = set()
        for token_type, action in self._table[state].items():
            if token_type.is_keyword:
                candidates.update(
                    lexeme for lexeme, kw in KEYWORDS.items()
                    if kw == token_type and lexeme.startswith(partial)
                )
            elif not partial:
                candidates.add(action.hint or f"<{token_type.value.lower()}>")

        if not partial and state in FINAL_STATES:
            candidates.add(END_HINT)

        return candidates
