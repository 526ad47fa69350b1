"""The shift-reduce machine.

A parse is a `ParserState`: a stack of table states and, beside it, a stack
of values (tokens, and whatever the reduction callbacks built). Tokens go in
one at a time through `ParserState.feed_token`. `ParserEngine` pulls tokens
from a lexer and feeds them, and `LALRParser` wraps that up with the error
recovery loop.
"""

import copy
import logging
import typing

from . import serialize
from .exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from .grammar import Rule
from .interactive import InteractiveParser
from .lexer import LexerThread, Token
from .table import IntParseTable, ParseTable, Reduce, Shift, is_terminal

logger = logging.getLogger("shiftreduce")
action_log = logging.getLogger("shiftreduce.action")
recover_log = logging.getLogger("shiftreduce.recovery")

Callbacks = dict[Rule | str, typing.Callable[..., typing.Any]]
ErrorHandler = typing.Callable[[UnexpectedInput], bool]


class ParserConf(serialize.Serializable):
    """The rules, the start symbols, and the callbacks to run on
    reduction."""

    _serialize_fields = ("rules", "start", "parser_type")
    _serialize_namespace = (Rule,)

    rules: list[Rule]
    callbacks: Callbacks
    start: list[str]
    parser_type: str

    def __init__(
        self,
        rules: typing.Iterable[Rule],
        start: typing.Iterable[str] | str,
        parser_type: str = "lalr",
        callbacks: Callbacks | None = None,
    ):
        self.rules = list(rules)
        self.start = [start] if isinstance(start, str) else list(start)
        self.parser_type = parser_type
        self.callbacks = callbacks if callbacks is not None else {}


class ParseConf:
    """The read-only half of a parse: the table, the callbacks, and where
    to start and end."""

    __slots__ = ("parse_table", "callbacks", "start", "start_state", "end_state", "states")

    parse_table: ParseTable
    callbacks: Callbacks
    start: str
    start_state: typing.Hashable
    end_state: typing.Hashable
    states: dict[typing.Hashable, dict[str, Shift | Reduce]]

    def __init__(self, parse_table: ParseTable, callbacks: Callbacks, start: str):
        self.parse_table = parse_table

        self.start_state = self.parse_table.start_states[start]
        self.end_state = self.parse_table.end_states[start]
        self.states = self.parse_table.states

        self.callbacks = callbacks
        self.start = start

    def __copy__(self):
        c = ParseConf.__new__(ParseConf)
        for name in ParseConf.__slots__:
            setattr(c, name, getattr(self, name))
        return c


class ParserState:
    """One parse in progress.

    The state stack always has one more entry than the value stack: the
    start state sits at the bottom with no value of its own.
    """

    __slots__ = ("parse_conf", "lexer", "state_stack", "value_stack")

    parse_conf: ParseConf
    lexer: LexerThread
    state_stack: list[typing.Hashable]
    value_stack: list[typing.Any]

    def __init__(
        self,
        parse_conf: ParseConf,
        lexer: LexerThread,
        state_stack: list[typing.Hashable] | None = None,
        value_stack: list[typing.Any] | None = None,
    ):
        self.parse_conf = parse_conf
        self.lexer = lexer
        self.state_stack = state_stack or [self.parse_conf.start_state]
        self.value_stack = value_stack or []

    @property
    def position(self) -> typing.Hashable:
        return self.state_stack[-1]

    # Necessary for match_examples() to work
    def __eq__(self, other):
        if not isinstance(other, ParserState):
            return NotImplemented
        return len(self.state_stack) == len(other.state_stack) and self.position == other.position

    def __hash__(self):
        return hash((len(self.state_stack), self.position))

    def __copy__(self):
        return self.copy()

    def copy(self, deepcopy_values: bool = True) -> "ParserState":
        """Copy the stacks, so that feeding the copy doesn't disturb this
        state. The values themselves are deep-copied unless
        `deepcopy_values` is false."""
        return type(self)(
            self.parse_conf,
            self.lexer,
            copy.copy(self.state_stack),
            copy.deepcopy(self.value_stack) if deepcopy_values else copy.copy(self.value_stack),
        )

    def feed_token(self, token: Token, is_end: bool = False) -> typing.Any:
        """Run the machine on one token.

        For an ordinary token this performs any number of reductions and
        then exactly one shift. For the end token (`is_end`), it reduces
        until the stack reaches the end state and returns the result.
        Raises UnexpectedToken (UnexpectedEOF for the end token) if the
        token isn't acceptable here.
        """
        state_stack = self.state_stack
        value_stack = self.value_stack
        states = self.parse_conf.states
        end_state = self.parse_conf.end_state
        callbacks = self.parse_conf.callbacks

        al = action_log
        while True:
            state = state_stack[-1]
            action = states[state].get(token.type)
            if al.isEnabledFor(logging.DEBUG):
                al.debug(
                    "{stack: <30} {input: <15} {action: <5}".format(
                        stack=repr(state_stack[-5:]),
                        input=token.type,
                        action=repr(action),
                    )
                )

            match action:
                case None:
                    expected = {s for s in states[state].keys() if is_terminal(s)}
                    if token.type == "$END":
                        raise UnexpectedEOF(token, expected, state=self)
                    raise UnexpectedToken(token, expected, state=self)

                case Shift(state=target):
                    # Shift once and return.
                    assert not is_end
                    state_stack.append(target)
                    value_stack.append(
                        token if token.type not in callbacks else callbacks[token.type](token)
                    )
                    return None

                case Reduce(rule=rule):
                    # Reduce, and keep going until somebody shifts.
                    size = len(rule.expansion)
                    if size:
                        s = value_stack[-size:]
                        del state_stack[-size:]
                        del value_stack[-size:]
                    else:
                        s = []

                    value = callbacks[rule](s) if callbacks else s

                    goto = states[state_stack[-1]][rule.origin.name]
                    assert isinstance(goto, Shift)
                    state_stack.append(goto.state)
                    value_stack.append(value)

                    if is_end and state_stack[-1] == end_state:
                        return value_stack[-1]

                case _:
                    typing.assert_never(action)


class ParserEngine:
    """Drives a ParserState with the tokens from a lexer."""

    parse_table: ParseTable
    callbacks: Callbacks
    debug: bool

    def __init__(self, parse_table: ParseTable, callbacks: Callbacks, debug: bool = False):
        self.parse_table = parse_table
        self.callbacks = callbacks
        self.debug = debug

    def parse(
        self,
        lexer: LexerThread,
        start: str,
        value_stack: list[typing.Any] | None = None,
        state_stack: list[typing.Hashable] | None = None,
        start_interactive: bool = False,
    ) -> typing.Any:
        parse_conf = ParseConf(self.parse_table, self.callbacks, start)
        parser_state = ParserState(parse_conf, lexer, state_stack, value_stack)
        if start_interactive:
            return InteractiveParser(self, parser_state, parser_state.lexer)
        return self.parse_from_state(parser_state)

    def parse_from_state(self, state: ParserState, last_token: Token | None = None) -> typing.Any:
        """Run the given state to completion.

        `last_token` is the token most recently fed to the state, if it has
        been fed anything; the end marker borrows its position.
        """
        token = last_token
        try:
            for token in state.lexer.lex(state):
                assert token is not None
                state.feed_token(token)

            if token is not None:
                end_token = Token.new_borrow_pos("$END", "", token)
            else:
                end_token = Token("$END", "", 0, 1, 1)
            return state.feed_token(end_token, True)

        except UnexpectedInput as e:
            e.interactive_parser = InteractiveParser(self, state, state.lexer)
            if isinstance(e, UnexpectedEOF) and e.token_history is None and token is not None:
                e.token_history = [token]
            if self.debug:
                self._dump_state(state)
            raise e

        except Exception:
            if self.debug:
                self._dump_state(state)
            raise

    def _dump_state(self, state: ParserState):
        logger.error("STATE STACK DUMP")
        logger.error("----------------")
        for i, s in enumerate(state.state_stack):
            logger.error("%d) %s", i, s)
        logger.error("VALUE STACK DUMP")
        logger.error("----------------")
        for i, v in enumerate(state.value_stack):
            logger.error("%d) %r", i, v)


class LALRParser:
    """A parse table plus the engine to run it, with error recovery."""

    parse_table: ParseTable
    parser: ParserEngine

    def __init__(self, parse_table: ParseTable, callbacks: Callbacks, debug: bool = False):
        self.parse_table = parse_table
        self.callbacks = callbacks
        self.debug = debug
        self.parser = ParserEngine(parse_table, callbacks, debug)

    @classmethod
    def deserialize(
        cls,
        data: dict[str, typing.Any],
        memo: dict[int, typing.Any],
        callbacks: Callbacks,
        debug: bool = False,
    ) -> "LALRParser":
        parse_table = IntParseTable.deserialize(data, memo)
        return cls(parse_table, callbacks, debug)

    def serialize(self, memo: serialize.SerializeMemoizer | None) -> dict[str, typing.Any]:
        return self.parse_table.serialize(memo)

    def parse_interactive(self, lexer: LexerThread, start: str) -> InteractiveParser:
        return self.parser.parse(lexer, start, start_interactive=True)

    def parse(
        self,
        lexer: LexerThread,
        start: str,
        on_error: ErrorHandler | None = None,
    ) -> typing.Any:
        """Parse, and if it fails, let `on_error` try to fix things up.

        `on_error` is called with each error. If it returns something false
        the error is raised; otherwise the parse resumes from the error's
        interactive parser (which the handler may have fed tokens to). A
        handler that leaves an UnexpectedCharacters error alone gets the
        offending character skipped for it.
        """
        try:
            return self.parser.parse(lexer, start)
        except UnexpectedInput as e:
            if on_error is None:
                raise

            rl = recover_log
            while True:
                assert e.interactive_parser is not None
                s = e.interactive_parser.lexer_thread.state
                assert s is not None
                p = s.line_ctr.char_pos

                rl.info("error at %s:%s, calling handler: %s", e.line, e.column, type(e).__name__)
                if not on_error(e):
                    raise e

                if isinstance(e, UnexpectedCharacters):
                    # If the handler didn't move the position, skip the bad
                    # character ourselves so that we always make progress.
                    if p == s.line_ctr.char_pos:
                        rl.debug("skipping %r at %d", s.text[p : p + 1], p)
                        s.line_ctr.feed(s.text[p : p + 1])

                try:
                    return e.interactive_parser.resume_parse()
                except UnexpectedToken as e2:
                    if (
                        isinstance(e, UnexpectedToken)
                        and e.token.type == e2.token.type == "$END"
                        and e.interactive_parser == e2.interactive_parser
                    ):
                        # Same failure at the end of the input, from the
                        # same place: the handler isn't getting anywhere.
                        rl.info("no progress at end of input, giving up")
                        raise e2
                    e = e2
                except UnexpectedCharacters as e2:
                    e = e2
