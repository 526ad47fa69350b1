"""Step-by-step control over a parse.

An `InteractiveParser` is what you get from `Parser.parse_interactive`, and
what's attached to every syntax error as `e.interactive_parser`. It lets you
feed tokens yourself, ask what the parser would accept next, and then let it
carry on by itself.
"""

import copy
import logging
import typing

from .exceptions import UnexpectedToken
from .lexer import LexerThread, Token

if typing.TYPE_CHECKING:
    from .runtime import ParserEngine, ParserState
    from .table import ParseAction


recover_log = logging.getLogger("shiftreduce.recovery")


class InteractiveParser:
    """A parser state paired with the lexer feeding it.

    Feeding and copying work on the parser state in place; see
    `ImmutableInteractiveParser` for a version that leaves itself alone.
    """

    parser: "ParserEngine"
    parser_state: "ParserState"
    lexer_thread: LexerThread
    result: typing.Any

    def __init__(self, parser: "ParserEngine", parser_state: "ParserState", lexer_thread: LexerThread):
        self.parser = parser
        self.parser_state = parser_state
        self.lexer_thread = lexer_thread
        self.result = None

    def feed_token(self, token: Token) -> typing.Any:
        """Feed the parser with a token, and advance it to the next state,
        as if it received it from the lexer.

        Feeding the `$END` token finishes the parse and returns the result.
        """
        return self.parser_state.feed_token(token, token.type == "$END")

    def iter_parse(self) -> typing.Iterator[Token]:
        """Step through the rest of the text, one token at a time.

        Each token is yielded *before* it's fed to the parser, so you get a
        look at the parser in the state the token arrives in. The results
        are kept in `self.result`.
        """
        for token in self.lexer_thread.lex(self.parser_state):
            yield token
            self.result = self.feed_token(token)

    def exhaust_lexer(self) -> list[Token]:
        """Feed the rest of the text to the parser. Returns the tokens fed,
        but not the end token: call `feed_eof` for that."""
        return list(self.iter_parse())

    def feed_eof(self, last_token: Token | None = None) -> typing.Any:
        """Feed the end token, finishing the parse. The end token borrows
        its position from `last_token`, defaulting to the last token the
        lexer produced."""
        if last_token is None and self.lexer_thread.state is not None:
            last_token = self.lexer_thread.state.last_token

        if last_token is not None:
            eof = Token.new_borrow_pos("$END", "", last_token)
        else:
            eof = Token("$END", "", 0, 1, 1)
        return self.feed_token(eof)

    def __copy__(self):
        return self.copy()

    def copy(self, deepcopy_values: bool = True) -> "InteractiveParser":
        """Make an independent copy: feeding the copy doesn't affect this
        parser, and vice versa."""
        lexer_thread = copy.copy(self.lexer_thread)
        parser_state = self.parser_state.copy(deepcopy_values=deepcopy_values)
        # The copy resumes from its own lexer, not ours.
        parser_state.lexer = lexer_thread
        return type(self)(self.parser, parser_state, lexer_thread)

    def __eq__(self, other):
        if not isinstance(other, InteractiveParser):
            return False

        return self.parser_state == other.parser_state and self.lexer_thread == other.lexer_thread

    def as_immutable(self) -> "ImmutableInteractiveParser":
        p = copy.copy(self)
        return ImmutableInteractiveParser(p.parser, p.parser_state, p.lexer_thread)

    def pretty(self) -> str:
        """Describe the parser's current state: its possible actions and the
        size of its stack."""
        out = ["Parser choices:"]
        for k, v in self.choices().items():
            out.append("\t- %s -> %r" % (k, v))
        out.append("stack size: %s" % len(self.parser_state.state_stack))
        return "\n".join(out)

    def choices(self) -> "dict[str, ParseAction]":
        """Return the current state's table entries: a mapping from each
        terminal and nonterminal to its action.

        Not every terminal in here is really acceptable, because some of
        the reductions lead nowhere; `accepts` checks.
        """
        return self.parser_state.parse_conf.parse_table.states[self.parser_state.position]

    def accepts(self) -> set[str]:
        """Return the set of terminals the parser would accept next.

        Each candidate is fed to a throwaway copy of the parser, without
        running any callbacks.
        """
        accepts = set()
        conf_no_callbacks = copy.copy(self.parser_state.parse_conf)
        conf_no_callbacks.callbacks = {}

        for t in self.choices():
            if t.isupper():  # is terminal?
                new_cursor = self.copy(deepcopy_values=False)
                new_cursor.parser_state.parse_conf = conf_no_callbacks
                try:
                    new_cursor.feed_token(Token(t, ""))
                except UnexpectedToken:
                    pass
                else:
                    accepts.add(t)

        recover_log.debug("accepts at state %s: %s", self.parser_state.position, sorted(accepts))
        return accepts

    def resume_parse(self) -> typing.Any:
        """Resume automated parsing from the current state."""
        if self.lexer_thread.state is None:
            raise TypeError("Cannot resume: this parser has no text to lex. Feed it tokens instead.")
        return self.parser.parse_from_state(
            self.parser_state, last_token=self.lexer_thread.state.last_token
        )


class ImmutableInteractiveParser(InteractiveParser):
    """An interactive parser that never changes: `feed_token` and
    `exhaust_lexer` return new parsers.

    Handy for trying several recoveries from the same point. Every step
    copies the stacks, so it's slower.
    """

    result = None

    def __hash__(self):
        return hash((self.parser_state, self.lexer_thread))

    def feed_token(self, token: Token) -> "ImmutableInteractiveParser":
        c = copy.copy(self)
        c.result = InteractiveParser.feed_token(c, token)
        return c

    def exhaust_lexer(self) -> "ImmutableInteractiveParser":  # type: ignore[override]
        """Try to feed the rest of the lexer state into the parser.

        Note that this returns a new ImmutableInteractiveParser and does not
        feed an '$END' token."""
        cursor = self.as_mutable()
        cursor.exhaust_lexer()
        return cursor.as_immutable()

    def as_mutable(self) -> InteractiveParser:
        """Convert to an InteractiveParser."""
        p = copy.copy(self)
        return InteractiveParser(p.parser, p.parser_state, p.lexer_thread)
