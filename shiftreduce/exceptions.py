"""The failure taxonomy.

Everything the runtime raises on purpose derives from `ShiftReduceError`.
Lexing and parsing failures additionally derive from `UnexpectedInput`, which
knows where in the text things went wrong and, when the failure came out of
a live parse, carries an interactive parser positioned right at the failure
so that callers can poke at it or try to continue.
"""

import collections.abc
import logging
import typing

if typing.TYPE_CHECKING:
    from .interactive import InteractiveParser
    from .lexer import Token
    from .runtime import ParserState


logger = logging.getLogger("shiftreduce")


class ShiftReduceError(Exception):
    pass


class ConfigurationError(ShiftReduceError, ValueError):
    pass


class GrammarError(ShiftReduceError):
    pass


class ParseError(ShiftReduceError):
    pass


class LexError(ShiftReduceError):
    pass


class UnexpectedInput(ShiftReduceError):
    """The base class for every error raised because the input text was bad.

    `pos_in_stream`, `line` and `column` locate the failure. `state` is the
    parser state at the point of failure, if there was one, and
    `interactive_parser` is filled in by the engine as the error passes
    through it.
    """

    line: int
    column: int
    pos_in_stream: int | None = None
    state: typing.Any = None
    interactive_parser: "InteractiveParser | None" = None

    def get_context(self, text: str, span: int = 40) -> str:
        """Return the line of `text` around the error, with a caret under
        the offending position.

        The excerpt is at most `span` characters on either side and never
        crosses a line break.
        """
        assert self.pos_in_stream is not None, self
        pos = self.pos_in_stream
        start = max(pos - span, 0)
        end = pos + span
        before = text[start:pos].rsplit("\n", 1)[-1]
        after = text[pos:end].split("\n", 1)[0]
        return before + after + "\n" + " " * len(before.expandtabs()) + "^\n"

    def match_examples(
        self,
        parse_fn: typing.Callable[[str], typing.Any],
        examples: (
            collections.abc.Mapping[typing.Any, collections.abc.Iterable[str]]
            | collections.abc.Iterable[tuple[typing.Any, collections.abc.Iterable[str]]]
        ),
        token_type_match_fallback: bool = False,
        use_accepts: bool = True,
    ) -> typing.Any:
        """Figure out which of a set of known-bad inputs fails the same way
        this error did, and return its label.

        `examples` maps a label to a list of malformed inputs. Each input is
        run through `parse_fn`, and the resulting error is compared with this
        one: an example that fails in the same parser state with the very
        same token wins immediately. Otherwise the first example that fails
        in the same state is remembered as a candidate. (With
        `token_type_match_fallback`, one that fails on a token of the same
        type beats a plain same-state match.)

        Returns None if nothing matched.
        """
        assert self.state is not None, "Not supported for this exception"

        if isinstance(examples, collections.abc.Mapping):
            examples = examples.items()

        candidate: tuple[typing.Any, bool] = (None, False)
        for i, (label, example) in enumerate(examples):
            assert not isinstance(example, str), "Expecting a list"

            for j, malformed in enumerate(example):
                try:
                    parse_fn(malformed)
                except UnexpectedInput as ut:
                    if ut.state != self.state:
                        continue

                    if (
                        use_accepts
                        and isinstance(self, UnexpectedToken)
                        and isinstance(ut, UnexpectedToken)
                        and ut.accepts != self.accepts
                    ):
                        logger.debug(
                            "Different accepts with same state[%s]: %s != %s at example [%s][%s]",
                            self.state,
                            self.accepts,
                            ut.accepts,
                            i,
                            j,
                        )
                        continue

                    if isinstance(self, UnexpectedToken) and isinstance(ut, UnexpectedToken):
                        if ut.token == self.token:
                            logger.debug("Exact match at example [%s][%s]", i, j)
                            return label

                        if token_type_match_fallback:
                            if ut.token.type == self.token.type and not candidate[-1]:
                                logger.debug("Token type fallback at example [%s][%s]", i, j)
                                candidate = label, True

                    if candidate[0] is None:
                        logger.debug("Same state match at example [%s][%s]", i, j)
                        candidate = label, False

        return candidate[0]

    def _format_expected(self, expected: collections.abc.Iterable[str]) -> str:
        return "Expected one of: \n\t* %s\n" % "\n\t* ".join(sorted(expected))


class UnexpectedCharacters(LexError, UnexpectedInput):
    """No terminal could match the text at `pos_in_stream`.

    `allowed` is the set of terminals the lexer was trying at that point.
    `token_history` holds the last token produced before the failure, if
    any.
    """

    allowed: set[str]
    considered_tokens: set[str] | None
    char: str
    token_history: "list[Token] | None"

    def __init__(
        self,
        seq: str,
        lex_pos: int,
        line: int,
        column: int,
        allowed: collections.abc.Iterable[str] | None = None,
        considered_tokens: collections.abc.Iterable[str] | None = None,
        state: typing.Any = None,
        token_history: "list[Token] | None" = None,
    ):
        super().__init__()
        self.line = line
        self.column = column
        self.pos_in_stream = lex_pos
        self.state = state
        self.char = seq[lex_pos]
        self.allowed = set(allowed) if allowed is not None else set()
        self.considered_tokens = set(considered_tokens) if considered_tokens is not None else None
        self.token_history = token_history

    def __str__(self):
        message = "No terminal matches '%s' in the current parser context, at line %d col %d" % (
            self.char,
            self.line,
            self.column,
        )
        if self.allowed:
            message += "\n\n" + self._format_expected(self.allowed)
        if self.token_history:
            message += "\nPrevious tokens: %s\n" % ", ".join(repr(t) for t in self.token_history)
        return message


class UnexpectedToken(ParseError, UnexpectedInput):
    """The parser got a token it has no action for.

    `expected` is the set of token types the current state has an entry for.
    That is broader than what would actually be accepted, since some of
    those entries are reductions that fail further down the line; `accepts`
    asks the interactive parser for the precise answer, and is only computed
    when somebody looks at it.
    """

    token: "Token"
    expected: set[str]
    considered_rules: typing.Any
    token_history: "list[Token] | None"

    def __init__(
        self,
        token: "Token",
        expected: collections.abc.Iterable[str],
        considered_rules: typing.Any = None,
        state: "ParserState | None" = None,
        interactive_parser: "InteractiveParser | None" = None,
        token_history: "list[Token] | None" = None,
    ):
        super().__init__()
        self.line = getattr(token, "line", "?")
        self.column = getattr(token, "column", "?")
        self.pos_in_stream = getattr(token, "start_pos", None)
        self.state = state
        self.token = token
        self.expected = set(expected)
        self.considered_rules = considered_rules
        self.interactive_parser = interactive_parser
        self.token_history = token_history
        self._accepts: set[str] | None = None

    @property
    def accepts(self) -> set[str]:
        if self._accepts is None:
            if self.interactive_parser is not None:
                self._accepts = self.interactive_parser.accepts()
            else:
                self._accepts = set(self.expected)
        return self._accepts

    def __str__(self):
        message = "Unexpected token %r at line %s, column %s.\n%s" % (
            self.token,
            self.line,
            self.column,
            self._format_expected(self.accepts),
        )
        if self.token_history:
            message += "Previous tokens: %r\n" % self.token_history
        return message


class UnexpectedEOF(UnexpectedToken):
    """The input ended while the parser still wanted more.

    `token` is the synthetic `$END` token, which borrows the position of the
    last real token; that last token is also in `token_history`.
    """

    def __str__(self):
        message = "Unexpected end-of-input. %s" % self._format_expected(self.accepts)
        if self.token_history:
            message += "Last token: %r\n" % self.token_history[-1]
        return message


class VisitError(ShiftReduceError):
    """A tree handler raised while processing `obj`.

    `rule` is the name of the rule (or terminal) being handled, and
    `orig_exc` is the exception it raised.
    """

    obj: typing.Any
    orig_exc: Exception

    def __init__(self, rule: str, obj: typing.Any, orig_exc: Exception):
        message = 'Error trying to process rule "%s":\n\n%s' % (rule, orig_exc)
        super().__init__(message)
        self.rule = rule
        self.obj = obj
        self.orig_exc = orig_exc


class DedentError(ShiftReduceError):
    pass
