"""Lexing: turning text into a stream of tokens.

There are two lexers here. `BasicLexer` considers every terminal at every
position. `ContextualLexer` asks the parser which state it is in and only
considers the terminals that state can accept, which is how a grammar gets
to have keywords that are also perfectly good identifiers somewhere else.

Both are built on `Scanner`, which glues a list of terminal patterns into as
few big regular expressions as it can and matches them anchored at a given
position.
"""

import abc
import copy
import dataclasses
import logging
import re
import typing

from . import serialize
from .exceptions import LexError, UnexpectedCharacters, UnexpectedToken

if typing.TYPE_CHECKING:
    from .indenter import PostLex
    from .runtime import ParserState


lexer_log = logging.getLogger("shiftreduce.lexer")

# The widest a pattern is ever reported to be. Python's regex parser reports
# unbounded repetition as a very large number, which we don't want leaking
# into sort keys or serialized grammars.
MAXWIDTH = 0xFFFFFFFF

FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "A": re.ASCII,
}


def get_regexp_width(expr: str) -> tuple[int, int]:
    """Return the (minimum, maximum) number of characters `expr` can match."""
    try:
        # The stdlib's own regex parser. It's private (it was `sre_parse`
        # before 3.11), and nothing public reports widths.
        lo, hi = re._parser.parse(expr).getwidth()  # type: ignore[attr-defined]
    except re.error:
        raise ValueError(expr)
    return min(lo, MAXWIDTH), min(hi, MAXWIDTH)


def regexp_has_newline(r: str) -> bool:
    """Could this pattern match a newline?

    This is a syntactic guess, and it errs on the side of yes. It only
    decides whether tokens of this type have their newlines counted.
    """
    return "\n" in r or "\\n" in r or "\\s" in r or "[^" in r or ("(?s" in r and "." in r)


class Pattern(serialize.Serializable, abc.ABC):
    """How the text of a terminal is recognized.

    `flags` is a set of single-letter regular expression flags (see FLAGS).
    `raw` is the pattern as it was written in the grammar source, if the
    compiler kept it; it's only used for error messages.
    """

    _serialize_fields = ("value", "flags", "raw")

    value: str
    flags: frozenset[str]
    raw: str | None
    type: typing.ClassVar[str]

    def __init__(self, value: str, flags: typing.Iterable[str] = (), raw: str | None = None):
        self.value = value
        self.flags = frozenset(flags)
        self.raw = raw

        unknown = self.flags - FLAGS.keys()
        if unknown:
            raise LexError(f"Unknown pattern flags {sorted(unknown)} in {self!r}")

    def __repr__(self):
        return repr(self.to_regexp())

    def __hash__(self):
        return hash((type(self), self.value, self.flags))

    def __eq__(self, other):
        return type(self) == type(other) and self.value == other.value and self.flags == other.flags

    @abc.abstractmethod
    def to_regexp(self) -> str: ...

    @property
    @abc.abstractmethod
    def min_width(self) -> int: ...

    @property
    @abc.abstractmethod
    def max_width(self) -> int: ...

    def _get_flags(self, value: str) -> str:
        for f in sorted(self.flags):
            # Inline groups spell ASCII as "a".
            value = "(?%s:%s)" % (f.lower(), value)
        return value


class PatternStr(Pattern):
    type = "str"

    def to_regexp(self) -> str:
        return self._get_flags(re.escape(self.value))

    @property
    def min_width(self) -> int:
        return len(self.value)

    @property
    def max_width(self) -> int:
        return len(self.value)


class PatternRE(Pattern):
    type = "re"

    _width: tuple[int, int] | None = None

    def to_regexp(self) -> str:
        return self._get_flags(self.value)

    def _get_width(self) -> tuple[int, int]:
        if self._width is None:
            self._width = get_regexp_width(self.to_regexp())
        return self._width

    @property
    def min_width(self) -> int:
        return self._get_width()[0]

    @property
    def max_width(self) -> int:
        return self._get_width()[1]

    def serialize(self, memo=None):
        result = super().serialize(memo)
        result["_width"] = list(self._get_width())
        return result

    @classmethod
    def deserialize(cls, data, memo):
        # The compiler already worked out how wide the pattern is; trust it.
        pattern = super().deserialize(data, memo)
        width = data.get("_width")
        if width is not None:
            lo, hi = width
            pattern._width = (lo, hi)
        return pattern


class TerminalDef(serialize.Serializable):
    """A named terminal: a pattern and the priority it competes with."""

    _serialize_fields = ("name", "pattern", "priority")
    _serialize_namespace = (PatternStr, PatternRE)

    name: str
    pattern: Pattern
    priority: int

    def __init__(self, name: str, pattern: Pattern, priority: int = 0):
        assert isinstance(pattern, Pattern), pattern
        self.name = name
        self.pattern = pattern
        self.priority = priority

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self.name, self.pattern)

    def __eq__(self, other):
        if not isinstance(other, TerminalDef):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash(self.name)

    def user_repr(self) -> str:
        if self.name.startswith("__"):
            return self.pattern.raw or self.name
        return self.name


class Token(str):
    """A string with a type and a position.

    A token compares equal to plain strings with the same text, and to other
    tokens with the same text *and* the same type. `end_line`, `end_column`
    and `end_pos` describe the position just past the token.
    """

    type: str
    value: typing.Any
    start_pos: int | None
    line: int | None
    column: int | None
    end_line: int | None
    end_column: int | None
    end_pos: int | None

    def __new__(
        cls,
        type: str,
        value: typing.Any,
        start_pos: int | None = None,
        line: int | None = None,
        column: int | None = None,
        end_line: int | None = None,
        end_column: int | None = None,
        end_pos: int | None = None,
    ):
        inst = super().__new__(cls, value)
        inst.type = type
        inst.value = value
        inst.start_pos = start_pos
        inst.line = line
        inst.column = column
        inst.end_line = end_line
        inst.end_column = end_column
        inst.end_pos = end_pos
        return inst

    def update(self, type: str | None = None, value: typing.Any = None) -> "Token":
        return Token.new_borrow_pos(
            type if type is not None else self.type,
            value if value is not None else self.value,
            self,
        )

    @classmethod
    def new_borrow_pos(cls, type_: str, value: typing.Any, borrow_t: "Token") -> "Token":
        return cls(
            type_,
            value,
            borrow_t.start_pos,
            borrow_t.line,
            borrow_t.column,
            borrow_t.end_line,
            borrow_t.end_column,
            borrow_t.end_pos,
        )

    def __reduce__(self):
        return (
            self.__class__,
            (
                self.type,
                self.value,
                self.start_pos,
                self.line,
                self.column,
                self.end_line,
                self.end_column,
                self.end_pos,
            ),
        )

    def __repr__(self):
        return "Token(%r, %r)" % (self.type, self.value)

    def __deepcopy__(self, memo):
        return Token.new_borrow_pos(self.type, self.value, self)

    def __eq__(self, other):
        if isinstance(other, Token) and self.type != other.type:
            return False
        return str.__eq__(self, other)

    def __ne__(self, other):
        return not self == other

    __hash__ = str.__hash__


@dataclasses.dataclass
class LineCounter:
    """Tracks line and column as text is consumed.

    Lines and columns start at 1. `line_start_pos` is the offset of the
    first character of the current line.
    """

    newline_char: str = "\n"
    char_pos: int = 0
    line: int = 1
    column: int = 1
    line_start_pos: int = 0

    def feed(self, token: str, test_newline: bool = True):
        """Consume `token`, updating the position.

        If `test_newline` is false the caller promises the text has no
        newlines in it, and we don't bother looking.
        """
        if test_newline:
            newlines = token.count(self.newline_char)
            if newlines:
                self.line += newlines
                self.line_start_pos = self.char_pos + token.rindex(self.newline_char) + 1

        self.char_pos += len(token)
        self.column = self.char_pos - self.line_start_pos + 1


class EndOfInput:
    """What `next_token` returns when the text has run out."""

    _instance: typing.ClassVar["EndOfInput | None"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "END_OF_INPUT"

    def __bool__(self):
        return False


END_OF_INPUT = EndOfInput()


class UnlessCallback:
    """Re-type tokens whose text is exactly one of a set of literals.

    This is attached to a regular-expression terminal that also matches the
    text of some literal terminals (the classic example being an identifier
    pattern and a keyword). When the identifier pattern matches the keyword,
    the token becomes the keyword.
    """

    scanner: "Scanner"

    def __init__(self, scanner: "Scanner"):
        self.scanner = scanner

    def __call__(self, t: Token) -> Token:
        res = self.scanner.match(t.value, 0)
        if res:
            _value, t.type = res
        return t


class CallChain:
    """Call `callback1`, then call `callback2` on its result if `cond`
    still holds for it."""

    def __init__(
        self,
        callback1: typing.Callable[[Token], Token],
        callback2: typing.Callable[[Token], Token],
        cond: typing.Callable[[Token], bool],
    ):
        self.callback1 = callback1
        self.callback2 = callback2
        self.cond = cond

    def __call__(self, t: Token) -> Token:
        t2 = self.callback1(t)
        return self.callback2(t) if self.cond(t2) else t2


def _create_unless(
    terminals: list[TerminalDef], g_regex_flags: int
) -> tuple[list[TerminalDef], dict[str, typing.Callable[[Token], Token]]]:
    """Find literal terminals shadowed by regular-expression terminals.

    Returns the terminals that should still go into the scanner, and the
    callbacks that restore the shadowed literals.
    """
    embedded_strs = set()
    callback: dict[str, typing.Callable[[Token], Token]] = {}

    strs = [t for t in terminals if isinstance(t.pattern, PatternStr)]
    for retok in terminals:
        if not isinstance(retok.pattern, PatternRE):
            continue

        unless = []
        for strtok in strs:
            if strtok.priority != retok.priority:
                continue

            s = strtok.pattern.value
            m = re.match(retok.pattern.to_regexp(), s, g_regex_flags)
            if m is not None and m.group(0) == s:
                unless.append(strtok)
                if strtok.pattern.flags <= retok.pattern.flags:
                    embedded_strs.add(strtok)

        if unless:
            lexer_log.debug(
                "%s absorbs literal terminals %s", retok.name, ", ".join(t.name for t in unless)
            )
            callback[retok.name] = UnlessCallback(
                Scanner(unless, g_regex_flags, match_whole=True)
            )

    new_terminals = [t for t in terminals if t not in embedded_strs]
    return new_terminals, callback


class Scanner:
    """Match a set of terminals at a position.

    The terminals are compiled into one alternation of named groups per run
    of terminals with the same flags. Alternations are tried in order, and
    inside an alternation Python's regex engine takes the first alternative
    that matches, so the order of `terminals` is the order of preference.
    """

    terminals: list[TerminalDef]
    g_regex_flags: int
    match_whole: bool
    allowed_types: set[str]

    def __init__(self, terminals: list[TerminalDef], g_regex_flags: int, match_whole: bool = False):
        self.terminals = terminals
        self.g_regex_flags = g_regex_flags
        self.match_whole = match_whole
        self.allowed_types = {t.name for t in self.terminals}
        self._mres = self._build_mres(terminals)

    def _build_mres(self, terminals: list[TerminalDef]) -> list[re.Pattern]:
        groups: list[list[TerminalDef]] = []
        for t in terminals:
            if groups and groups[-1][0].pattern.flags == t.pattern.flags:
                groups[-1].append(t)
            else:
                groups.append([t])

        return [
            re.compile(
                "|".join("(?P<%s>%s)" % (t.name, t.pattern.to_regexp()) for t in group),
                self.g_regex_flags,
            )
            for group in groups
        ]

    def match(self, text: str, pos: int) -> tuple[str, str] | None:
        """Return the matched text and the name of the terminal that matched
        it, or None if nothing matches at `pos`."""
        for mre in self._mres:
            if self.match_whole:
                m = mre.fullmatch(text, pos)
            else:
                m = mre.match(text, pos)
            if m:
                assert m.lastgroup is not None
                return m.group(0), m.lastgroup
        return None


class LexerConf(serialize.Serializable):
    """Everything needed to build a lexer."""

    _serialize_fields = ("terminals", "ignore", "g_regex_flags", "lexer_type")
    _serialize_namespace = (TerminalDef,)

    terminals: list[TerminalDef]
    ignore: tuple[str, ...]
    postlex: "PostLex | None"
    callbacks: dict[str, typing.Callable[[Token], Token]]
    g_regex_flags: int
    skip_validation: bool
    lexer_type: str | None

    def __init__(
        self,
        terminals: typing.Iterable[TerminalDef],
        ignore: typing.Iterable[str] = (),
        postlex: "PostLex | None" = None,
        callbacks: dict[str, typing.Callable[[Token], Token]] | None = None,
        g_regex_flags: int = 0,
        skip_validation: bool = False,
        lexer_type: str | None = None,
    ):
        self.terminals = list(terminals)
        self.ignore = tuple(ignore)
        self.postlex = postlex
        self.callbacks = dict(callbacks or {})
        self.g_regex_flags = g_regex_flags
        self.skip_validation = skip_validation
        self.lexer_type = lexer_type

    @property
    def terminals_by_name(self) -> dict[str, TerminalDef]:
        return {t.name: t for t in self.terminals}

    def __copy__(self):
        return LexerConf(
            self.terminals,
            self.ignore,
            self.postlex,
            self.callbacks,
            self.g_regex_flags,
            self.skip_validation,
            self.lexer_type,
        )


class LexerState:
    """The position of a lexer in one particular text.

    Two states are equal when they're over the same text object at the same
    position with the same last token.
    """

    __slots__ = ("text", "line_ctr", "last_token")

    text: str
    line_ctr: LineCounter
    last_token: Token | None

    def __init__(self, text: str, line_ctr: LineCounter | None = None, last_token: Token | None = None):
        self.text = text
        self.line_ctr = line_ctr or LineCounter("\n")
        self.last_token = last_token

    def __eq__(self, other):
        if not isinstance(other, LexerState):
            return NotImplemented
        return (
            self.text is other.text
            and self.line_ctr == other.line_ctr
            and self.last_token == other.last_token
        )

    def __hash__(self):
        return hash((id(self.text), self.line_ctr.char_pos))

    def __copy__(self):
        return type(self)(self.text, copy.copy(self.line_ctr), self.last_token)


class Lexer(abc.ABC):
    @abc.abstractmethod
    def lex(
        self, lexer_state: LexerState, parser_state: "ParserState | None"
    ) -> typing.Iterator[Token]:
        """Produce the tokens in the text, lazily. The parser state is
        consulted (by lexers that care) each time a token is pulled."""
        ...

    def make_lexer_state(self, text: str) -> LexerState:
        return LexerState(text)


class LexerThread:
    """A lexer paired with its position in one text. This is the token
    source the parser engine pulls from."""

    lexer: Lexer
    state: LexerState | None

    def __init__(self, lexer: Lexer, lexer_state: LexerState | None):
        self.lexer = lexer
        self.state = lexer_state

    @classmethod
    def from_text(cls, lexer: Lexer, text: str | None) -> "LexerThread":
        return cls(lexer, LexerState(text) if text is not None else None)

    def lex(self, parser_state: "ParserState | None") -> typing.Iterator[Token]:
        if self.state is None:
            raise TypeError("Cannot lex: No text assigned to lexer state")
        return self.lexer.lex(self.state, parser_state)

    def __copy__(self):
        return type(self)(self.lexer, copy.copy(self.state))

    def __eq__(self, other):
        if not isinstance(other, LexerThread):
            return NotImplemented
        return self.lexer is other.lexer and self.state == other.state

    def __hash__(self):
        return hash((id(self.lexer), self.state))


class BasicLexer(Lexer):
    """A lexer that considers every one of its terminals everywhere."""

    terminals: list[TerminalDef]
    ignore_types: frozenset[str]
    newline_types: frozenset[str]
    user_callbacks: dict[str, typing.Callable[[Token], Token]]
    callback: dict[str, typing.Callable[[Token], Token]]
    g_regex_flags: int

    _scanner: Scanner | None

    def __init__(self, conf: LexerConf):
        terminals = list(conf.terminals)

        if not conf.skip_validation:
            # Sanitization
            for t in terminals:
                try:
                    re.compile(t.pattern.to_regexp(), conf.g_regex_flags)
                except re.error:
                    raise LexError("Cannot compile token %s: %s" % (t.name, t.pattern))

                if t.pattern.min_width == 0:
                    raise LexError(
                        "Lexer does not allow zero-width terminals. (%s: %s)" % (t.name, t.pattern)
                    )

            names = {t.name for t in terminals}
            if not set(conf.ignore) <= names:
                raise LexError("Ignore terminals are not defined: %s" % sorted(set(conf.ignore) - names))

        self.newline_types = frozenset(
            t.name for t in terminals if regexp_has_newline(t.pattern.to_regexp())
        )
        self.ignore_types = frozenset(conf.ignore)

        # Priority first, then the widest pattern, then the longest
        # literal. The name makes the order total, so that two terminals
        # that tie on everything else still come out the same way every
        # time.
        terminals.sort(
            key=lambda x: (-x.priority, -x.pattern.max_width, -len(x.pattern.value), x.name)
        )
        self.terminals = terminals
        self.user_callbacks = conf.callbacks
        self.g_regex_flags = conf.g_regex_flags
        self.terminals_by_name = conf.terminals_by_name

        self._scanner = None

    def _build_scanner(self):
        terminals, self.callback = _create_unless(self.terminals, self.g_regex_flags)
        assert all(self.callback.values())

        for type_, f in self.user_callbacks.items():
            if type_ in self.callback:
                # Only run the user's callback if the unless callback didn't
                # turn the token into something else.
                self.callback[type_] = CallChain(
                    self.callback[type_], f, lambda t, t2=type_: t.type == t2
                )
            else:
                self.callback[type_] = f

        self._scanner = Scanner(terminals, self.g_regex_flags)

    @property
    def scanner(self) -> Scanner:
        if self._scanner is None:
            self._build_scanner()
            assert self._scanner is not None
        return self._scanner

    def match(self, text: str, pos: int) -> tuple[str, str] | None:
        return self.scanner.match(text, pos)

    def lex(
        self, lexer_state: LexerState, parser_state: "ParserState | None"
    ) -> typing.Iterator[Token]:
        while True:
            token = self.next_token(lexer_state, parser_state)
            if token is END_OF_INPUT:
                return
            assert isinstance(token, Token)
            yield token

    def next_token(
        self, lex_state: LexerState, parser_state: "ParserState | None" = None
    ) -> Token | EndOfInput:
        """Return the next token that isn't ignored, or END_OF_INPUT.

        Ignored tokens are consumed along the way, and any callbacks
        registered for them are still called.
        """
        line_ctr = lex_state.line_ctr
        while line_ctr.char_pos < len(lex_state.text):
            res = self.match(lex_state.text, line_ctr.char_pos)
            if not res:
                allowed = self.scanner.allowed_types - self.ignore_types
                if not allowed:
                    allowed = {"<END-OF-FILE>"}
                raise UnexpectedCharacters(
                    lex_state.text,
                    line_ctr.char_pos,
                    line_ctr.line,
                    line_ctr.column,
                    allowed=allowed,
                    token_history=[lex_state.last_token] if lex_state.last_token is not None else None,
                    state=parser_state,
                )

            value, type_ = res

            ignored = type_ in self.ignore_types
            t = None
            if not ignored or type_ in self.callback:
                t = Token(type_, value, line_ctr.char_pos, line_ctr.line, line_ctr.column)
            line_ctr.feed(value, type_ in self.newline_types)
            if t is not None:
                t.end_line = line_ctr.line
                t.end_column = line_ctr.column
                t.end_pos = line_ctr.char_pos
                if t.type in self.callback:
                    t = self.callback[t.type](t)
                if not ignored:
                    if not isinstance(t, Token):
                        raise LexError("Callbacks must return a token (returned %r)" % t)
                    lex_state.last_token = t
                    return t

        return END_OF_INPUT


class ContextualLexer(Lexer):
    """A lexer that only considers the terminals the parser can accept in
    its current state.

    There's a `BasicLexer` for each distinct set of acceptable terminals,
    shared between all the parser states that accept that set, plus a root
    lexer that knows every terminal. The root lexer is only used to produce
    a better error when the contextual one fails.
    """

    lexers: dict[typing.Hashable, BasicLexer]
    root_lexer: BasicLexer

    def __init__(
        self,
        conf: LexerConf,
        states: dict[typing.Hashable, typing.Collection[str]],
        always_accept: typing.Collection[str] = (),
    ):
        terminals = list(conf.terminals)
        terminals_by_name = conf.terminals_by_name

        trad_conf = copy.copy(conf)
        trad_conf.terminals = terminals
        self.root_lexer = BasicLexer(trad_conf)

        # The root lexer has checked every terminal already.
        trad_conf.skip_validation = True

        lexer_by_tokens: dict[frozenset[str], BasicLexer] = {}
        self.lexers = {}
        for state, accepts in states.items():
            key = frozenset(accepts)
            try:
                lexer = lexer_by_tokens[key]
            except KeyError:
                accepts = set(accepts) | set(conf.ignore) | set(always_accept)
                lexer_conf = copy.copy(trad_conf)
                lexer_conf.terminals = [terminals_by_name[n] for n in accepts if n in terminals_by_name]
                lexer = BasicLexer(lexer_conf)
                lexer_by_tokens[key] = lexer

            self.lexers[state] = lexer

        lexer_log.debug(
            "Contextual lexer: %d states share %d lexers", len(self.lexers), len(lexer_by_tokens)
        )

    def make_lexer_state(self, text: str) -> LexerState:
        return self.root_lexer.make_lexer_state(text)

    def lex(
        self, lexer_state: LexerState, parser_state: "ParserState | None"
    ) -> typing.Iterator[Token]:
        assert parser_state is not None, "The contextual lexer needs a parser state"
        try:
            while True:
                lexer = self.lexers[parser_state.position]
                token = lexer.next_token(lexer_state, parser_state)
                if token is END_OF_INPUT:
                    return
                assert isinstance(token, Token)
                yield token

        except UnexpectedCharacters as e:
            # See if the text would have lexed at all, anywhere in the
            # grammar. If it would have, then the problem isn't the
            # characters, it's that the token is in the wrong place.
            last_token = lexer_state.last_token
            try:
                token = self.root_lexer.next_token(lexer_state, parser_state)
            except UnexpectedCharacters:
                raise e

            if token is END_OF_INPUT:
                raise e

            raise UnexpectedToken(
                token,
                e.allowed,
                state=parser_state,
                token_history=[last_token] if last_token is not None else None,
            )


class PostLexConnector(Lexer):
    """Runs the tokens of a lexer through a post-lexer."""

    def __init__(self, lexer: Lexer, postlexer: "PostLex"):
        self.lexer = lexer
        self.postlexer = postlexer

    def make_lexer_state(self, text: str) -> LexerState:
        return self.lexer.make_lexer_state(text)

    def lex(
        self, lexer_state: LexerState, parser_state: "ParserState | None"
    ) -> typing.Iterator[Token]:
        i = self.lexer.lex(lexer_state, parser_state)
        return self.postlexer.process(i)
