"""The entry point: a compiled grammar, loaded and ready to parse with.

    parser = Parser.from_file("math.json")
    tree = parser.parse("1 + 2 * 3")

A `Parser` is built from terminal definitions, rules and a parse table,
which usually come out of a compiled grammar file (see `Parser.load`). Once
built it's read-only, so one parser can serve any number of parses.
"""

import collections.abc
import copy
import dataclasses
import json
import logging
import os
import typing

from . import serialize
from .exceptions import ConfigurationError, GrammarError
from .grammar import Rule
from .indenter import PostLex
from .interactive import InteractiveParser
from .lexer import (
    BasicLexer,
    ContextualLexer,
    Lexer,
    LexerConf,
    LexerThread,
    PostLexConnector,
    TerminalDef,
    Token,
)
from .runtime import Callbacks, ErrorHandler, LALRParser, ParserConf
from .table import IntParseTable, ParseTable
from .tree import Tree
from .tree_builder import ParseTreeBuilder
from .visitors import Transformer, handler_for

logger = logging.getLogger("shiftreduce")


# The options that may be changed when loading a compiled grammar. Anything
# else is baked into the table.
LOAD_ALLOWED_OPTIONS = frozenset(
    {
        "postlex",
        "transformer",
        "lexer_callbacks",
        "debug",
        "g_regex_flags",
        "propagate_positions",
        "tree_class",
        "maybe_placeholders",
        "lexer",
    }
)


@dataclasses.dataclass
class ParserOptions:
    """How a Parser behaves.

    start
        The start symbols the parser may be asked to parse. When there is
        more than one, `parse` must be told which.
    parser
        Only "lalr" is supported.
    lexer
        "contextual" (only consider the terminals the parser can accept
        next) or "basic" (consider every terminal, always).
    debug
        Log the parser's stacks when a parse fails.
    maybe_placeholders
        Put a None in the tree where an optional item didn't match.
    propagate_positions
        Fill in `meta` on each tree node. A callable here is used to filter
        which children count.
    tree_class
        The class to build tree nodes with. Defaults to Tree.
    transformer
        Apply this transformer to each node as the tree is built, instead
        of building the tree and then transforming it.
    lexer_callbacks
        Functions to call on each token of the named types, as they are
        lexed.
    postlex
        A filter to run the token stream through, such as an Indenter.
    g_regex_flags
        Flags to apply to every terminal's regular expression.
    """

    start: list[str] = dataclasses.field(default_factory=lambda: ["start"])
    parser: str = "lalr"
    lexer: str = "contextual"
    debug: bool = False
    maybe_placeholders: bool = False
    propagate_positions: bool | typing.Callable[[typing.Any], bool] = False
    tree_class: type[Tree] | None = None
    transformer: Transformer | None = None
    lexer_callbacks: dict[str, typing.Callable[[Token], Token]] = dataclasses.field(
        default_factory=dict
    )
    postlex: PostLex | None = None
    g_regex_flags: int = 0

    def __post_init__(self):
        if isinstance(self.start, str):
            self.start = [self.start]
        if not self.start:
            raise ConfigurationError("At least one start symbol is required")
        if self.lexer_callbacks is None:
            self.lexer_callbacks = {}

        if self.parser != "lalr":
            raise ConfigurationError(
                f"Unsupported parser {self.parser!r}: only 'lalr' tables can be run"
            )
        if self.lexer not in ("basic", "contextual"):
            raise ConfigurationError(
                f"Unsupported lexer {self.lexer!r}: must be 'basic' or 'contextual'"
            )
        if not isinstance(self.propagate_positions, bool) and not callable(
            self.propagate_positions
        ):
            raise ConfigurationError(
                f"Invalid option for propagate_positions: {self.propagate_positions!r}"
            )

    @classmethod
    def from_dict(
        cls, options: collections.abc.Mapping[str, typing.Any], *, from_artifact: bool = False
    ) -> "ParserOptions":
        """Make options from a mapping, rejecting names we don't know.

        Compiled grammars record all the options they were compiled with,
        including ones that only mattered to the compiler; with
        `from_artifact` those are ignored rather than rejected.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for name, value in options.items():
            if name in known:
                kwargs[name] = value
            elif from_artifact:
                logger.debug("Ignoring compile-time option %s=%r", name, value)
            else:
                raise ConfigurationError(f"Unknown option: {name}")
        return cls(**kwargs)

    def serialize(self) -> dict[str, typing.Any]:
        # Only the plain-data options. Transformers, callbacks and the like
        # are supplied again when loading.
        return {
            "start": list(self.start),
            "parser": self.parser,
            "lexer": self.lexer,
            "debug": self.debug,
            "maybe_placeholders": self.maybe_placeholders,
            "propagate_positions": bool(self.propagate_positions),
            "g_regex_flags": self.g_regex_flags,
        }


class ParsingFrontend:
    """Wires the lexer to the parser for one set of options."""

    lexer_conf: LexerConf
    parser_conf: ParserConf
    options: ParserOptions
    parser: LALRParser
    lexer: Lexer

    def __init__(
        self,
        lexer_conf: LexerConf,
        parser_conf: ParserConf,
        options: ParserOptions,
        parser: LALRParser,
    ):
        self.lexer_conf = lexer_conf
        self.parser_conf = parser_conf
        self.options = options
        self.parser = parser

        match options.lexer:
            case "basic":
                self.lexer = BasicLexer(lexer_conf)
            case "contextual":
                states = {idx: list(t.keys()) for idx, t in parser.parse_table.states.items()}
                always_accept = lexer_conf.postlex.always_accept if lexer_conf.postlex else ()
                self.lexer = ContextualLexer(lexer_conf, states, always_accept=always_accept)
            case _:
                raise ConfigurationError(f"Unsupported lexer {options.lexer!r}")

        if lexer_conf.postlex:
            self.lexer = PostLexConnector(self.lexer, lexer_conf.postlex)

    def serialize(self, memo: serialize.SerializeMemoizer) -> dict[str, typing.Any]:
        return {
            "lexer_conf": self.lexer_conf.serialize(memo),
            "parser_conf": self.parser_conf.serialize(memo),
            "parser": self.parser.serialize(memo),
            "__type__": type(self).__name__,
        }

    def _verify_start(self, start: str | None = None) -> str:
        if start is None:
            start_decls = self.parser_conf.start
            if len(start_decls) > 1:
                raise ConfigurationError(
                    "Parser was loaded with more than one possible start rule. "
                    "Must specify which start rule to parse",
                    start_decls,
                )
            (start,) = start_decls
        elif start not in self.parser_conf.start:
            raise ConfigurationError(
                "Unknown start rule %s. Must be one of %r" % (start, self.parser_conf.start)
            )
        return start

    def parse(
        self, text: str, start: str | None = None, on_error: ErrorHandler | None = None
    ) -> typing.Any:
        chosen_start = self._verify_start(start)
        stream = LexerThread.from_text(self.lexer, text)
        return self.parser.parse(stream, chosen_start, on_error=on_error)

    def parse_interactive(self, text: str | None = None, start: str | None = None) -> InteractiveParser:
        chosen_start = self._verify_start(start)
        stream = LexerThread.from_text(self.lexer, text)
        return self.parser.parse_interactive(stream, chosen_start)


class Parser:
    """A loaded grammar.

    Construct one from the parts with `Parser(terminals, rules, table,
    ignore=..., **options)`, or from a compiled grammar with `load` or
    `from_file`. See ParserOptions for the options.
    """

    options: ParserOptions
    terminals: list[TerminalDef]
    rules: list[Rule]
    ignore_tokens: tuple[str, ...]
    lexer_conf: LexerConf
    parser: ParsingFrontend

    def __init__(
        self,
        terminals: typing.Iterable[TerminalDef],
        rules: typing.Iterable[Rule],
        parse_table: ParseTable,
        *,
        ignore: typing.Iterable[str] = (),
        **options,
    ):
        self.options = ParserOptions.from_dict(options)
        self.terminals = list(terminals)
        self.rules = list(rules)
        self.ignore_tokens = tuple(ignore)
        self._terminals_dict = {t.name: t for t in self.terminals}
        self._lexers: dict[bool, BasicLexer] = {}

        for start in self.options.start:
            if start not in parse_table.start_states or start not in parse_table.end_states:
                raise GrammarError(
                    f"Unknown start symbol {start!r}; the table knows {sorted(parse_table.start_states)}"
                )

        self._callbacks = self._prepare_callbacks()

        self.lexer_conf = LexerConf(
            self.terminals,
            self.ignore_tokens,
            postlex=self.options.postlex,
            callbacks=self.options.lexer_callbacks,
            g_regex_flags=self.options.g_regex_flags,
            lexer_type=self.options.lexer,
        )
        parser_conf = ParserConf(self.rules, self.options.start, "lalr", self._callbacks)
        self.parser = ParsingFrontend(
            self.lexer_conf,
            parser_conf,
            self.options,
            LALRParser(parse_table, self._callbacks, self.options.debug),
        )

        logger.debug(
            "Loaded grammar: %d terminals, %d rules, %d states",
            len(self.terminals),
            len(self.rules),
            len(parse_table.states),
        )

    def __repr__(self):
        return "Parser(start=%r, lexer=%r)" % (self.options.start, self.options.lexer)

    def _prepare_callbacks(self) -> Callbacks:
        builder = ParseTreeBuilder(
            self.rules,
            self.options.tree_class or Tree,
            self.options.propagate_positions,
            self.options.maybe_placeholders,
        )
        callbacks: Callbacks = {}
        callbacks.update(builder.create_callback(self.options.transformer))

        # Terminal handlers on an inline transformer run as tokens are
        # shifted.
        transformer = self.options.transformer
        if transformer is not None:
            for terminal in self.terminals:
                f = handler_for(transformer, terminal.name)
                if f is not None:
                    callbacks[terminal.name] = f

        return callbacks

    @property
    def parse_table(self) -> ParseTable:
        return self.parser.parser.parse_table

    def get_terminal(self, name: str) -> TerminalDef:
        """Get information about a terminal"""
        return self._terminals_dict[name]

    def _build_lexer(self, dont_ignore: bool = False) -> BasicLexer:
        lexer = self._lexers.get(dont_ignore)
        if lexer is None:
            lexer_conf = self.lexer_conf
            if dont_ignore:
                lexer_conf = copy.copy(lexer_conf)
                lexer_conf.ignore = ()
            lexer = self._lexers[dont_ignore] = BasicLexer(lexer_conf)
        return lexer

    def lex(self, text: str, dont_ignore: bool = False) -> typing.Iterator[Token]:
        """Only lex (and postlex) the text, without parsing it.

        This uses every terminal everywhere, since there's no parser state
        to narrow things down. With `dont_ignore`, ignored tokens are
        produced too.
        """
        lexer = self._build_lexer(dont_ignore)
        lexer_thread = LexerThread.from_text(lexer, text)
        stream = lexer_thread.lex(None)
        if self.options.postlex:
            return self.options.postlex.process(stream)
        return stream

    def parse(
        self, text: str, start: str | None = None, on_error: ErrorHandler | None = None
    ) -> typing.Any:
        """Parse the given text, according to the options provided.

        Parameters:
            text: Text to be parsed.
            start: Which start symbol to begin the parse from. Required if
                the grammar has more than one.
            on_error: A function called with each syntax error. Return true
                to keep parsing (after fixing things up through the error's
                interactive parser, if you like), false to raise the error.

        Returns:
            The parse tree, or whatever the transformer made of it.

        Raises:
            UnexpectedInput, or one of its subclasses, if the text can't be
            parsed.
        """
        return self.parser.parse(text, start=start, on_error=on_error)

    def parse_interactive(self, text: str | None = None, start: str | None = None) -> InteractiveParser:
        """Start a parse that you drive yourself, token by token.

        `text` may be None if you're going to feed every token by hand.
        """
        return self.parser.parse_interactive(text, start=start)

    def serialize(self) -> dict[str, typing.Any]:
        """Return the parser as plain data: {"data": ..., "memo": ...}."""
        memo = serialize.SerializeMemoizer([TerminalDef, Rule])
        data = {
            "parser": self.parser.serialize(memo),
            "rules": [r.serialize(memo) for r in self.rules],
            "options": self.options.serialize(),
            "__type__": type(self).__name__,
        }
        return {"data": data, "memo": memo.serialize()}

    def save(self, f: typing.TextIO):
        """Write the parser to a file, as JSON. `load` reads it back."""
        json.dump(self.serialize(), f)

    @classmethod
    def load(
        cls, source: collections.abc.Mapping[str, typing.Any] | typing.TextIO, **options
    ) -> "Parser":
        """Load a compiled grammar.

        `source` is either an already-decoded {"data": ..., "memo": ...}
        mapping, or a file to read one from as JSON. Only some options can
        be overridden here (see LOAD_ALLOWED_OPTIONS); the rest come from
        the compiled grammar.
        """
        if not isinstance(source, collections.abc.Mapping):
            source = json.load(source)
        assert isinstance(source, collections.abc.Mapping)

        disallowed = set(options) - LOAD_ALLOWED_OPTIONS
        if disallowed:
            raise ConfigurationError(
                "Can't change %s when loading a compiled grammar" % ", ".join(sorted(disallowed))
            )

        data = serialize.field(source, "data", "compiled grammar")
        memo = serialize.SerializeMemoizer.deserialize(
            source.get("memo", {}), {"TerminalDef": TerminalDef, "Rule": Rule}
        )

        frontend = serialize.field(data, "parser", "compiled grammar")
        lexer_conf = serialize.deserialize(
            serialize.field(frontend, "lexer_conf", "parser"), {"LexerConf": LexerConf}, memo
        )
        parse_table = IntParseTable.deserialize(serialize.field(frontend, "parser", "parser"), memo)
        rules = serialize.deserialize(
            serialize.field(data, "rules", "compiled grammar"), {"Rule": Rule}, memo
        )

        # Compiled options first, then the lexer the table was built for,
        # then whatever the caller asked for.
        merged = dict(data.get("options", {}))
        if lexer_conf.lexer_type is not None:
            merged["lexer"] = lexer_conf.lexer_type
        if lexer_conf.g_regex_flags:
            merged.setdefault("g_regex_flags", lexer_conf.g_regex_flags)
        merged.update(options)

        parser_options = ParserOptions.from_dict(merged, from_artifact=True)
        return cls(
            lexer_conf.terminals,
            rules,
            parse_table,
            ignore=lexer_conf.ignore,
            **vars(parser_options),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike, **options) -> "Parser":
        """Load a compiled grammar from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.load(f, **options)
