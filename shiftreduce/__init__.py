"""A runtime for table-driven LALR(1) parsers.

Load a compiled grammar (terminal definitions, rules and a parse table) and
use it to lex and parse text into trees:

    from shiftreduce import Parser

    parser = Parser.from_file("math.json")
    print(parser.parse("1 + 2 * 3").pretty())
"""

from .exceptions import (
    ConfigurationError,
    DedentError,
    GrammarError,
    LexError,
    ParseError,
    ShiftReduceError,
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
    VisitError,
)
from .frontend import Parser, ParserOptions
from .grammar import NonTerminal, Rule, RuleOptions, Terminal
from .indenter import Indenter, PostLex, PythonIndenter
from .interactive import ImmutableInteractiveParser, InteractiveParser
from .lexer import LineCounter, PatternRE, PatternStr, TerminalDef, Token
from .table import ParseTable, Reduce, Shift
from .tree import Meta, Tree
from .visitors import (
    Discard,
    Interpreter,
    Transformer,
    Transformer_InPlace,
    Transformer_InPlaceRecursive,
    Transformer_NonRecursive,
    Visitor,
    Visitor_Recursive,
    v_args,
    visit_children_decor,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DedentError",
    "Discard",
    "GrammarError",
    "ImmutableInteractiveParser",
    "Indenter",
    "InteractiveParser",
    "Interpreter",
    "LexError",
    "LineCounter",
    "Meta",
    "NonTerminal",
    "ParseError",
    "ParseTable",
    "Parser",
    "ParserOptions",
    "PatternRE",
    "PatternStr",
    "PostLex",
    "PythonIndenter",
    "Reduce",
    "Rule",
    "RuleOptions",
    "Shift",
    "ShiftReduceError",
    "Terminal",
    "TerminalDef",
    "Token",
    "Transformer",
    "Transformer_InPlace",
    "Transformer_InPlaceRecursive",
    "Transformer_NonRecursive",
    "Tree",
    "UnexpectedCharacters",
    "UnexpectedEOF",
    "UnexpectedInput",
    "UnexpectedToken",
    "Visitor",
    "Visitor_Recursive",
    "VisitError",
    "parse",
    "lex",
    "parse_interactive",
    "v_args",
    "visit_children_decor",
]


def parse(parser: Parser, text: str, start: str | None = None, on_error=None):
    """Parse `text` with a loaded parser. Same as `parser.parse(...)`."""
    return parser.parse(text, start=start, on_error=on_error)


def lex(parser: Parser, text: str, dont_ignore: bool = False):
    """Lex `text` with a loaded parser. Same as `parser.lex(...)`."""
    return parser.lex(text, dont_ignore=dont_ignore)


def parse_interactive(parser: Parser, text: str | None = None, start: str | None = None):
    """Start an interactive parse. Same as `parser.parse_interactive(...)`."""
    return parser.parse_interactive(text, start=start)
