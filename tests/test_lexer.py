import collections
import re

import pytest
from hypothesis import example, given
from hypothesis.strategies import integers, lists, sampled_from, text

from shiftreduce import (
    LexError,
    LineCounter,
    PatternRE,
    PatternStr,
    TerminalDef,
    Token,
    UnexpectedCharacters,
)
from shiftreduce.lexer import (
    BasicLexer,
    LexerConf,
    LexerThread,
    Scanner,
    get_regexp_width,
    regexp_has_newline,
)

from grammars import lex_only_parser


def lex_all(terminals, source, ignore=(), callbacks=None, g_regex_flags=0):
    lexer = BasicLexer(LexerConf(terminals, ignore, callbacks=callbacks, g_regex_flags=g_regex_flags))
    return [(t.type, str(t)) for t in LexerThread.from_text(lexer, source).lex(None)]


WORDS = [
    TerminalDef("IF", PatternStr("if")),
    TerminalDef("NAME", PatternRE("[a-z]+")),
    TerminalDef("NUMBER", PatternRE(r"\d+")),
    TerminalDef("WS", PatternRE(r"\s+")),
]


def test_line_counter():
    TC = collections.namedtuple("TC", ["fed", "line", "column", "char_pos", "line_start_pos"])
    cases = [
        TC(fed=[], line=1, column=1, char_pos=0, line_start_pos=0),
        TC(fed=["abc"], line=1, column=4, char_pos=3, line_start_pos=0),
        TC(fed=["ab\ncd"], line=2, column=3, char_pos=5, line_start_pos=3),
        TC(fed=["ab\n", "cd"], line=2, column=3, char_pos=5, line_start_pos=3),
        TC(fed=["\n\n\n"], line=4, column=1, char_pos=3, line_start_pos=3),
        TC(fed=["a\nb", "\nc"], line=3, column=2, char_pos=5, line_start_pos=4),
    ]

    for case in cases:
        counter = LineCounter("\n")
        for chunk in case.fed:
            counter.feed(chunk)

        assert counter.line == case.line, case
        assert counter.column == case.column, case
        assert counter.char_pos == case.char_pos, case
        assert counter.line_start_pos == case.line_start_pos, case


@given(text(alphabet="ab\n"), lists(integers(min_value=0)))
@example("a\n\nb", [1, 2])
def test_line_counter_chunking(source, cuts):
    """Feeding text in pieces ends up in the same place as feeding it all at
    once, and that place is where you'd expect."""
    whole = LineCounter("\n")
    whole.feed(source)

    pieces = LineCounter("\n")
    last = 0
    for cut in sorted(c % (len(source) + 1) for c in cuts):
        pieces.feed(source[last:cut])
        last = cut
    pieces.feed(source[last:])

    assert pieces == whole
    assert whole.line == source.count("\n") + 1
    assert whole.column == len(source) - (source.rfind("\n") + 1) + 1


def test_line_counter_trusts_test_newline():
    counter = LineCounter("\n")
    counter.feed("ab\ncd", test_newline=False)
    assert counter.line == 1
    assert counter.char_pos == 5


def test_token_is_a_string():
    t = Token("NAME", "abc", 3, 1, 4)
    assert t == "abc"
    assert isinstance(t, str)
    assert t.upper() == "ABC"
    assert hash(t) == hash("abc")
    assert repr(t) == "Token('NAME', 'abc')"


def test_token_equality_needs_the_same_type():
    assert Token("A", "x") == Token("A", "x")
    assert Token("A", "x") != Token("B", "x")
    assert Token("A", "x") != Token("A", "y")


def test_token_borrow_pos_and_update():
    t = Token("NAME", "abc", 3, 2, 4, 2, 7, 6)
    end = Token.new_borrow_pos("$END", "", t)
    assert (end.type, end.start_pos, end.line, end.column) == ("$END", 3, 2, 4)
    assert (end.end_line, end.end_column, end.end_pos) == (2, 7, 6)

    u = t.update(type="KEYWORD")
    assert u.type == "KEYWORD"
    assert u.value == "abc"
    assert u.start_pos == 3


def test_pattern_widths():
    TC = collections.namedtuple("TC", ["pattern", "min_width", "max_width"])
    cases = [
        TC(PatternStr("abc"), 3, 3),
        TC(PatternRE("a{2,5}"), 2, 5),
        TC(PatternRE("ab?"), 1, 2),
        TC(PatternRE("(?:==|<)"), 1, 2),
    ]
    for case in cases:
        assert case.pattern.min_width == case.min_width, case
        assert case.pattern.max_width == case.max_width, case

    lo, hi = get_regexp_width(r"\d+")
    assert lo == 1
    assert hi > 1000


def test_pattern_flags():
    assert PatternStr("ab", ["i"]).to_regexp() == "(?i:ab)"
    assert re.fullmatch(PatternRE("[a-z]+", ["i", "A"]).to_regexp(), "ABC")
    with pytest.raises(LexError):
        PatternStr("ab", ["q"])


def test_regexp_has_newline():
    assert regexp_has_newline(r"\s+")
    assert regexp_has_newline("[^a]")
    assert regexp_has_newline(r"a\nb")
    assert not regexp_has_newline("[a-z]+")


def test_scanner_prefers_earlier_terminals():
    scanner = Scanner(
        [
            TerminalDef("LONG", PatternStr("==")),
            TerminalDef("SHORT", PatternStr("=")),
        ],
        0,
    )
    assert scanner.match("==", 0) == ("==", "LONG")
    assert scanner.match("a=", 1) == ("=", "SHORT")
    assert scanner.match("a", 0) is None
    assert scanner.allowed_types == {"LONG", "SHORT"}


def test_scanner_with_mixed_flags():
    scanner = Scanner(
        [
            TerminalDef("SELECT", PatternStr("select", ["i"])),
            TerminalDef("NAME", PatternRE("[a-z]+")),
        ],
        0,
    )
    assert scanner.match("SELECT", 0) == ("SELECT", "SELECT")
    assert scanner.match("sel", 0) == ("sel", "NAME")


def test_scanner_match_whole():
    scanner = Scanner([TerminalDef("IF", PatternStr("if"))], 0, match_whole=True)
    assert scanner.match("if", 0) == ("if", "IF")
    assert scanner.match("iffy", 0) is None


def test_basic_lexing():
    assert lex_all(WORDS, "if x 12", ignore=["WS"]) == [
        ("IF", "if"),
        ("NAME", "x"),
        ("NUMBER", "12"),
    ]


def test_keywords_are_reclaimed_from_names():
    # NAME also matches "if", and wins on width, but a name that is exactly
    # a keyword becomes the keyword.
    assert lex_all(WORDS, "if iffy", ignore=["WS"]) == [("IF", "if"), ("NAME", "iffy")]


def test_priority_beats_width():
    terminals = [
        TerminalDef("IF", PatternStr("if"), priority=1),
        TerminalDef("NAME", PatternRE("[a-z]+")),
        TerminalDef("WS", PatternRE(r"\s+")),
    ]
    assert lex_all(terminals, "iffy", ignore=["WS"]) == [("IF", "if"), ("NAME", "fy")]


def test_token_positions():
    lexer = BasicLexer(LexerConf(WORDS, ["WS"]))
    tokens = list(LexerThread.from_text(lexer, "a\n  bc 12").lex(None))

    TC = collections.namedtuple("TC", ["value", "start_pos", "line", "column", "end_line", "end_column", "end_pos"])
    expected = [
        TC("a", 0, 1, 1, 1, 2, 1),
        TC("bc", 4, 2, 3, 2, 5, 6),
        TC("12", 7, 2, 6, 2, 8, 9),
    ]
    for token, case in zip(tokens, expected, strict=True):
        assert str(token) == case.value
        assert token.start_pos == case.start_pos, case
        assert token.line == case.line, case
        assert token.column == case.column, case
        assert token.end_line == case.end_line, case
        assert token.end_column == case.end_column, case
        assert token.end_pos == case.end_pos, case


def test_lexer_callbacks():
    seen = []

    def upper(t):
        return t.update(value=t.value.upper())

    def record_ws(t):
        seen.append(t)
        return t

    result = lex_all(WORDS, "ab  cd", ignore=["WS"], callbacks={"NAME": upper, "WS": record_ws})
    assert result == [("NAME", "AB"), ("NAME", "CD")]
    # Ignored tokens still go through their callbacks.
    assert seen == ["  "]


def test_lexer_callback_must_return_token():
    with pytest.raises(LexError):
        lex_all(WORDS, "ab", callbacks={"NAME": lambda t: None})


def test_lexer_construction_errors():
    with pytest.raises(LexError):
        BasicLexer(LexerConf(WORDS, ["COMMENT"]))

    with pytest.raises(LexError):
        BasicLexer(LexerConf([TerminalDef("BAD", PatternRE("(unclosed"))]))


@given(sampled_from(["a*", "(?:)", "b?", "x{0}", "(?:a|)"]))
def test_zero_width_terminals_are_rejected(pattern):
    with pytest.raises(LexError):
        BasicLexer(LexerConf([TerminalDef("EMPTY", PatternRE(pattern))] + WORDS))


def test_unexpected_characters():
    with pytest.raises(UnexpectedCharacters) as exc:
        lex_all(WORDS, "ab\n  ?", ignore=["WS"])

    e = exc.value
    assert e.char == "?"
    assert (e.pos_in_stream, e.line, e.column) == (5, 2, 3)
    # IF is only ever produced by way of NAME, so it isn't a separate option.
    assert e.allowed == {"NAME", "NUMBER"}
    assert e.token_history == [Token("NAME", "ab")]


def test_math_lex(math_parser):
    TC = collections.namedtuple("TC", ["source", "expected"])
    cases = [
        TC("1 + foo", [("NUMBER", "1"), ("OP_6", "+"), ("ID", "foo")]),
        TC("2**3", [("NUMBER", "2"), ("OP_7", "**"), ("NUMBER", "3")]),
        TC("2 ^ 3", [("NUMBER", "2"), ("OP_1", "^"), ("NUMBER", "3")]),
        TC("a<=b", [("ID", "a"), ("OP_3", "<="), ("ID", "b")]),
        TC("f(x, 1)", [("ID", "f"), ("LPAR", "("), ("ID", "x"), ("COMMA", ","), ("NUMBER", "1"), ("RPAR", ")")]),
    ]
    for case in cases:
        assert [(t.type, str(t)) for t in math_parser.lex(case.source)] == case.expected, case


def test_math_lex_dont_ignore(math_parser):
    tokens = [t.type for t in math_parser.lex("1 + 2", dont_ignore=True)]
    assert tokens == ["NUMBER", "WS", "OP_6", "WS", "NUMBER"]


def test_lex_is_lazy():
    parser = lex_only_parser(WORDS, ignore=["WS"])
    stream = parser.lex("ab cd ?")
    assert next(stream) == Token("NAME", "ab")
    assert next(stream) == Token("NAME", "cd")
