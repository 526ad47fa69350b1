import collections

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from shiftreduce import (
    ConfigurationError,
    Parser,
    Token,
    Tree,
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
)

from grammars import MATH_GRAMMAR, list_parser


def _tree(treeform):
    """("name", child, ...) is a tree; "TYPE:text" is a token."""
    if isinstance(treeform, str):
        type_, text = treeform.split(":", 1)
        return Token(type_, text)

    name, *children = treeform
    return Tree(name, [_tree(c) for c in children])


def num(n):
    return ("number", f"NUMBER:{n}")


def var(name):
    return ("var", f"ID:{name}")


def test_parse_trees(math_parser):
    TC = collections.namedtuple("TC", ["source", "expected"])
    cases = [
        TC("1", num(1)),
        TC("x", var("x")),
        TC(
            "1+2*3",
            ("expr_binary", num(1), "OP_4:+", ("expr_binary", num(2), "OP_5:*", num(3))),
        ),
        TC(
            "(1+2)*3",
            ("expr_binary", ("expr_binary", num(1), "OP_4:+", num(2)), "OP_5:*", num(3)),
        ),
        TC(
            "1 - 2 - 3",
            ("expr_binary", ("expr_binary", num(1), "OP_4:-", num(2)), "OP_4:-", num(3)),
        ),
        TC(
            "2 ** 3 ** 4",
            ("expr_binary", num(2), "OP_7:**", ("expr_binary", num(3), "OP_7:**", num(4))),
        ),
        TC("f(x, 1)", ("expr_func_call", "ID:f", var("x"), num(1))),
        TC("f(1, 2, 3)", ("expr_func_call", "ID:f", num(1), num(2), num(3))),
        TC("f()", ("expr_func_call", "ID:f")),
        TC("f(1,)", ("expr_func_call", "ID:f", num(1))),
        TC("1+-2", ("expr_binary", num(1), "OP_4:+", ("expr_unary", "OP_6:-", num(2)))),
        TC("~!x", ("expr_unary", "OP_6:~", ("expr_unary", "OP_6:!", var("x")))),
        TC("a < b", ("expr_binary", var("a"), "OP_3:<", var("b"))),
        TC("a == b + 1", ("expr_binary", var("a"), "OP_3:==", ("expr_binary", var("b"), "OP_4:+", num(1)))),
        TC("a | b & c", ("expr_binary", var("a"), "OP_0:|", ("expr_binary", var("b"), "OP_2:&", var("c")))),
        TC("  1 +\n  2  ", ("expr_binary", num(1), "OP_4:+", num(2))),
    ]

    for case in cases:
        assert math_parser.parse(case.source) == _tree(case.expected), case.source


def test_parse_is_deterministic(math_parser):
    first = math_parser.parse("f(a, b * (c + 1), -d) ** 2")
    second = math_parser.parse("f(a, b * (c + 1), -d) ** 2")
    assert first == second
    assert first.pretty() == second.pretty()


def test_token_positions_in_tree(math_parser):
    tree = math_parser.parse("1 +\n  foo")
    one = tree.children[0].children[0]
    plus = tree.children[1]
    foo = tree.children[2].children[0]

    assert (one.start_pos, one.line, one.column) == (0, 1, 1)
    assert (plus.start_pos, plus.line, plus.column) == (2, 1, 3)
    assert (foo.start_pos, foo.line, foo.column) == (6, 2, 3)
    assert (foo.end_pos, foo.end_line, foo.end_column) == (9, 2, 6)


def test_unexpected_eof(math_parser):
    with pytest.raises(UnexpectedEOF) as exc:
        math_parser.parse("1+")

    e = exc.value
    assert e.token.type == "$END"
    assert (e.pos_in_stream, e.line, e.column) == (1, 1, 2)
    assert e.expected == {"ID", "LPAR", "NUMBER", "OP_6"}
    assert e.token_history[-1] == Token("OP_4", "+")
    assert "Unexpected end-of-input" in str(e)


def test_unexpected_eof_on_empty_input(math_parser):
    with pytest.raises(UnexpectedEOF) as exc:
        math_parser.parse("")

    e = exc.value
    assert (e.pos_in_stream, e.line, e.column) == (0, 1, 1)
    assert e.token_history is None


def test_unexpected_characters(math_parser):
    with pytest.raises(UnexpectedCharacters) as exc:
        math_parser.parse("1 $ 2")

    e = exc.value
    assert e.char == "$"
    assert (e.pos_in_stream, e.line, e.column) == (2, 1, 3)
    assert e.allowed == {"COMMA", "OP_0", "OP_2", "OP_3", "OP_4", "OP_5", "OP_7", "RPAR"}
    assert e.get_context("1 $ 2") == "1 $ 2\n  ^\n"
    assert "No terminal matches '$'" in str(e)


def test_unexpected_token(math_parser):
    TC = collections.namedtuple("TC", ["source", "token", "pos"])
    cases = [
        TC("1 2", Token("NUMBER", "2"), 2),
        TC("1+)", Token("RPAR", ")"), 2),
        TC("1 == 2 == 3", Token("OP_3", "=="), 7),
        TC("f(1 2)", Token("NUMBER", "2"), 4),
        TC("(1", None, 1),
    ]

    for case in cases:
        with pytest.raises(UnexpectedToken) as exc:
            math_parser.parse(case.source)

        e = exc.value
        if case.token is not None:
            assert e.token == case.token, case
            assert not isinstance(e, UnexpectedEOF)
        else:
            assert isinstance(e, UnexpectedEOF), case
        assert e.pos_in_stream == case.pos, case
        assert e.column == case.pos + 1, case
        assert e.interactive_parser is not None


def test_errors_are_unexpected_input(math_parser):
    for source in ["1+", "1 $ 2", "1 2", ")"]:
        with pytest.raises(UnexpectedInput):
            math_parser.parse(source)


def test_start_symbol(math_parser):
    assert math_parser.parse("1", start="start") == _tree(num(1))
    with pytest.raises(ConfigurationError):
        math_parser.parse("1", start="expr")


def test_basic_lexer_cannot_tell_operators_apart():
    # Without the parser's help, "+" always lexes as the unary operator,
    # which the parser won't take after a number.
    parser = Parser.from_file(MATH_GRAMMAR, lexer="basic")
    assert parser.parse("-1") == _tree(("expr_unary", "OP_6:-", num(1)))
    with pytest.raises(UnexpectedToken) as exc:
        parser.parse("1+2")
    assert exc.value.token.type == "OP_6"


def test_list_grammar_contextual_and_basic():
    for lexer in ["basic", "contextual"]:
        parser = list_parser(lexer=lexer)
        tree = parser.parse("a\n  b")
        assert [str(t) for t in tree.scan_values(lambda v: isinstance(v, Token))] == ["a", "b"]


ATOMS = st.one_of(
    st.integers(min_value=0, max_value=999).map(str),
    st.sampled_from(["x", "y", "foo"]),
)
BINARY_OPERATORS = ["+", "-", "*", "/", "%", "**", "&", "|", "^"]


def _extend(children):
    return st.one_of(
        st.tuples(children, st.sampled_from(BINARY_OPERATORS), children).map(" ".join),
        children.map(lambda c: f"({c})"),
        st.lists(children, max_size=3).map(lambda args: "f(%s)" % ", ".join(args)),
        st.tuples(st.sampled_from("-+~!"), children).map(lambda t: f"({t[0]}{t[1]})"),
    )


EXPRESSIONS = st.recursive(ATOMS, _extend, max_leaves=12)

# Loaded once here rather than through the fixture, so hypothesis doesn't
# have to share a fixture between examples.
MATH = Parser.from_file(MATH_GRAMMAR)


@settings(deadline=None)
@given(EXPRESSIONS)
def test_expressions_parse(source):
    tree = MATH.parse(source)
    assert tree == MATH.parse(source)

    # Every number and name in the text is in the tree, in order.
    leaves = [
        str(t) for t in tree.scan_values(lambda v: isinstance(v, Token) and v.type in ("NUMBER", "ID"))
    ]
    words = source
    for ch in "()+-*/%&|^~!,":
        words = words.replace(ch, " ")
    assert leaves == words.split()


@settings(deadline=None)
@given(EXPRESSIONS)
def test_tokens_cover_the_text(source):
    interactive = MATH.parse_interactive(source)
    tokens = interactive.exhaust_lexer()

    position = 0
    for token in tokens:
        assert source[token.start_pos : token.end_pos] == token
        assert source[position : token.start_pos].strip() == ""
        position = token.end_pos
    assert source[position:].strip() == ""

    assert interactive.feed_eof() == MATH.parse(source)


# Mostly the grammar's own characters, with a few it has no terminal for.
JUNK = st.text(alphabet="0123456789xyf+-*/%()<=>!~&|^, \n$@#", max_size=12)


@settings(deadline=None)
@given(st.one_of(EXPRESSIONS, JUNK))
def test_contextual_lexing_only_narrows(source):
    try:
        MATH.parse(source)
    except UnexpectedCharacters as e:
        # Nothing at all matches there, not just nothing the parser wanted.
        assert MATH.parser.lexer.root_lexer.match(source, e.pos_in_stream) is None
    except UnexpectedInput:
        pass
    else:
        # The same text lexes with every terminal in play.
        tokens = list(MATH.lex(source))
        assert "".join(tokens) == "".join(source.split())
