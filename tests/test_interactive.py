import pytest

from shiftreduce import (
    ImmutableInteractiveParser,
    InteractiveParser,
    Token,
    Tree,
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
)


def num(n):
    return Tree("number", [Token("NUMBER", str(n))])


def test_skip_bad_characters(math_parser):
    errors = []

    def on_error(e):
        errors.append(e)
        return True

    assert math_parser.parse("1 $ 2", on_error=on_error) == num(1)

    assert [type(e) for e in errors] == [UnexpectedCharacters, UnexpectedToken]
    assert errors[0].pos_in_stream == 2
    assert errors[1].pos_in_stream == 4
    assert errors[1].token == Token("NUMBER", "2")


def test_insert_a_missing_token(math_parser):
    def on_error(e):
        assert isinstance(e, UnexpectedToken)
        e.interactive_parser.feed_token(Token("COMMA", ","))
        e.interactive_parser.feed_token(e.token)
        return True

    tree = math_parser.parse("f(1 2)", on_error=on_error)
    assert tree == Tree("expr_func_call", [Token("ID", "f"), num(1), num(2)])


def test_handler_declines(math_parser):
    with pytest.raises(UnexpectedToken):
        math_parser.parse("1 2", on_error=lambda e: False)


def test_recovery_gives_up_at_end_of_input(math_parser):
    calls = []

    def on_error(e):
        calls.append(e)
        return True

    with pytest.raises(UnexpectedEOF):
        math_parser.parse("1+", on_error=on_error)
    assert len(calls) == 1


def test_accepts(math_parser):
    interactive = math_parser.parse_interactive("")
    assert interactive.accepts() == {"ID", "LPAR", "NUMBER", "OP_6"}

    interactive = math_parser.parse_interactive("1+2")
    interactive.exhaust_lexer()
    accepts = interactive.accepts()
    assert {"$END", "OP_4", "OP_5"} <= accepts
    assert "RPAR" not in accepts
    assert "NUMBER" not in accepts


def test_accepts_does_not_disturb_the_parse(math_parser):
    interactive = math_parser.parse_interactive("1+2")
    interactive.exhaust_lexer()
    interactive.accepts()
    assert interactive.feed_eof() == math_parser.parse("1+2")


def test_error_accepts(math_parser):
    with pytest.raises(UnexpectedEOF) as exc:
        math_parser.parse("1+")
    assert exc.value.accepts == {"ID", "LPAR", "NUMBER", "OP_6"}


def test_choices_and_pretty(math_parser):
    interactive = math_parser.parse_interactive("1")
    choices = interactive.choices()
    assert "NUMBER" in choices
    assert "expr" in choices

    text = interactive.pretty()
    assert text.startswith("Parser choices:")
    assert "stack size: 1" in text


def test_feed_tokens_by_hand(math_parser):
    interactive = math_parser.parse_interactive()
    for token in [Token("NUMBER", "3"), Token("OP_5", "*"), Token("ID", "x")]:
        assert interactive.feed_token(token) is None

    result = interactive.feed_token(Token("$END", ""))
    assert result == Tree("expr_binary", [num(3), Token("OP_5", "*"), Tree("var", [Token("ID", "x")])])


def test_iter_parse_yields_before_feeding(math_parser):
    interactive = math_parser.parse_interactive("1 + 2")
    seen = []
    for token in interactive.iter_parse():
        seen.append((token.type, len(interactive.parser_state.state_stack)))
    assert [t for t, _ in seen] == ["NUMBER", "OP_4", "NUMBER"]
    # The first token arrives at an empty stack.
    assert seen[0][1] == 1
    assert interactive.feed_eof() == math_parser.parse("1 + 2")


def test_copies_are_independent(math_parser):
    interactive = math_parser.parse_interactive("1 +")
    interactive.exhaust_lexer()

    left = interactive.copy()
    right = interactive.copy()
    assert left == right == interactive

    left.feed_token(Token("NUMBER", "2"))
    assert left != interactive
    assert left.feed_eof() == Tree(
        "expr_binary", [num(1), Token("OP_4", "+"), Tree("number", [Token("NUMBER", "2")])]
    )

    with pytest.raises(UnexpectedEOF):
        right.feed_eof()


def test_immutable_interactive_parser(math_parser):
    interactive = math_parser.parse_interactive("1 +")
    interactive.exhaust_lexer()
    frozen = interactive.as_immutable()
    assert isinstance(frozen, ImmutableInteractiveParser)

    after = frozen.feed_token(Token("NUMBER", "2"))
    assert after is not frozen
    assert len(frozen.parser_state.state_stack) < len(after.parser_state.state_stack)
    assert hash(frozen) == hash(frozen.as_mutable().as_immutable())

    thawed = after.as_mutable()
    assert type(thawed) is InteractiveParser
    assert thawed.feed_eof() == math_parser.parse("1 + 2")


def test_resume_parse(math_parser):
    interactive = math_parser.parse_interactive("1 + 2 * 3")
    for token in interactive.iter_parse():
        if token.type == "OP_4":
            break
    # Tokens are yielded before they're fed.
    interactive.feed_token(token)
    assert interactive.resume_parse() == math_parser.parse("1 + 2 * 3")


def test_resume_after_an_error(math_parser):
    source = "(1 + 2"
    with pytest.raises(UnexpectedEOF) as exc:
        math_parser.parse(source)

    interactive = exc.value.interactive_parser
    interactive.feed_token(Token("RPAR", ")"))
    assert interactive.resume_parse() == math_parser.parse("(1 + 2)")


def test_match_examples(math_parser):
    examples = {
        "missing operand": ["1 +", "2 *", "x -"],
        "missing close paren": ["(1", "(x + 2"],
        "two values in a row": ["1 2", "x y"],
    }

    def label(source):
        try:
            math_parser.parse(source)
        except UnexpectedInput as e:
            return e.match_examples(math_parser.parse, examples)
        raise AssertionError(f"{source!r} parsed")

    assert label("3 +") == "missing operand"
    assert label("7 7") == "two values in a row"


def test_resume_needs_text(math_parser):
    interactive = math_parser.parse_interactive()
    interactive.feed_token(Token("NUMBER", "1"))
    with pytest.raises(TypeError):
        interactive.resume_parse()
    assert interactive.feed_eof() == num(1)
