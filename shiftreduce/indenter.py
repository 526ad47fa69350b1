"""Post-lexing: rewriting the token stream between the lexer and the parser.

The main use is indentation-sensitive grammars. The lexer can't count
indentation by itself, so it produces newline tokens (with the following
indentation as part of their text), and an `Indenter` turns those into
INDENT and DEDENT tokens for the parser.
"""

import abc
import typing

from .exceptions import DedentError
from .lexer import Token


class PostLex(abc.ABC):
    """A filter on the token stream."""

    @abc.abstractmethod
    def process(self, stream: typing.Iterator[Token]) -> typing.Iterator[Token]:
        return stream

    # Terminals that the contextual lexer must always consider, because the
    # post-lexer consumes them before the parser ever sees them.
    always_accept: typing.Iterable[str] = ()


class Indenter(PostLex):
    """Turn newlines into INDENT and DEDENT tokens.

    Subclasses say which terminals play which part. Newlines inside
    parentheses are dropped, which is how an expression gets to span
    several lines.
    """

    NL_type: typing.ClassVar[str]
    OPEN_PAREN_types: typing.ClassVar[list[str]]
    CLOSE_PAREN_types: typing.ClassVar[list[str]]
    INDENT_type: typing.ClassVar[str]
    DEDENT_type: typing.ClassVar[str]
    tab_len: typing.ClassVar[int]

    def __init__(self):
        assert self.tab_len > 0

    def handle_NL(self, token: Token, indent_level: list[int]) -> typing.Iterator[Token]:
        """Yield the newline, then whatever INDENT or DEDENT tokens the
        indentation after it calls for. `indent_level` is the stack of open
        block indents, and is updated in place."""
        yield token

        indent_str = token.rsplit("\n", 1)[1]  # Tabs and spaces
        indent = indent_str.count(" ") + indent_str.count("\t") * self.tab_len

        if indent > indent_level[-1]:
            indent_level.append(indent)
            yield Token.new_borrow_pos(self.INDENT_type, indent_str, token)
        else:
            while indent < indent_level[-1]:
                indent_level.pop()
                yield Token.new_borrow_pos(self.DEDENT_type, indent_str, token)

            if indent != indent_level[-1]:
                raise DedentError(
                    "Unexpected dedent to column %s. Expected dedent to %s"
                    % (indent, indent_level[-1])
                )

    def _process(self, stream: typing.Iterator[Token]) -> typing.Iterator[Token]:
        # Per-stream state. The post-lexer itself is shared by every parse.
        paren_level = 0
        indent_level = [0]

        token = None
        for token in stream:
            if token.type == self.NL_type:
                if paren_level == 0:
                    yield from self.handle_NL(token, indent_level)
            else:
                yield token

            if token.type in self.OPEN_PAREN_types:
                paren_level += 1
            elif token.type in self.CLOSE_PAREN_types:
                paren_level -= 1
                assert paren_level >= 0

        while len(indent_level) > 1:
            indent_level.pop()
            if token is not None:
                yield Token.new_borrow_pos(self.DEDENT_type, "", token)
            else:
                yield Token(self.DEDENT_type, "")

        assert indent_level == [0], indent_level

    def process(self, stream: typing.Iterator[Token]) -> typing.Iterator[Token]:
        return self._process(stream)

    # Inside parentheses the parser has no use for newlines, but the lexer
    # still has to find them so that they can be dropped.
    @property
    def always_accept(self) -> tuple[str, ...]:  # type: ignore[override]
        return (self.NL_type,)


class PythonIndenter(Indenter):
    """The indentation rules of a Python-like grammar."""

    NL_type = "_NEWLINE"
    OPEN_PAREN_types = ["LPAR", "LSQB", "LBRACE"]
    CLOSE_PAREN_types = ["RPAR", "RSQB", "RBRACE"]
    INDENT_type = "_INDENT"
    DEDENT_type = "_DEDENT"
    tab_len = 8
