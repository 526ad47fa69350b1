import pytest

from shiftreduce import Parser

from grammars import MATH_GRAMMAR


@pytest.fixture(scope="session")
def math_parser() -> Parser:
    return Parser.from_file(MATH_GRAMMAR)
