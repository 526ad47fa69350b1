"""Small grammars, assembled by hand, for tests that need something simpler
than the arithmetic grammar in math_grammar.json."""

import pathlib

from shiftreduce import (
    NonTerminal,
    Parser,
    ParseTable,
    PatternRE,
    PatternStr,
    Reduce,
    Rule,
    RuleOptions,
    Shift,
    Terminal,
    TerminalDef,
)

MATH_GRAMMAR = pathlib.Path(__file__).parent / "math_grammar.json"


def list_rules(items: str = "items", **rule_options) -> list[Rule]:
    """start : items ; items : items ITEM | ITEM"""
    start = NonTerminal("start")
    nt = NonTerminal(items)
    item = Terminal("ITEM")
    return [
        Rule(start, [nt], 0, options=RuleOptions(**rule_options)),
        Rule(nt, [nt, item], 0, options=RuleOptions(**rule_options)),
        Rule(nt, [item], 1, options=RuleOptions(**rule_options)),
    ]


def list_table(rules: list[Rule]) -> ParseTable:
    r_start, r_more, r_one = rules
    items = r_start.expansion[0].name
    return ParseTable(
        states={
            0: {"ITEM": Shift(1), items: Shift(2), "start": Shift(3)},
            1: {"ITEM": Reduce(r_one), "$END": Reduce(r_one)},
            2: {"ITEM": Shift(4), "$END": Reduce(r_start)},
            3: {},
            4: {"ITEM": Reduce(r_more), "$END": Reduce(r_more)},
        },
        start_states={"start": 0},
        end_states={"start": 3},
    )


def list_terminals() -> list[TerminalDef]:
    return [
        TerminalDef("ITEM", PatternRE("[a-z]+")),
        TerminalDef("WS", PatternRE("[ \t\n]+")),
    ]


def list_parser(items: str = "items", rule_options: dict | None = None, **options) -> Parser:
    """A parser for space-separated lowercase words."""
    rules = list_rules(items, **(rule_options or {}))
    return Parser(list_terminals(), rules, list_table(rules), ignore=["WS"], **options)


def lex_only_parser(terminals: list[TerminalDef], ignore=(), **options) -> Parser:
    """A parser that can't parse anything, for lexing with."""
    return Parser(
        terminals,
        [],
        ParseTable(states={0: {}, 1: {}}, start_states={"start": 0}, end_states={"start": 1}),
        ignore=ignore,
        **options,
    )


PUNCTUATION = [
    TerminalDef("LPAR", PatternStr("(")),
    TerminalDef("RPAR", PatternStr(")")),
]
