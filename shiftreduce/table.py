"""Parse tables.

A parse table maps (state, symbol) to an action. For terminals the action is
either `Shift` (push the token and move to a new state) or `Reduce` (pop the
right hand side of a rule and build its value). For nonterminals the entry is
always a `Shift`, and it's the goto taken after a reduction. Keeping both in
one mapping per state means the contextual lexer can just look at a state's
keys to know what it might accept.
"""

import dataclasses
import typing

from . import serialize
from .exceptions import GrammarError
from .grammar import Rule


@dataclasses.dataclass(frozen=True)
class Shift:
    state: typing.Hashable


@dataclasses.dataclass(frozen=True)
class Reduce:
    rule: Rule


ParseAction = Shift | Reduce

SHIFT = 0
REDUCE = 1


def is_terminal(name: str) -> bool:
    # Terminal names are all uppercase (and `$END` counts).
    return name.isupper()


@dataclasses.dataclass
class ParseTable:
    """A table whose states can be anything hashable.

    A table assembled by hand, or by some other tool, can use whatever state
    objects it likes; `IntParseTable.from_parse_table` renumbers the states
    into integers for storage.
    """

    states: dict[typing.Hashable, dict[str, ParseAction]]
    start_states: dict[str, typing.Hashable]
    end_states: dict[str, typing.Hashable]

    def serialize(self, memo: serialize.SerializeMemoizer | None) -> dict[str, typing.Any]:
        tokens: dict[str, int] = {}

        def token_index(name: str) -> int:
            return tokens.setdefault(name, len(tokens))

        def serialize_action(action: ParseAction) -> list:
            match action:
                case Shift(state=state):
                    return [SHIFT, state]
                case Reduce(rule=rule):
                    return [REDUCE, rule.serialize(memo)]
                case _:
                    typing.assert_never(action)

        states = {
            state: {
                token_index(token): serialize_action(action) for token, action in actions.items()
            }
            for state, actions in self.states.items()
        }

        return {
            "tokens": {index: name for name, index in tokens.items()},
            "states": states,
            "start_states": dict(self.start_states),
            "end_states": dict(self.end_states),
        }

    @classmethod
    def deserialize(cls, data: dict[str, typing.Any], memo: dict[int, typing.Any]) -> typing.Self:
        """Rebuild a table written by `serialize`.

        This also takes care of what a trip through JSON does to the data:
        integer keys come back as strings. The token list may be stored as a
        list or as a mapping from index to name.
        """
        raw_tokens = serialize.field(data, "tokens", "parse table")
        if isinstance(raw_tokens, list):
            tokens = dict(enumerate(raw_tokens))
        else:
            tokens = {int(index): name for index, name in raw_tokens.items()}

        namespace = {"Rule": Rule}

        def deserialize_action(raw: typing.Any) -> ParseAction:
            try:
                kind, arg = raw
            except (TypeError, ValueError):
                raise GrammarError(f"Malformed parse action {raw!r}")

            if kind == SHIFT:
                return Shift(_state_key(arg))
            elif kind == REDUCE:
                rule = serialize.deserialize(arg, namespace, memo)
                if not isinstance(rule, Rule):
                    raise GrammarError(f"Reduce action refers to {rule!r}, which isn't a rule")
                return Reduce(rule)
            raise GrammarError(f"Unknown parse action kind {kind!r}")

        def token_name(index: typing.Any) -> str:
            try:
                return tokens[int(index)]
            except (KeyError, ValueError):
                raise GrammarError(f"Parse table refers to unknown token #{index}")

        states = {
            _state_key(state): {
                token_name(index): deserialize_action(action) for index, action in actions.items()
            }
            for state, actions in serialize.field(data, "states", "parse table").items()
        }

        start_states = {
            name: _state_key(state)
            for name, state in serialize.field(data, "start_states", "parse table").items()
        }
        end_states = {
            name: _state_key(state)
            for name, state in serialize.field(data, "end_states", "parse table").items()
        }
        return cls(states, start_states, end_states)

    def format(self) -> str:
        """Format a parser table so pretty."""

        def format_action(actions: dict[str, ParseAction], symbol: str):
            match actions.get(symbol):
                case Shift(state=state) if not is_terminal(symbol):
                    return str(state)
                case Shift(state=state):
                    return f"s{state}"
                case Reduce(rule=rule):
                    return f"r{len(rule.expansion)}"
                case _:
                    return ""

        symbols = {k for row in self.states.values() for k in row.keys()}
        terminals = sorted(s for s in symbols if is_terminal(s))
        nonterminals = sorted(s for s in symbols if not is_terminal(s))

        header = "     | {terms} | {nts}".format(
            terms=" ".join(f"{terminal: <6}" for terminal in terminals),
            nts=" ".join(f"{nt: <5}" for nt in nonterminals),
        )

        lines = [
            header,
            "-" * len(header),
        ] + [
            "{index: <4} | {actions} | {gotos}".format(
                index=str(state),
                actions=" ".join(
                    "{0: <6}".format(format_action(actions, terminal)) for terminal in terminals
                ),
                gotos=" ".join("{0: <5}".format(format_action(actions, nt)) for nt in nonterminals),
            )
            for state, actions in self.states.items()
        ]
        return "\n".join(lines)


def _state_key(state: typing.Any) -> typing.Hashable:
    # JSON object keys are always strings, but the states we write are
    # integers.
    if isinstance(state, str) and state.lstrip("-").isdigit():
        return int(state)
    return state


class IntParseTable(ParseTable):
    """A parse table whose states are the integers 0..N-1."""

    @classmethod
    def from_parse_table(cls, parse_table: ParseTable) -> "IntParseTable":
        enum = list(parse_table.states)
        state_to_idx = {s: i for i, s in enumerate(enum)}

        def renumber(action: ParseAction) -> ParseAction:
            match action:
                case Shift(state=state):
                    return Shift(state_to_idx[state])
                case Reduce():
                    return action
                case _:
                    typing.assert_never(action)

        int_states = {
            state_to_idx[s]: {k: renumber(v) for k, v in actions.items()}
            for s, actions in parse_table.states.items()
        }

        start_states = {start: state_to_idx[s] for start, s in parse_table.start_states.items()}
        end_states = {start: state_to_idx[s] for start, s in parse_table.end_states.items()}
        return cls(int_states, start_states, end_states)
