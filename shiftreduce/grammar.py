"""The static description of a compiled grammar: symbols, and the rules
that rewrite nonterminals into sequences of them.

Nothing in here changes once a grammar has been loaded, so all of these can
be shared freely between parses.
"""

import typing

from .serialize import Serializable


class Symbol(Serializable):
    is_term: typing.ClassVar[bool] = NotImplemented

    __slots__ = ("name",)
    _serialize_fields = ("name",)

    name: str

    def __init__(self, name: str):
        self.name = name

    def __eq__(self, other):
        if not isinstance(other, Symbol):
            return NotImplemented
        return self.is_term == other.is_term and self.name == other.name

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.name)

    def fullrepr(self) -> str:
        return repr(self)

    def renamed(self, f: typing.Callable[[str], str]) -> typing.Self:
        return type(self)(f(self.name))


class Terminal(Symbol):
    """A lexical category. `filter_out` marks terminals, like punctuation,
    whose tokens carry no information and are dropped from the tree."""

    __slots__ = ("filter_out",)
    _serialize_fields = ("name", "filter_out")

    is_term = True

    filter_out: bool

    def __init__(self, name: str, filter_out: bool = False):
        super().__init__(name)
        self.filter_out = filter_out

    def fullrepr(self) -> str:
        return "%s(%r, %r)" % (type(self).__name__, self.name, self.filter_out)

    def renamed(self, f: typing.Callable[[str], str]) -> "Terminal":
        return type(self)(f(self.name), self.filter_out)


class NonTerminal(Symbol):
    __slots__ = ()

    is_term = False


class RuleOptions(Serializable):
    """The tree-shaping flags attached to a rule.

    `keep_all_tokens` keeps filtered-out tokens in the tree anyway.
    `expand1` means "if I end up with exactly one child, just be that
    child". `empty_indices` says where optional elements were left out
    of this particular expansion, so that placeholders can go back in
    their place.
    """

    __slots__ = ("keep_all_tokens", "expand1", "priority", "template_source", "empty_indices")
    _serialize_fields = (
        "keep_all_tokens",
        "expand1",
        "priority",
        "template_source",
        "empty_indices",
    )

    keep_all_tokens: bool
    expand1: bool
    priority: int | None
    template_source: str | None
    empty_indices: tuple[bool, ...]

    def __init__(
        self,
        keep_all_tokens: bool = False,
        expand1: bool = False,
        priority: int | None = None,
        template_source: str | None = None,
        empty_indices: typing.Iterable[bool] = (),
    ):
        self.keep_all_tokens = keep_all_tokens
        self.expand1 = expand1
        self.priority = priority
        self.template_source = template_source
        self.empty_indices = tuple(empty_indices)

    def __repr__(self):
        return "RuleOptions(%r, %r, %r, %r)" % (
            self.keep_all_tokens,
            self.expand1,
            self.priority,
            self.template_source,
        )


class Rule(Serializable):
    """origin : expansion

    Two rules with the same origin and expansion are the same rule, whatever
    their options say. That matters because rules are the keys of the
    reduction callback table.
    """

    __slots__ = ("origin", "expansion", "alias", "options", "order", "_hash")
    _serialize_fields = ("origin", "expansion", "order", "alias", "options")
    _serialize_namespace = (Terminal, NonTerminal, RuleOptions)

    origin: NonTerminal
    expansion: tuple[Symbol, ...]
    order: int
    alias: str | None
    options: RuleOptions

    def __init__(
        self,
        origin: NonTerminal,
        expansion: typing.Iterable[Symbol],
        order: int = 0,
        alias: str | None = None,
        options: RuleOptions | None = None,
    ):
        self.origin = origin
        self.expansion = tuple(expansion)
        self.alias = alias
        self.order = order
        self.options = options or RuleOptions()
        self._hash = hash((self.origin, self.expansion))

    def __str__(self):
        return "<%s : %s>" % (self.origin.name, " ".join(x.name for x in self.expansion))

    def __repr__(self):
        return "Rule(%r, %r, %r, %r)" % (self.origin, list(self.expansion), self.alias, self.options)

    def __hash__(self):
        return self._hash

    def __eq__(self, other):
        if not isinstance(other, Rule):
            return False
        return self.origin == other.origin and self.expansion == other.expansion
