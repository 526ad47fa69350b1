"""Building tree nodes on reduction.

Every rule gets a callback that turns the values popped off the parser's
value stack into the value for the rule. The callback is a chain of small
wrappers, decided once per rule when the parser is loaded:

    PropagatePositions( ChildFilter( ExpandSingleChild( make_node )))

Each layer is only present if the rule needs it.
"""

import functools
import typing

from .exceptions import ConfigurationError, GrammarError
from .grammar import Rule, Symbol
from .lexer import Token
from .tree import Meta, Tree
from . import visitors

NodeBuilder = typing.Callable[[list[typing.Any]], typing.Any]


class ExpandSingleChild:
    """If there's exactly one child, that child *is* the result."""

    def __init__(self, node_builder: NodeBuilder):
        self.node_builder = node_builder

    def __call__(self, children):
        if len(children) == 1:
            return children[0]
        else:
            return self.node_builder(children)


def _container(meta: typing.Any, name: str) -> typing.Any:
    # Tokens don't have container positions, and trees only have them once
    # they've been propagated.
    value = getattr(meta, "container_" + name, None)
    return value if value is not None else getattr(meta, name)


class PropagatePositions:
    """Fill in the `meta` of the node being built from its children.

    Only the first and last children with a position are consulted; their
    positions were already settled when they were built, so nothing is ever
    rescanned.
    """

    def __init__(
        self,
        node_builder: NodeBuilder,
        node_filter: typing.Callable[[typing.Any], bool] | None = None,
    ):
        self.node_builder = node_builder
        self.node_filter = node_filter

    def __call__(self, children):
        res = self.node_builder(children)

        if isinstance(res, Tree):
            res_meta = res.meta

            first_meta = self._pp_get_meta(children)
            if first_meta is not None:
                # NOTE: A node that came back from ExpandSingleChild already
                #       has its position; only its container gets widened.
                if res_meta.line is None:
                    res_meta.line = _container(first_meta, "line")
                    res_meta.column = _container(first_meta, "column")
                    res_meta.start_pos = _container(first_meta, "start_pos")
                    res_meta.empty = False

                res_meta.container_line = _container(first_meta, "line")
                res_meta.container_column = _container(first_meta, "column")
                res_meta.container_start_pos = _container(first_meta, "start_pos")

            last_meta = self._pp_get_meta(reversed(children))
            if last_meta is not None:
                if res_meta.end_line is None:
                    res_meta.end_line = _container(last_meta, "end_line")
                    res_meta.end_column = _container(last_meta, "end_column")
                    res_meta.end_pos = _container(last_meta, "end_pos")
                    res_meta.empty = False

                res_meta.container_end_line = _container(last_meta, "end_line")
                res_meta.container_end_column = _container(last_meta, "end_column")
                res_meta.container_end_pos = _container(last_meta, "end_pos")

        return res

    def _pp_get_meta(self, children: typing.Iterable[typing.Any]) -> Meta | Token | None:
        for c in children:
            if self.node_filter is not None and not self.node_filter(c):
                continue
            if isinstance(c, Tree):
                if not c.meta.empty:
                    return c.meta
            elif isinstance(c, Token):
                return c
        return None


def make_propagate_positions(option: typing.Any) -> typing.Callable[..., NodeBuilder] | None:
    if callable(option):
        return functools.partial(PropagatePositions, node_filter=option)
    elif option is True:
        return PropagatePositions
    elif option is False:
        return None

    raise ConfigurationError("Invalid option for propagate_positions: %r" % (option,))


class ChildFilter:
    """Drop filtered-out tokens, splice in the children of inlined
    helper rules, and put placeholders where optional items were missing.

    `to_include` is a list of (index, splice?, placeholders-before) for each
    child that survives.
    """

    def __init__(
        self,
        to_include: list[tuple[int, bool, int]],
        append_none: int,
        node_builder: NodeBuilder,
    ):
        self.node_builder = node_builder
        self.to_include = to_include
        self.append_none = append_none

    def __call__(self, children):
        filtered: list[typing.Any] = []

        for i, to_expand, add_none in self.to_include:
            if add_none:
                filtered += [None] * add_none
            if to_expand:
                if filtered:
                    filtered += children[i].children
                else:
                    # The spliced tree was built for us alone and nobody
                    # else holds it, so we can take over its list. This
                    # keeps left-recursive helpers linear.
                    filtered = children[i].children
            else:
                filtered.append(children[i])

        if self.append_none:
            filtered += [None] * self.append_none

        return self.node_builder(filtered)


class ChildFilterNoPlaceholders(ChildFilter):
    """A ChildFilter for rules that never need placeholders."""

    def __init__(self, to_include: list[tuple[int, bool]], node_builder: NodeBuilder):
        self.node_builder = node_builder
        self.to_include = to_include

    def __call__(self, children):
        filtered: list[typing.Any] = []
        for i, to_expand in self.to_include:
            if to_expand:
                if filtered:
                    filtered += children[i].children
                else:
                    filtered = children[i].children
            else:
                filtered.append(children[i])
        return self.node_builder(filtered)


def _should_expand(sym: Symbol) -> bool:
    return not sym.is_term and sym.name.startswith("_")


def maybe_create_child_filter(
    expansion: typing.Sequence[Symbol],
    keep_all_tokens: bool,
    _empty_indices: typing.Sequence[bool] | None,
) -> typing.Callable[[NodeBuilder], NodeBuilder] | None:
    """Build the ChildFilter for a rule, or return None if the rule's
    children go into the tree exactly as they are.

    `_empty_indices` has one entry per symbol the rule was written with:
    False for each symbol that's really in `expansion`, True for each
    optional symbol that was left out of this expansion.
    """
    # Work out how many placeholders go in front of each child (and after
    # the last one): "0110" splits into ["", "11", ""] -> [0, 2, 0].
    if _empty_indices:
        assert list(_empty_indices).count(False) == len(expansion)
        s = "".join(str(int(b)) for b in _empty_indices)
        empty_indices = [len(ones) for ones in s.split("0")]
        assert len(empty_indices) == len(expansion) + 1, (empty_indices, len(expansion))
    else:
        empty_indices = [0] * (len(expansion) + 1)

    to_include = []
    nones_to_add = 0
    for i, sym in enumerate(expansion):
        nones_to_add += empty_indices[i]
        if keep_all_tokens or not (sym.is_term and getattr(sym, "filter_out", False)):
            to_include.append((i, _should_expand(sym), nones_to_add))
            nones_to_add = 0

    nones_to_add += empty_indices[len(expansion)]

    if (
        _empty_indices
        or len(to_include) < len(expansion)
        or any(to_expand for _, to_expand, _ in to_include)
    ):
        if _empty_indices:
            return functools.partial(ChildFilter, to_include, nones_to_add)
        else:
            return functools.partial(
                ChildFilterNoPlaceholders, [(i, x) for i, x, _ in to_include]
            )

    return None


def apply_visit_wrapper(func, name: str, wrapper):
    if wrapper is visitors._vargs_meta or wrapper is visitors._vargs_meta_inline:
        raise NotImplementedError("Meta args not supported for internal transformer")

    @functools.wraps(func)
    def f(children):
        return wrapper(func, name, children, None)

    return f


def inplace_transformer(func, name: str):
    @functools.wraps(func)
    def f(children):
        return func(Tree(name, children))

    return f


class ParseTreeBuilder:
    """Makes the reduction callbacks for a set of rules.

    By default every rule builds a `tree_class` node. Give `create_callback`
    a transformer and rules with a handler there call the handler instead,
    so the tree is transformed as it is built.
    """

    rule_builders: list[tuple[Rule, list[typing.Callable[[NodeBuilder], NodeBuilder]]]]

    def __init__(
        self,
        rules: typing.Iterable[Rule],
        tree_class: type[Tree],
        propagate_positions: typing.Any = False,
        maybe_placeholders: bool = False,
    ):
        self.tree_class = tree_class
        self.propagate_positions = propagate_positions
        self.maybe_placeholders = maybe_placeholders

        self.rule_builders = list(self._init_builders(rules))

    def _init_builders(self, rules: typing.Iterable[Rule]):
        propagate_positions = make_propagate_positions(self.propagate_positions)

        for rule in rules:
            options = rule.options
            keep_all_tokens = options.keep_all_tokens
            expand_single_child = options.expand1

            wrapper_chain = [
                w
                for w in (
                    ExpandSingleChild if (expand_single_child and not rule.alias) else None,
                    maybe_create_child_filter(
                        rule.expansion,
                        keep_all_tokens,
                        options.empty_indices if self.maybe_placeholders else None,
                    ),
                    propagate_positions,
                )
                if w is not None
            ]

            yield rule, wrapper_chain

    def create_callback(
        self, transformer: "visitors.Transformer | None" = None
    ) -> dict[Rule, NodeBuilder]:
        """Return a mapping from each rule to its reduction callback.

        Raises GrammarError if two rules are the same rule.
        """
        callbacks: dict[Rule, NodeBuilder] = {}

        if transformer is not None:
            default_handler = transformer.__default__

            def default_callback(data, children):
                return default_handler(data, children, None)

        else:
            default_callback = self.tree_class

        for rule, wrapper_chain in self.rule_builders:
            user_callback_name = rule.alias or rule.options.template_source or rule.origin.name

            f = visitors.handler_for(transformer, user_callback_name) if transformer else None
            if f is not None:
                wrapper = getattr(f, "visit_wrapper", None)
                if wrapper is not None:
                    f = apply_visit_wrapper(f, user_callback_name, wrapper)
                elif isinstance(transformer, visitors.Transformer_InPlace):
                    f = inplace_transformer(f, user_callback_name)
            else:
                f = functools.partial(default_callback, user_callback_name)

            for w in wrapper_chain:
                f = w(f)

            if rule in callbacks:
                raise GrammarError("Rule %s already exists" % (rule,))

            callbacks[rule] = f

        return callbacks
