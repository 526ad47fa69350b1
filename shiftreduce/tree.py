"""Parse trees.

A `Tree` is a label (`data`) and a list of children, which are trees or
tokens. Its `meta` records where in the text it came from, once positions
have been propagated.
"""

import copy
import typing

from .lexer import Token


class Meta:
    """Where in the text a tree came from.

    Everything is None (and `empty` is True) until positions get propagated
    into it. The `container_*` fields cover the whole span of the node's
    children, including children that were filtered out of the tree, while
    the plain fields cover what's left.
    """

    empty: bool
    line: int | None
    column: int | None
    start_pos: int | None
    end_line: int | None
    end_column: int | None
    end_pos: int | None
    container_line: int | None
    container_column: int | None
    container_start_pos: int | None
    container_end_line: int | None
    container_end_column: int | None
    container_end_pos: int | None

    def __init__(self):
        self.empty = True
        self.line = self.column = self.start_pos = None
        self.end_line = self.end_column = self.end_pos = None
        self.container_line = self.container_column = self.container_start_pos = None
        self.container_end_line = self.container_end_column = self.container_end_pos = None

    def __repr__(self):
        if self.empty:
            return "Meta(empty)"
        return "Meta(%s:%s-%s:%s)" % (self.line, self.column, self.end_line, self.end_column)


class Tree:
    """A node in a syntax tree.

    `data` is the label (usually a rule name) and `children` is a list of
    trees and tokens. Trees compare equal when their labels and children are
    equal; positions don't participate.
    """

    data: str
    children: list[typing.Any]

    def __init__(self, data: str, children: list[typing.Any], meta: Meta | None = None):
        self.data = data
        self.children = children
        self._meta = meta

    @property
    def meta(self) -> Meta:
        if self._meta is None:
            self._meta = Meta()
        return self._meta

    def __repr__(self):
        return "Tree(%r, %r)" % (self.data, self.children)

    def _pretty_label(self) -> str:
        return self.data

    def _pretty(self, level: int, indent_str: str) -> typing.Iterator[str]:
        yield f"{indent_str * level}{self._pretty_label()}"
        if len(self.children) == 1 and not isinstance(self.children[0], Tree):
            yield f"\t{self.children[0]}\n"
        else:
            yield "\n"
            for n in self.children:
                match n:
                    case Tree():
                        yield from n._pretty(level + 1, indent_str)
                    case _:
                        yield f"{indent_str * (level + 1)}{n}\n"

    def pretty(self, indent_str: str = "  ") -> str:
        """Return an indented string representation of the tree, one node
        per line. Good for debugging."""
        return "".join(self._pretty(0, indent_str))

    def format_lines(self) -> list[str]:
        """Describe the tree one node per line, with token types and the
        span each node covers. Unlike `pretty` this shows positions, so it's
        what you want when position propagation is on."""
        lines = []

        def span(start, end):
            return "" if start is None else f" [{start}, {end})"

        def format_node(node, indent: int):
            match node:
                case Tree(data=data, children=children):
                    lines.append((" " * indent) + data + span(node.meta.start_pos, node.meta.end_pos))
                    for child in children:
                        format_node(child, indent + 2)

                case Token(type=kind):
                    lines.append((" " * indent) + f"{kind}:{str(node)!r}" + span(node.start_pos, node.end_pos))

                case _:
                    lines.append((" " * indent) + repr(node))

        format_node(self, 0)
        return lines

    def __eq__(self, other):
        try:
            return self.data == other.data and self.children == other.children
        except AttributeError:
            return False

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash((self.data, tuple(self.children)))

    def iter_subtrees(self) -> typing.Iterator["Tree"]:
        """Depth-first iteration, bottom up: every subtree comes after all
        of its children. A subtree that appears more than once is only
        visited once."""
        queue = [self]
        subtrees: dict[int, Tree] = {}
        for subtree in queue:
            subtrees[id(subtree)] = subtree
            queue += [
                c for c in reversed(subtree.children) if isinstance(c, Tree) and id(c) not in subtrees
            ]

        del queue
        return reversed(list(subtrees.values()))

    def iter_subtrees_topdown(self) -> typing.Iterator["Tree"]:
        """Depth-first iteration, top down, in the order the nodes would be
        printed by `pretty`."""
        stack: list[typing.Any] = [self]
        while stack:
            node = stack.pop()
            if not isinstance(node, Tree):
                continue
            yield node
            for child in reversed(node.children):
                stack.append(child)

    def find_pred(self, pred: typing.Callable[["Tree"], bool]) -> typing.Iterator["Tree"]:
        return filter(pred, self.iter_subtrees())

    def find_data(self, data: str) -> typing.Iterator["Tree"]:
        return self.find_pred(lambda t: t.data == data)

    def expand_kids_by_data(self, *data_values: str) -> bool:
        """Replace each child tree labelled with one of `data_values` by its
        own children. Returns whether anything changed."""
        changed = False
        for i in range(len(self.children) - 1, -1, -1):
            child = self.children[i]
            if isinstance(child, Tree) and child.data in data_values:
                self.children[i : i + 1] = child.children
                changed = True
        return changed

    def scan_values(self, pred: typing.Callable[[typing.Any], bool]) -> typing.Iterator[typing.Any]:
        """Yield every leaf (anything that isn't a Tree) for which `pred`
        holds, left to right."""
        for c in self.children:
            if isinstance(c, Tree):
                yield from c.scan_values(pred)
            elif pred(c):
                yield c

    def __deepcopy__(self, memo):
        return type(self)(self.data, copy.deepcopy(self.children, memo), meta=self._meta)

    def copy(self) -> "Tree":
        return type(self)(self.data, self.children)

    def set(self, data: str, children: list[typing.Any]):
        self.data = data
        self.children = children
