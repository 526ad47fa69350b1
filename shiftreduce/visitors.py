"""Walking and rewriting trees after (or while) they are parsed.

There are three families here, and they differ in who drives the recursion:

- A `Transformer` rewrites bottom up. By the time a handler sees a node,
  that node's children have already been transformed, and whatever the
  handler returns replaces the node.
- A `Visitor` walks the tree for side effects, bottom up or top down, and
  never rebuilds anything.
- An `Interpreter` walks top down, and doesn't descend on its own: a handler
  decides which children to visit, if any. That's what you want for
  evaluating `if` and friends.

Handlers are methods named after the node's label (for tokens, after the
token type). Each instance looks its handlers up once, building a table from
label to bound method; nodes without a handler go to `__default__`.
"""

import functools
import inspect
import typing

from .exceptions import GrammarError, VisitError
from .lexer import Token
from .tree import Meta, Tree


class _DiscardType:
    """The type of `Discard`. There's only the one."""

    def __repr__(self):
        return "shiftreduce.visitors.Discard"


# Return this from a transformer handler to remove the node from its parent.
Discard = _DiscardType()


def _library_names(cls: type) -> set[str]:
    names: set[str] = set()
    for base in cls.__mro__:
        if base.__module__ == __name__:
            names.update(base.__dict__)
    return names


def _handler_table(obj: typing.Any) -> dict[str, typing.Callable]:
    reserved = _library_names(type(obj))
    table = {}
    for name in dir(obj):
        if name.startswith("__") or name in reserved:
            continue
        # Look before binding: properties and other descriptors aren't
        # handlers, and must not run here.
        static = inspect.getattr_static(obj, name, None)
        if not (callable(static) or isinstance(static, (staticmethod, classmethod))):
            continue
        table[name] = getattr(obj, name)
    return table


class _HandlerTable:
    @functools.cached_property
    def _handlers(self) -> dict[str, typing.Callable]:
        return _handler_table(self)


def handler_for(obj: typing.Any, name: str) -> typing.Callable | None:
    """Return `obj`'s handler for the label `name`, or None."""
    if isinstance(obj, _HandlerTable):
        return obj._handlers.get(name)
    return None


# The wrappers `v_args` installs. Each one is called as
# wrapper(handler, label, children, meta).


def _vargs_inline(f, _data, children, _meta):
    return f(*children)


def _vargs_meta_inline(f, _data, children, meta):
    return f(meta, *children)


def _vargs_meta(f, _data, children, meta):
    return f(meta, children)


def _vargs_tree(f, data, children, meta):
    return f(Tree(data, children, meta))


def _wrap_handler(f, visit_wrapper):
    @functools.wraps(f)
    def handler(*args, **kwargs):
        return f(*args, **kwargs)

    handler.visit_wrapper = visit_wrapper  # type: ignore[attr-defined]
    return handler


def v_args(
    inline: bool = False,
    meta: bool = False,
    tree: bool = False,
    wrapper: typing.Callable | None = None,
):
    """Change how a handler (or every handler in a class) is called.

    By default a handler gets the list of children. With `inline=True` the
    children are passed as separate arguments; with `meta=True` the node's
    Meta comes first; with `tree=True` the handler gets a Tree instead.
    `wrapper` installs a custom calling convention:
    wrapper(handler, label, children, meta).
    """
    if tree and (meta or inline):
        raise ValueError("Visitor functions cannot combine 'tree' with 'meta' or 'inline'.")

    func = None
    if meta:
        if inline:
            func = _vargs_meta_inline
        else:
            func = _vargs_meta
    elif inline:
        func = _vargs_inline
    elif tree:
        func = _vargs_tree

    if wrapper is not None:
        if func is not None:
            raise ValueError("Cannot use 'wrapper' along with 'tree', 'meta' or 'inline'.")
        func = wrapper

    def _visitor_args_dec(obj):
        if func is None:
            return obj

        if isinstance(obj, type):
            # Only the class's own handlers; inherited ones keep whatever
            # convention they were declared with.
            for name, value in list(obj.__dict__.items()):
                if name.startswith("_") or not inspect.isfunction(value):
                    continue
                if getattr(value, "visit_wrapper", None) is not None:
                    continue
                setattr(obj, name, _wrap_handler(value, func))
            return obj

        return _wrap_handler(obj, func)

    return _visitor_args_dec


def _call_handler(f, data: str, children: list[typing.Any], meta: Meta | None):
    wrapper = getattr(f, "visit_wrapper", None)
    if wrapper is not None:
        return wrapper(f, data, children, meta)
    return f(children)


class Transformer(_HandlerTable):
    """Rewrite a tree bottom up.

    With `visit_tokens` (the default) tokens are passed to handlers named
    after their type, too. A handler that raises has its exception wrapped
    in a VisitError, unless it was a GrammarError.
    """

    __visit_tokens__ = True

    def __init__(self, visit_tokens: bool = True):
        self.__visit_tokens__ = visit_tokens

    def _call_userfunc(self, tree: Tree, new_children: list[typing.Any] | None = None):
        children = new_children if new_children is not None else tree.children
        f = self._handlers.get(tree.data)
        if f is None:
            return self.__default__(tree.data, children, tree.meta)

        try:
            return _call_handler(f, tree.data, children, tree.meta)
        except GrammarError:
            raise
        except Exception as e:
            raise VisitError(tree.data, tree, e)

    def _call_userfunc_token(self, token: Token):
        f = self._handlers.get(token.type)
        if f is None:
            return self.__default_token__(token)

        try:
            return f(token)
        except GrammarError:
            raise
        except Exception as e:
            raise VisitError(token.type, token, e)

    def _transform_children(self, children: typing.Iterable[typing.Any]) -> typing.Iterator[typing.Any]:
        for c in children:
            if isinstance(c, Tree):
                res = self._transform_tree(c)
            elif self.__visit_tokens__ and isinstance(c, Token):
                res = self._call_userfunc_token(c)
            else:
                res = c

            if res is not Discard:
                yield res

    def _transform_tree(self, tree: Tree):
        children = list(self._transform_children(tree.children))
        return self._call_userfunc(tree, children)

    def transform(self, tree: Tree) -> typing.Any:
        """Transform the given tree, and return the final result. Returns
        None if the root itself was discarded."""
        res = list(self._transform_children([tree]))
        if not res:
            return None
        assert len(res) == 1
        return res[0]

    def __mul__(self, other: "Transformer | TransformerChain") -> "TransformerChain":
        """Chain two transformers together, returning a new transformer."""
        return TransformerChain(self, other)

    def __default__(self, data: str, children: list[typing.Any], meta: Meta | None):
        """Called when there's no handler for a node. Rebuilds it as is."""
        return Tree(data, children, meta)

    def __default_token__(self, token: Token):
        """Called when there's no handler for a token. Returns it as is."""
        return token


class TransformerChain:
    transformers: tuple["Transformer | TransformerChain", ...]

    def __init__(self, *transformers: "Transformer | TransformerChain"):
        self.transformers = transformers

    def transform(self, tree: Tree) -> typing.Any:
        for t in self.transformers:
            tree = t.transform(tree)
        return tree

    def __mul__(self, other: "Transformer | TransformerChain") -> "TransformerChain":
        return TransformerChain(*self.transformers + (other,))


class Transformer_InPlace(Transformer):
    """A transformer that modifies the tree in place instead of building a
    new one. Handlers get the Tree itself rather than its children."""

    def _transform_tree(self, tree: Tree):
        return self._call_userfunc(tree)

    def _call_userfunc(self, tree: Tree, new_children: list[typing.Any] | None = None):
        f = self._handlers.get(tree.data)
        if f is None:
            return self.__default__(tree.data, tree.children, tree.meta)
        try:
            if getattr(f, "visit_wrapper", None) is not None:
                return _call_handler(f, tree.data, tree.children, tree.meta)
            return f(tree)
        except GrammarError:
            raise
        except Exception as e:
            raise VisitError(tree.data, tree, e)

    def transform(self, tree: Tree) -> typing.Any:
        for subtree in tree.iter_subtrees():
            subtree.children = list(self._transform_children(subtree.children))

        return self._transform_tree(tree)


class Transformer_NonRecursive(Transformer):
    """Same as Transformer, but without Python recursion, so it can handle
    trees deeper than the interpreter's recursion limit."""

    def transform(self, tree: Tree) -> typing.Any:
        # Flatten to reverse postfix order...
        rev_postfix: list[typing.Any] = []
        q: list[typing.Any] = [tree]
        while q:
            t = q.pop()
            rev_postfix.append(t)
            if isinstance(t, Tree):
                q += t.children

        # ...then rebuild from the leaves up. Discarded results stay on the
        # stack as markers so each node still finds exactly its own
        # children.
        stack: list[typing.Any] = []
        for x in reversed(rev_postfix):
            if isinstance(x, Tree):
                size = len(x.children)
                if size:
                    args = [a for a in stack[-size:] if a is not Discard]
                    del stack[-size:]
                else:
                    args = []
                stack.append(self._call_userfunc(x, args))
            elif self.__visit_tokens__ and isinstance(x, Token):
                stack.append(self._call_userfunc_token(x))
            else:
                stack.append(x)

        (result,) = stack
        return None if result is Discard else result


class Transformer_InPlaceRecursive(Transformer):
    """Same as Transformer, but reuses the existing nodes instead of
    building new ones."""

    def _transform_tree(self, tree: Tree):
        tree.children = list(self._transform_children(tree.children))
        return self._call_userfunc(tree)


class VisitorBase(_HandlerTable):
    def _call_userfunc(self, tree: Tree):
        f = self._handlers.get(tree.data)
        if f is None:
            return self.__default__(tree)
        return f(tree)

    def __default__(self, tree: Tree):
        """Called when there's no handler for a node. Does nothing."""
        return tree


class Visitor(VisitorBase):
    """Walk the tree, calling a handler on each node for its side effects.

    Handlers get the Tree. This doesn't recurse in Python, so it's fine on
    very deep trees.
    """

    def visit(self, tree: Tree) -> Tree:
        """Visit the tree, starting with the leaves and finally the root
        (bottom up)."""
        for subtree in tree.iter_subtrees():
            self._call_userfunc(subtree)
        return tree

    def visit_topdown(self, tree: Tree) -> Tree:
        """Visit the tree, starting at the root and ending at the leaves
        (top down)."""
        for subtree in tree.iter_subtrees_topdown():
            self._call_userfunc(subtree)
        return tree


class Visitor_Recursive(VisitorBase):
    """A Visitor that uses Python recursion. A little faster, but it'll hit
    the recursion limit on very deep trees."""

    def visit(self, tree: Tree) -> Tree:
        for child in tree.children:
            if isinstance(child, Tree):
                self.visit(child)

        self._call_userfunc(tree)
        return tree

    def visit_topdown(self, tree: Tree) -> Tree:
        self._call_userfunc(tree)

        for child in tree.children:
            if isinstance(child, Tree):
                self.visit_topdown(child)

        return tree


class Interpreter(_HandlerTable):
    """Walk the tree top down, letting each handler decide where to go.

    Handlers get the Tree and must call `visit` or `visit_children`
    themselves to go any deeper. Nodes without a handler visit all of their
    children.
    """

    def visit(self, tree: Tree) -> typing.Any:
        return self._visit_tree(tree)

    def _visit_tree(self, tree: Tree) -> typing.Any:
        f = self._handlers.get(tree.data)
        if f is None:
            return self.__default__(tree)

        wrapper = getattr(f, "visit_wrapper", None)
        if wrapper is not None:
            return wrapper(f, tree.data, tree.children, tree.meta)
        return f(tree)

    def visit_children(self, tree: Tree) -> list[typing.Any]:
        return [
            self._visit_tree(child) if isinstance(child, Tree) else child for child in tree.children
        ]

    def __default__(self, tree: Tree) -> typing.Any:
        return self.visit_children(tree)


def visit_children_decor(func):
    """A decorator for Interpreter handlers: visit the children first and
    pass the handler the results instead of the tree."""

    @functools.wraps(func)
    def inner(cls, tree):
        values = cls.visit_children(tree)
        return func(cls, values)

    return inner
