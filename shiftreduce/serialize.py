"""Turning compiled grammars into plain data and back.

The serialized form is a tree of dicts, lists and scalars that `json` can
write directly. Objects are dicts tagged with a `"__type__"` key naming
their class. Objects of the memoized types (terminal definitions and rules,
which the table and the lexer configuration both refer to over and over) are
written once into a side table and referenced everywhere else as
`{"@": index}`:

    {"data": {...the tree, with {"@": n} references...},
     "memo": {"0": {...}, "1": {...}}}

Deserialization is driven by the classes themselves: every `Serializable`
names the fields it writes, and names the classes its fields may contain.
"""

import typing

from .exceptions import GrammarError


def _serialize(value: typing.Any, memo: "SerializeMemoizer | None") -> typing.Any:
    if isinstance(value, Serializable):
        return value.serialize(memo)
    elif isinstance(value, (list, tuple)):
        return [_serialize(elem, memo) for elem in value]
    elif isinstance(value, (set, frozenset)):
        return sorted(_serialize(elem, memo) for elem in value)
    elif isinstance(value, dict):
        return {key: _serialize(elem, memo) for key, elem in value.items()}
    return value


def _deserialize(
    data: typing.Any,
    namespace: dict[str, type["Serializable"]],
    memo: dict[int, typing.Any],
) -> typing.Any:
    if isinstance(data, dict):
        if "__type__" in data:
            type_name = data["__type__"]
            class_ = namespace.get(type_name)
            if class_ is None:
                raise GrammarError(f"Unexpected object of type {type_name!r} in compiled grammar")
            return class_.deserialize(data, memo)

        elif "@" in data:
            try:
                return memo[int(data["@"])]
            except (KeyError, ValueError):
                raise GrammarError(f"Dangling reference {data['@']!r} in compiled grammar")

        return {key: _deserialize(value, namespace, memo) for key, value in data.items()}

    elif isinstance(data, list):
        return [_deserialize(value, namespace, memo) for value in data]

    return data


class Serializable:
    """A mixin for objects that round-trip through the tagged-dict format.

    Subclasses list the attributes to write in `_serialize_fields`, and the
    classes that may appear (at any depth) inside those attributes in
    `_serialize_namespace`. The default `deserialize` calls the constructor
    with the fields as keyword arguments, so the field names need to match
    the constructor's parameters.
    """

    _serialize_fields: typing.ClassVar[tuple[str, ...]] = ()
    _serialize_namespace: typing.ClassVar[tuple[type["Serializable"], ...]] = ()

    def serialize(self, memo: "SerializeMemoizer | None" = None) -> dict[str, typing.Any]:
        if memo is not None and memo.in_types(self):
            return {"@": memo.memoize(self)}

        result = {name: _serialize(getattr(self, name), memo) for name in self._serialize_fields}
        result["__type__"] = type(self).__name__
        return result

    @classmethod
    def namespace(cls) -> dict[str, type["Serializable"]]:
        return {c.__name__: c for c in cls._serialize_namespace}

    @classmethod
    def deserialize(cls, data: dict[str, typing.Any], memo: dict[int, typing.Any]) -> typing.Self:
        namespace = cls.namespace()
        kwargs = {
            name: _deserialize(data[name], namespace, memo)
            for name in cls._serialize_fields
            if name in data
        }
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise GrammarError(f"Malformed {cls.__name__} in compiled grammar: {e}") from e


class SerializeMemoizer:
    """Assigns an index to each object of the memoized types as it is
    serialized, and writes out the side table afterwards.

    Serialize the data first, then call `serialize()` on the memoizer: the
    side table only contains what the data actually referred to.
    """

    types_to_memoize: tuple[type, ...]
    memoized: dict[typing.Any, int]

    def __init__(self, types_to_memoize: typing.Iterable[type]):
        self.types_to_memoize = tuple(types_to_memoize)
        self.memoized = {}

    def in_types(self, value: typing.Any) -> bool:
        return isinstance(value, self.types_to_memoize)

    def memoize(self, value: typing.Any) -> int:
        return self.memoized.setdefault(value, len(self.memoized))

    def serialize(self) -> dict[int, typing.Any]:
        return {index: _serialize(value, None) for value, index in self.memoized.items()}

    @staticmethod
    def deserialize(
        data: dict[str | int, typing.Any],
        namespace: dict[str, type[Serializable]],
    ) -> dict[int, typing.Any]:
        """Rebuild the side table. JSON turns the integer keys into strings,
        so both kinds of key are accepted."""
        try:
            return {int(key): _deserialize(value, namespace, {}) for key, value in data.items()}
        except ValueError as e:
            raise GrammarError(f"Malformed memo table in compiled grammar: {e}") from e


def deserialize(
    data: typing.Any,
    namespace: dict[str, type[Serializable]],
    memo: dict[int, typing.Any],
) -> typing.Any:
    """Rebuild an object tree from its serialized form, resolving memo
    references against `memo`."""
    return _deserialize(data, namespace, memo)


def field(data: dict[str, typing.Any], name: str, what: str) -> typing.Any:
    """Fetch a required field from a serialized object, raising GrammarError
    if the compiled grammar doesn't have it."""
    try:
        return data[name]
    except (KeyError, TypeError):
        raise GrammarError(f"Compiled grammar is missing {what}.{name}")
