"""Deferred values - handles to results a remote operation produces later.

A Deferred is a small expression tree. Each one is exactly one of:

- a known constant (``Deferred.of("nyc3")``)
- an attribute of a declared node (``droplet["ipv4_address"]``)
- a transformation over other deferred values (``map`` / ``combine``)

Building these never blocks and never touches the network. Evaluation happens
later, either in the reference engine through a ``Resolution`` or after the
Pulumi compiler lowers the tree to ``pulumi.Output`` values.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel
from pydantic_core import core_schema

from .errors import ConversionError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_UNSET = object()
_INTEGER = re.compile(r"[+-]?[0-9]+")


class Deferred(Generic[T]):
    """A value that becomes available once some remote operation finishes.

    Deferred values are immutable. ``map`` and ``combine`` return new values
    whose content is computed from their parents; if a parent fails, every
    value derived from it fails with the same exception.

    Example:
        >>> droplet_id = droplet["id"].map(to_int)
        >>> endpoint = combine(lb["ip"], Deferred.of(443), lambda ip, port: f"{ip}:{port}")
    """

    __slots__ = ("_value", "_source", "_parents", "_transform")

    def __init__(
        self,
        *,
        value: Any = _UNSET,
        source: tuple[Any, str] | None = None,
        parents: tuple["Deferred", ...] = (),
        transform: Callable[..., Any] | None = None,
    ):
        self._value = value
        self._source = source
        self._parents = parents
        self._transform = transform

    @classmethod
    def of(cls, value: T) -> "Deferred[T]":
        """Wrap an already-known value."""
        return cls(value=value)

    @classmethod
    def attribute(cls, owner: Any, key: str) -> "Deferred[Any]":
        """Reference attribute ``key`` of ``owner`` once it has been provisioned."""
        return cls(source=(owner, key))

    @staticmethod
    def all(*values: "Input[Any]") -> "Deferred[tuple]":
        """Combine any number of values into one deferred tuple."""
        parents = tuple(as_deferred(value) for value in values)
        return Deferred(parents=parents, transform=lambda *resolved: tuple(resolved))

    @property
    def is_known(self) -> bool:
        return self._value is not _UNSET

    @property
    def value(self) -> T:
        if not self.is_known:
            raise ValueError("Deferred value is not known at declaration time")
        return self._value

    @property
    def source(self) -> tuple[Any, str] | None:
        return self._source

    @property
    def parents(self) -> tuple["Deferred", ...]:
        return self._parents

    @property
    def transform(self) -> Callable[..., Any] | None:
        return self._transform

    def map(self, fn: Callable[[T], U]) -> "Deferred[U]":
        """Return a value whose content will be ``fn(content of self)``."""
        return Deferred(parents=(self,), transform=fn)

    def sources(self) -> list[Any]:
        """Owners of every attribute this value is computed from, in first-seen order."""
        return sources_of(self)

    def __repr__(self) -> str:
        if self.is_known:
            return f"Deferred.of({self._value!r})"
        if self._source is not None:
            owner, key = self._source
            return f"Deferred({getattr(owner, 'name', owner)}[{key!r}])"
        return f"Deferred(<{len(self._parents)} parent(s)>)"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.is_instance_schema(cls)


# A descriptor field that accepts either a plain value or a deferred one.
Input = Union[T, Deferred[T]]


def as_deferred(value: "Input[T]") -> Deferred[T]:
    if isinstance(value, Deferred):
        return value
    return Deferred.of(value)


def combine(a: "Input[Any]", b: "Input[Any]", fn: Callable[[Any, Any], U]) -> Deferred[U]:
    """Return a value resolved as ``fn(a, b)`` once both ``a`` and ``b`` resolve."""
    return Deferred(parents=(as_deferred(a), as_deferred(b)), transform=fn)


def to_int(value: Any) -> int:
    """Strict string to integer conversion for provider identifiers.

    Raises:
        ConversionError: If the value is not a plain base-10 integer
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _INTEGER.fullmatch(value):
        return int(value)
    raise ConversionError(f"cannot convert {value!r} to an integer")


def walk(value: Any) -> Iterator[Any]:
    """Yield ``value`` and everything nested inside it, including deferred parents."""
    yield value
    if isinstance(value, Deferred):
        if value.is_known:
            yield from walk(value.value)
        for parent in value.parents:
            yield from walk(parent)
    elif isinstance(value, BaseModel):
        for field in type(value).model_fields:
            yield from walk(getattr(value, field))
    elif isinstance(value, dict):
        for item in value.values():
            yield from walk(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from walk(item)


def sources_of(value: Any) -> list[Any]:
    """Owners referenced by any deferred value nested inside ``value``."""
    owners: list[Any] = []
    for item in walk(value):
        if isinstance(item, Deferred) and item.source is not None:
            owner = item.source[0]
            if not any(owner is seen for seen in owners):
                owners.append(owner)
    return owners


class Resolution:
    """Evaluates deferred values, sharing one outcome per value between consumers.

    ``lookup(owner, key)`` is awaited for attribute sources; everything else is
    computed from parents. Outcomes are memoized as futures, so two consumers
    of a failed value observe the very same exception object.

    Args:
        lookup: Coroutine function returning attribute ``key`` of ``owner``
    """

    def __init__(self, lookup: Callable[[Any, str], Awaitable[Any]]):
        self._lookup = lookup
        self._outcomes: dict[Deferred, asyncio.Future] = {}

    def evaluate(self, deferred: Deferred[T]) -> "asyncio.Future[T]":
        outcome = self._outcomes.get(deferred)
        if outcome is None:
            outcome = asyncio.ensure_future(self._compute(deferred))
            self._outcomes[deferred] = outcome
        return outcome

    async def _compute(self, deferred: Deferred) -> Any:
        if deferred.is_known:
            return deferred.value
        if deferred.source is not None:
            owner, key = deferred.source
            return await self._lookup(owner, key)

        values = await asyncio.gather(*(self.evaluate(parent) for parent in deferred.parents))
        return deferred.transform(*values)

    async def resolve(self, value: Any) -> Any:
        """Resolve every deferred value nested inside ``value``.

        Pydantic models come back as copies of the same type with their
        fields replaced by resolved content.
        """
        if isinstance(value, Deferred):
            return await self.evaluate(value)
        if isinstance(value, BaseModel):
            update = {
                field: await self.resolve(getattr(value, field))
                for field in type(value).model_fields
            }
            return value.model_copy(update=update)
        if isinstance(value, dict):
            return {key: await self.resolve(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)([await self.resolve(item) for item in value])
        return value
