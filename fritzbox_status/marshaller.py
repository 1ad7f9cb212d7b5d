"""
Declarative Query Marshaller for Fritz!Box Status Client
========================================================

This module maps the fields of a plain Python object to query commands and
fills them with the device's answers in one batched query.

A query class declares its fields with three descriptors:

* ``QueryParameter(command, converter=None)`` - a field filled from ``command``,
  optionally run through the named converter
* ``QueryValueConverter`` / ``@query_converter`` - a named ``str -> value``
  function available to the parameters of the same object
* ``QueryPropagation(factory)`` - a nested query object whose own fields are
  queried as well, with its own converters

The descriptors register themselves on their class when the class body is
executed, so the schema is fixed at class definition time.

Example:
    >>> class Uptime:
    ...     Int = QueryValueConverter(int)
    ...     seconds = QueryParameter("logic:status/uptime_seconds", "Int")
    >>> session.query_object(Uptime()).seconds
    4711

License: MIT
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .cancellation import CancellationToken, ensure_token
from .exceptions import FritzBoxConverterError, FritzBoxProtocolError

logger = logging.getLogger("fritzbox-status")

Converter = Callable[[str], Any]

DECLARATIONS_ATTRIBUTE = "__query_declarations__"


def identity(value: str) -> str:
    return value


class _QueryDeclaration:
    """Base for descriptors that take part in the query schema."""

    member: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.member = name
        # Each class keeps its own list; bases are merged by QuerySchema
        if DECLARATIONS_ATTRIBUTE not in owner.__dict__:
            setattr(owner, DECLARATIONS_ATTRIBUTE, [])
        owner.__dict__[DECLARATIONS_ATTRIBUTE].append(self)


class QueryParameter(_QueryDeclaration):
    """
    A field whose value is queried with ``command``.

    Args:
        command: Query command, e.g. ``"sar:status/dsl_train_state"``
        converter: Name of a converter visible on the owning object; the raw
            string is stored when omitted
        default: Value returned before the field was queried
    """

    def __init__(self, command: str, converter: Optional[str] = None, default: Any = None):
        if not command:
            raise ValueError("The command must not be empty")
        self.command = command
        self.converter = converter
        self.default = default

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.__dict__.get(self.member, self.default)

    def __set__(self, obj, value) -> None:
        obj.__dict__[self.member] = value

    def __repr__(self) -> str:
        return f"QueryParameter({self.command!r}, converter={self.converter!r})"


class QueryValueConverter(_QueryDeclaration):
    """
    A named converter for the query parameters of the same object.

    The converter is looked up on the object being queried, so an instance
    attribute of the same member name replaces it for that object only.

    Args:
        func: ``str -> value`` function
        name: Name parameters refer to (default: the member name)
        method: Bind ``func`` to the owning object, for converters written as methods
    """

    def __init__(self, func: Callable, name: Optional[str] = None, method: bool = False):
        self.func = func
        self.name = name
        self.method = method

    def __set_name__(self, owner: type, name: str) -> None:
        super().__set_name__(owner, name)
        if not self.name:
            self.name = name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        if self.method:
            return self.func.__get__(obj, objtype)
        return self.func

    def __repr__(self) -> str:
        return f"QueryValueConverter({self.name!r})"


def query_converter(func: Optional[Callable] = None, *, name: Optional[str] = None):
    """
    Declare a method as query converter.

    Usable bare (``@query_converter``) or with an explicit name
    (``@query_converter(name="Int")``).
    """

    def decorate(f: Callable) -> QueryValueConverter:
        return QueryValueConverter(f, name=name, method=True)

    if func is not None:
        return decorate(func)
    return decorate


class QueryPropagation(_QueryDeclaration):
    """
    A field holding a nested query object.

    Args:
        factory: Creates the nested object on first access when nothing was assigned
    """

    def __init__(self, factory: Optional[Callable[[], Any]] = None):
        self.factory = factory

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        if self.member not in obj.__dict__ and self.factory is not None:
            obj.__dict__[self.member] = self.factory()
        return obj.__dict__.get(self.member)

    def __set__(self, obj, value) -> None:
        obj.__dict__[self.member] = value

    def __repr__(self) -> str:
        return f"QueryPropagation({self.member!r})"


@dataclass(frozen=True)
class QuerySchema:
    """The query declarations of a class, base classes first."""

    parameters: tuple[QueryParameter, ...]
    converters: tuple[QueryValueConverter, ...]
    propagations: tuple[QueryPropagation, ...]

    _cache = {}
    _cache_lock = threading.Lock()

    @classmethod
    def for_class(cls, klass: type) -> "QuerySchema":
        """
        Build (or fetch the cached) schema of ``klass``.

        A member redeclared in a subclass replaces the base declaration but
        keeps its position.
        """
        with cls._cache_lock:
            schema = cls._cache.get(klass)
        if schema is not None:
            return schema

        merged: dict[str, _QueryDeclaration] = {}
        for base in reversed(klass.__mro__):
            for declaration in base.__dict__.get(DECLARATIONS_ATTRIBUTE, ()):
                merged[declaration.member] = declaration

        declarations = list(merged.values())
        schema = cls(
            parameters=tuple(d for d in declarations if isinstance(d, QueryParameter)),
            converters=tuple(d for d in declarations if isinstance(d, QueryValueConverter)),
            propagations=tuple(d for d in declarations if isinstance(d, QueryPropagation)),
        )

        with cls._cache_lock:
            cls._cache[klass] = schema
        return schema


@dataclass
class QueryFieldDescriptor:
    """One queried field: where to write, what to ask, how to convert."""

    owner: Any
    member: str
    command: str
    converter_name: Optional[str]
    converter: Converter

    def convert(self, raw: str) -> Any:
        return self.converter(raw)


def build_converters(query_object: Any, schema: QuerySchema) -> dict[str, Converter]:
    """
    Name to converter map for one object scope.

    Raises:
        FritzBoxConverterError: If two members declare the same converter name
    """
    converters = {}
    declared_by: dict[str, str] = {}
    for declaration in schema.converters:
        if declaration.name in declared_by:
            owner = type(query_object).__name__
            raise FritzBoxConverterError(
                declaration.name,
                list(declared_by),
                details={"members": [f"{owner}.{declared_by[declaration.name]}", f"{owner}.{declaration.member}"]},
                message=f'The converter "{declaration.name}" is declared more than once.',
            )
        declared_by[declaration.name] = declaration.member

        func = getattr(query_object, declaration.member)
        if func is not None:
            converters[declaration.name] = func
    return converters


def collect_parameters(query_object: Any) -> list[QueryFieldDescriptor]:
    """
    Walk ``query_object`` and its propagation targets and describe every query field.

    Converters are resolved here, so a missing converter fails before any
    request is made. An object reachable more than once through propagation
    fields is collected only the first time.

    Raises:
        FritzBoxConverterError: If a parameter names an unknown converter
    """
    descriptors: list[QueryFieldDescriptor] = []
    _collect(query_object, descriptors, {id(query_object)})
    return descriptors


def _collect(query_object: Any, descriptors: list[QueryFieldDescriptor], visited: set[int]) -> None:
    schema = QuerySchema.for_class(type(query_object))
    converters = build_converters(query_object, schema)

    for parameter in schema.parameters:
        if parameter.converter:
            if parameter.converter not in converters:
                raise FritzBoxConverterError(
                    parameter.converter,
                    list(converters),
                    details={"member": f"{type(query_object).__name__}.{parameter.member}"},
                )
            converter = converters[parameter.converter]
        else:
            converter = identity

        descriptors.append(
            QueryFieldDescriptor(
                owner=query_object,
                member=parameter.member,
                command=parameter.command,
                converter_name=parameter.converter,
                converter=converter,
            )
        )

    for propagation in schema.propagations:
        target = getattr(query_object, propagation.member)
        if target is None:
            continue
        if id(target) in visited:
            logger.debug(f"🔁 Skipping {type(query_object).__name__}.{propagation.member}, already collected")
            continue
        visited.add(id(target))
        _collect(target, descriptors, visited)


def to_dict(query_object: Any) -> dict[str, Any]:
    """Current field values of a query object, nested objects as nested dicts."""
    return _to_dict(query_object, {id(query_object)})


def _to_dict(query_object: Any, visited: set[int]) -> dict[str, Any]:
    schema = QuerySchema.for_class(type(query_object))
    result: dict[str, Any] = {p.member: getattr(query_object, p.member) for p in schema.parameters}

    for propagation in schema.propagations:
        target = getattr(query_object, propagation.member)
        if target is None or id(target) in visited:
            result[propagation.member] = None
            continue
        visited.add(id(target))
        result[propagation.member] = _to_dict(target, visited)

    return result


class QueryMarshaller:
    """Runs the batched query for a declarative query object."""

    def __init__(self, session: Any):
        """
        Args:
            session: Anything with ``query(items, cancel, progress) -> list[str]``,
                normally a FritzBoxSession
        """
        if session is None:
            raise ValueError("session is required")
        self.session = session

    def query(
        self,
        query_object: Any,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        """
        Query every field of ``query_object`` and store the converted values.

        Fields are written only after all values were converted.

        Raises:
            FritzBoxConverterError: If a parameter names an unknown converter
            FritzBoxProtocolError: If the device returned a different number of
                values, or a value could not be converted
        """
        descriptors = collect_parameters(query_object)

        cancel = ensure_token(cancel)
        cancel.raise_if_cancelled()

        commands = [d.command for d in descriptors]
        logger.debug(f"📋 {type(query_object).__name__}: {len(commands)} field(s) to query")

        values = list(self.session.query(commands, cancel, progress))
        if len(values) != len(descriptors):
            raise FritzBoxProtocolError(
                "Invalid response", details={"expected": len(descriptors), "received": len(values)}
            )

        converted = []
        for descriptor, raw in zip(descriptors, values):
            try:
                converted.append(descriptor.convert(raw))
            except (ValueError, TypeError) as e:
                raise FritzBoxProtocolError(
                    f"Failed to convert value of {descriptor.command}",
                    details={
                        "member": descriptor.member,
                        "converter": descriptor.converter_name,
                        "value": raw[:100],
                    },
                ) from e

        for descriptor, value in zip(descriptors, converted):
            setattr(descriptor.owner, descriptor.member, value)


__all__ = [
    "QueryFieldDescriptor",
    "QueryMarshaller",
    "QueryParameter",
    "QueryPropagation",
    "QuerySchema",
    "QueryValueConverter",
    "collect_parameters",
    "identity",
    "query_converter",
    "to_dict",
]
