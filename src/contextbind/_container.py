from __future__ import annotations

import importlib
import inspect
import logging
import threading
import typing
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    TypeVar,
    get_type_hints,
    overload,
)

from ._contextual import ContextualBindingBuilder
from ._exceptions import (
    CircularDependencyError,
    DependencyResolutionError,
    EntryNotFoundError,
    _qualified_name,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    T = TypeVar("T")
    R = TypeVar("R")

    Token = type[T] | str


_MISSING = object()


@dataclass(frozen=True)
class Binding:
    """A registered way to produce an abstraction.

    Exactly one of ``factory`` and ``impl`` is set. Factories are called as
    ``factory(container, **arguments)``; ``impl`` is a class or dotted class
    path handed to ``Container.build``.
    """

    factory: Callable[..., object] | None
    impl: type | str | None
    singleton: bool = False


class Container:
    """DI container with contextual bindings.

    - bind abstractions to classes or factories
    - resolve with constructor injection
    - lifetimes: singleton / transient
    - contextual overrides keyed by the class being built.
    """

    def __init__(self) -> None:
        self._bindings: dict[Any, Binding] = {}
        self._instances: dict[Any, object] = {}
        self._contextual: dict[Any, dict[Any, type | str]] = {}
        self._build_stack: ContextVar[tuple[type, ...]] = ContextVar(f"build_stack_{id(self):x}", default=())
        self._path: ContextVar[tuple[tuple[str, Any], ...]] = ContextVar(f"resolution_path_{id(self):x}", default=())
        self._lock = threading.RLock()

    def bind(
        self,
        abstract: Any,
        concrete: type | str | Callable[..., object] | None = None,
        *,
        singleton: bool = False,
    ) -> None:
        """Register (or replace) the binding for ``abstract``.

        Example:
          container.bind(Mailer, SmtpMailer)
          container.bind("clock", lambda container: FrozenClock(0))
          container.bind(Repository)  # self-binding

        Nothing is validated here; a binding that cannot be built fails when
        it is resolved. Re-binding discards a cached singleton instance.
        """
        if concrete is None:
            concrete = abstract

        if inspect.isclass(concrete) or isinstance(concrete, str):
            binding = Binding(factory=None, impl=concrete, singleton=singleton)
        elif callable(concrete):
            binding = Binding(factory=concrete, impl=None, singleton=singleton)
        else:
            msg = f"Concrete for {_qualified_name(abstract)} must be a class, a class path or a factory, got {concrete!r}"
            raise TypeError(msg)

        with self._lock:
            self._bindings[abstract] = binding
            stale = self._instances.pop(abstract, _MISSING)

        if stale is not _MISSING:
            logger.debug("Re-binding %s discarded its cached instance", _qualified_name(abstract))

    def singleton(self, abstract: Any, concrete: type | str | Callable[..., object] | None = None) -> None:
        """Register a binding whose first resolved value is cached and reused."""
        self.bind(abstract, concrete, singleton=True)

    def instance(self, abstract: Any, instance: T) -> T:
        """Register a pre-built object; it is returned for every resolution of ``abstract``."""
        with self._lock:
            self._instances[abstract] = instance
        return instance

    def when(self, concrete: Any) -> ContextualBindingBuilder:
        """Start a contextual binding for one consumer class or a collection of them."""
        return ContextualBindingBuilder(self, concrete)

    def add_contextual_binding(self, concrete: Any, abstract: Any, implementation: type | str) -> None:
        with self._lock:
            self._contextual.setdefault(concrete, {})[abstract] = implementation

    def has(self, abstract: Any) -> bool:
        """Return whether ``abstract`` has a cached instance or an explicit binding.

        Classes that ``make`` could build by autowiring are not reported:
        this answers "is something registered", not "would resolution succeed".
        """
        with self._lock:
            return abstract in self._instances or abstract in self._bindings

    @overload
    def get(self, abstract: type[T]) -> T: ...

    @overload
    def get(self, abstract: str) -> Any: ...

    def get(self, abstract: Token[T]) -> Any:
        """Resolve ``abstract``, reporting unexpected failures as ``EntryNotFoundError``.

        ``DependencyResolutionError`` (the entry exists but cannot be built)
        propagates unchanged.
        """
        try:
            return self.make(abstract)
        except (DependencyResolutionError, EntryNotFoundError):
            raise
        except Exception as exc:
            msg = f"Entry not found: [{_qualified_name(abstract)}]"
            raise EntryNotFoundError(msg) from exc

    @overload
    def make(self, abstract: type[T], /, **arguments: Any) -> T: ...

    @overload
    def make(self, abstract: str, /, **arguments: Any) -> Any: ...

    def make(self, abstract: Token[T], /, **arguments: Any) -> Any:
        """Resolve ``abstract`` to an instance.

        Resolution precedence:
        1. contextual binding for the class currently being built
        2. cached instance
        3. explicit binding
        4. autowiring ``abstract`` as a concrete class.
        ``arguments`` supply constructor parameters by name.
        """
        with self._lock:
            return self._resolve(abstract, arguments)

    @overload
    def build(self, concrete: type[T], /, **arguments: Any) -> T: ...

    @overload
    def build(self, concrete: str, /, **arguments: Any) -> Any: ...

    def build(self, concrete: Token[T], /, **arguments: Any) -> Any:
        """Construct ``concrete`` directly, bypassing its bindings."""
        with self._lock:
            return self._build(concrete, arguments)

    def call(self, func: Callable[..., R], /, **arguments: Any) -> R:
        """Call a function, bound method or callable object with injected parameters.

        A class is constructed like ``build``.
        """
        with self._lock:
            if inspect.isclass(func):
                return self._build(func, arguments)

            sig = inspect.signature(func)
            return Constructor(self).invoke(func, sig, _get_callable_type_hints(func), arguments)

    @property
    def build_stack(self) -> tuple[type, ...]:
        """Classes under construction in the current thread or task, outermost first."""
        return self._build_stack.get()

    def resolve_param(self, annotation: type) -> Any:
        """Resolve a class-annotated parameter; failures propagate unchanged."""
        return self._resolve(annotation, {})

    def _resolve(self, abstract: Any, arguments: Mapping[str, Any]) -> Any:
        implementation = self._find_contextual_binding(abstract)
        if implementation is not None:
            return self._build(implementation, {})

        if abstract in self._instances:
            return self._instances[abstract]

        binding = self._bindings.get(abstract)
        if binding is not None:
            return self._resolve_binding(abstract, binding, arguments)

        return self._build(abstract, arguments)

    def _resolve_binding(self, abstract: Any, binding: Binding, arguments: Mapping[str, Any]) -> Any:
        if binding.singleton and abstract in self._instances:
            return self._instances[abstract]

        with self._entering("binding", abstract):
            instance = self._invoke(binding, arguments)

        if not binding.singleton:
            return instance

        self._instances[abstract] = instance
        logger.debug("Cached singleton %s", _qualified_name(abstract))
        return instance

    def _invoke(self, binding: Binding, arguments: Mapping[str, Any]) -> Any:
        if binding.factory is not None:
            return binding.factory(self, **arguments)
        return self._build(binding.impl, arguments)

    def _find_contextual_binding(self, abstract: Any) -> type | str | None:
        stack = self._build_stack.get()
        if not stack:
            return None

        consumer = stack[-1]
        for key in (consumer, _qualified_name(consumer)):
            implementation = self._contextual.get(key, {}).get(abstract)
            if implementation is not None:
                logger.debug(
                    "Contextual binding: %s gets %s for %s",
                    _qualified_name(consumer),
                    _qualified_name(implementation),
                    _qualified_name(abstract),
                )
                return implementation
        return None

    def _build(self, concrete: Any, arguments: Mapping[str, Any]) -> Any:
        cls = _locate(concrete)

        with self._building(cls):
            if not _is_instantiable(cls):
                msg = f"Target [{_qualified_name(cls)}] is not instantiable"
                parents = self._build_stack.get()[:-1]
                if parents:
                    msg += f" while building [{', '.join(_qualified_name(p) for p in parents)}]"
                raise DependencyResolutionError(msg + ".")

            return Constructor(self).construct(cls, arguments)

    @contextmanager
    def _building(self, cls: type) -> Iterator[None]:
        with self._entering("build", cls):
            token = self._build_stack.set((*self._build_stack.get(), cls))
            try:
                yield
            finally:
                self._build_stack.reset(token)

    @contextmanager
    def _entering(self, kind: str, target: Any) -> Iterator[None]:
        # bindings and builds share one path
        path = self._path.get()
        frame = (kind, target)
        if frame in path:
            chain = (*path[path.index(frame) :], frame)
            raise CircularDependencyError(tuple(item for _, item in chain))

        token = self._path.set((*path, frame))
        try:
            yield
        finally:
            self._path.reset(token)


class Constructor:
    def __init__(self, resolver: Container) -> None:
        self._resolver = resolver

    def construct(self, cls: type[T], arguments: Mapping[str, Any]) -> T:
        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError):
            # Extension types without signature metadata
            try:
                return cls()
            except TypeError as e:
                msg = f"Target [{_qualified_name(cls)}] cannot be constructed without arguments: {e}"
                raise DependencyResolutionError(msg) from e

        if not sig.parameters:
            return cls()

        return self.invoke(cls, sig, _get_init_type_hints(cls), arguments)

    def invoke(
        self,
        func: Callable[..., R],
        sig: inspect.Signature,
        hints: dict[str, Any],
        arguments: Mapping[str, Any],
    ) -> R:
        values = self.get_dependencies(func, sig, hints, arguments)
        args, kwargs = self._materialize_call(func, sig, values)
        return func(*args, **kwargs)

    def get_dependencies(
        self,
        owner: Any,
        sig: inspect.Signature,
        hints: dict[str, Any],
        arguments: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Auto-resolve class-annotated parameters, then layer ``arguments`` on top.

        Parameters named in ``arguments`` are not auto-resolved at all.
        Builtin-typed and unannotated parameters come from ``arguments`` or
        their defaults. Class-annotated parameters are resolved even when they
        declare a default, and resolution failures propagate.
        """
        resolved: dict[str, Any] = {}

        for name, p in sig.parameters.items():
            if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD) or name in arguments:
                continue

            annotation = hints.get(name, p.annotation)
            if _is_class_dependency(annotation):
                resolved[name] = self._resolver.resolve_param(annotation)
            elif p.default is p.empty:
                ann_repr = (
                    getattr(annotation, "__name__", repr(annotation))
                    if annotation is not p.empty
                    else "no-annotation"
                )
                msg = (
                    f"Unresolvable dependency resolving parameter '{name}' of {_qualified_name(owner)} "
                    f"(annotation: {ann_repr}). Pass it as an argument or give it a default."
                )
                raise DependencyResolutionError(msg)

        return {**resolved, **arguments}

    def _materialize_call(
        self,
        func: Any,
        sig: inspect.Signature,
        values: Mapping[str, Any],
    ) -> tuple[list[Any], dict[str, Any]]:
        remaining = dict(values)
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        accepts_var_keyword = False
        positional_gap = False

        for name, p in sig.parameters.items():
            if p.kind is p.POSITIONAL_ONLY:
                # once one is left to its default, later ones can't be passed positionally
                if name in remaining and not positional_gap:
                    args.append(remaining.pop(name))
                else:
                    positional_gap = True
            elif p.kind is p.VAR_POSITIONAL:
                captured = tuple(remaining.pop(name, ()))
                if not positional_gap:
                    args.extend(captured)
            elif p.kind is p.VAR_KEYWORD:
                accepts_var_keyword = True
            elif name in remaining:
                kwargs[name] = remaining.pop(name)

        if remaining:
            if not accepts_var_keyword:
                msg = f"Arguments {sorted(remaining)} don't match {_qualified_name(func)} signature {sig}"
                raise TypeError(msg)
            kwargs.update(remaining)

        return args, kwargs


def _locate(concrete: Any) -> type:
    """Return the class for a class or a ``"pkg.module.Class"`` / ``"pkg.module:Outer.Inner"`` path."""
    if inspect.isclass(concrete):
        return concrete

    if isinstance(concrete, str):
        module_name, sep, qualname = concrete.partition(":")
        if not sep:
            module_name, _, qualname = concrete.rpartition(".")

        if module_name and qualname:
            try:
                target: Any = importlib.import_module(module_name)
                for attr in qualname.split("."):
                    target = getattr(target, attr)
            except (ImportError, AttributeError) as e:
                msg = f"Target class [{concrete}] does not exist."
                raise EntryNotFoundError(msg) from e

            if inspect.isclass(target):
                return target

            msg = f"Target [{concrete}] is not a class."
            raise EntryNotFoundError(msg)

    msg = f"Target class [{concrete!r}] does not exist."
    raise EntryNotFoundError(msg)


def _is_class_dependency(annotation: Any) -> bool:
    return inspect.isclass(annotation) and getattr(annotation, "__module__", "") != "builtins"


def _is_instantiable(cls: type) -> bool:
    return not _is_protocol(cls) and not inspect.isabstract(cls)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: type) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: type) -> bool:
        """Detect protocol classes; concrete classes deriving from a protocol are not protocols."""
        return inspect.isclass(tp) and tp is not typing.Protocol and bool(getattr(tp, "_is_protocol", False))


def _get_init_type_hints(cls: type) -> dict[str, Any]:
    try:
        init = inspect.getattr_static(cls, "__init__")
        hints = get_type_hints(init)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        hints = {}

    return hints


def _get_callable_type_hints(func: Callable[..., Any]) -> dict[str, Any]:
    target = func if inspect.isfunction(func) or inspect.ismethod(func) else type(func).__call__
    try:
        hints = get_type_hints(target)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %r type hints", exc.name, func)
        hints = {}

    return hints
