from __future__ import annotations

from typing import Any


class ContainerError(RuntimeError):
    """Base class for every error raised by the container."""


class DependencyResolutionError(ContainerError):
    """The target is known but cannot be constructed.

    Raised for non-instantiable targets (protocols, abstract classes), for
    constructor parameters that nothing can satisfy, and when a nested
    dependency fails to build.
    """


class CircularDependencyError(DependencyResolutionError):
    def __init__(self, chain: tuple[Any, ...]) -> None:
        self.chain = chain
        path = " -> ".join(_qualified_name(item) for item in chain)
        super().__init__(f"Circular dependency detected: {path}")


class EntryNotFoundError(ContainerError, LookupError):
    """No binding, instance or importable class exists for the identifier."""


def _qualified_name(token: Any) -> str:
    if isinstance(token, type):
        return f"{token.__module__}.{token.__qualname__}"
    return str(token)
