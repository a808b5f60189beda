"""Dependency injection container with contextual bindings.

This package resolves classes into fully constructed object graphs by reading
constructor type hints, with explicit bindings, singleton caching and
contextual overrides layered on top.

Exports:
- `Container`: binds abstractions to classes or factories and resolves them.
- `ContextualBindingBuilder`: fluent helper returned by `Container.when()`,
  e.g. ``container.when(ReportService).needs(Storage).give(S3Storage)``.
- `ContainerError`, `DependencyResolutionError`, `CircularDependencyError`,
  `EntryNotFoundError`: the error hierarchy. `EntryNotFoundError` means
  "nothing can produce this"; `DependencyResolutionError` means "found, but
  it cannot be built".
"""

from ._container import Binding, Container
from ._contextual import ContextualBindingBuilder
from ._exceptions import (
    CircularDependencyError,
    ContainerError,
    DependencyResolutionError,
    EntryNotFoundError,
)


__all__ = [
    "Binding",
    "CircularDependencyError",
    "Container",
    "ContainerError",
    "ContextualBindingBuilder",
    "DependencyResolutionError",
    "EntryNotFoundError",
]
