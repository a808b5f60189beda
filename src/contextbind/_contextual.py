from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ._exceptions import ContainerError


if TYPE_CHECKING:
    from ._container import Container


_UNSET = object()


class ContextualBindingBuilder:
    """Fluent helper behind ``Container.when()``.

    Example:
      container.when(ReportService).needs(Storage).give(S3Storage)
      container.when([PhotoController, VideoController]).needs(Storage).give(LocalStorage)

    """

    def __init__(self, container: Container, concrete: Any) -> None:
        self._container = container
        self._concrete = concrete
        self._abstract: Any = _UNSET

    def needs(self, abstract: Any) -> ContextualBindingBuilder:
        """Set the abstraction the consumer(s) depend on."""
        self._abstract = abstract
        return self

    def give(self, implementation: type | str) -> None:
        """Register ``implementation`` for every consumer passed to ``when()``."""
        if self._abstract is _UNSET:
            msg = "needs() must be called before give() on a contextual binding."
            raise ContainerError(msg)

        for concrete in _wrap(self._concrete):
            self._container.add_contextual_binding(concrete, self._abstract, implementation)


def _wrap(concrete: Any) -> list[Any]:
    if isinstance(concrete, (list, tuple, set, frozenset)):
        return list(concrete)
    return [concrete]
