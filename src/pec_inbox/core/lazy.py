"""Per-instance lazy values with an explicit resolution state."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CacheState(Enum):
    """Lifecycle of a :class:`LazyValue`."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    RESOLVED_ABSENT = "resolved_absent"


class LazyValue(Generic[T]):
    """Compute a value on first access and keep it for the owner's lifetime.

    A factory returning ``None`` moves the cache to
    :attr:`CacheState.RESOLVED_ABSENT`. A factory that raises leaves the
    cache unresolved so a later access retries.
    """

    def __init__(self, factory: Callable[[], T | None], *, label: str = "value") -> None:
        """Store the factory without invoking it."""
        self._factory = factory
        self._label = label
        self._value: T | None = None
        self._state = CacheState.UNRESOLVED

    @property
    def state(self) -> CacheState:
        """Return the current resolution state."""
        return self._state

    @property
    def resolved(self) -> bool:
        """Return ``True`` once the factory has completed successfully."""
        return self._state is not CacheState.UNRESOLVED

    def get(self) -> T | None:
        """Return the cached value, computing it on first access."""
        if self._state is CacheState.UNRESOLVED:
            value = self._factory()
            self._value = value
            self._state = (
                CacheState.RESOLVED_ABSENT if value is None else CacheState.RESOLVED
            )
            LOGGER.debug("Resolved %s (%s)", self._label, self._state.value)
        return self._value


__all__ = ["CacheState", "LazyValue"]
