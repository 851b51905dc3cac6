from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Iterable, Iterator, Optional, TypeVar

from ..errors import InstanceClosedError, InstanceNotUpdatableError


logger = logging.getLogger(__name__)

# Called with the resource's natural id; must re-fetch fresh data and feed it back through `update`.
UpdaterCallback = Callable[[str], Awaitable[None]]


class UpdatableResource(ABC):
    """
    A portal entity whose backing data can be refreshed in place and that becomes unusable once closed.

    Public accessors call `_check_if_closed()` first so a stale reference fails fast instead of returning
    stale data.
    """

    def __init__(self, instance_identifier: str, updater: Optional[UpdaterCallback] = None) -> None:
        self.instance_identifier = instance_identifier
        self._updater = updater
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _check_if_closed(self) -> None:
        if self._closed:
            raise InstanceClosedError(self.instance_identifier)

    def _reopen(self) -> None:
        self._closed = False

    async def update_instance(self) -> None:
        """
        Ask the owning collection to re-scrape this resource.
        """
        if self._updater is None:
            raise InstanceNotUpdatableError(f"Instance {self.instance_identifier!r} has no updater")
        await self._updater(self.instance_identifier)

    @abstractmethod
    def update(self, data: Any) -> None:
        """
        Replace the backing data atomically and reopen the instance.
        """


T = TypeVar("T", bound=UpdatableResource)
D = TypeVar("D")


class ResourceIdentityCache(Generic[T]):
    """
    Natural id -> instance. Materializing the same id twice yields the same object, refreshed with the
    newest data, so every holder of a reference observes the refresh.
    """

    def __init__(self) -> None:
        self._instances: dict[str, T] = {}

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._instances

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._instances.values()))

    def ids(self) -> list[str]:
        return list(self._instances.keys())

    def get(self, identifier: str) -> Optional[T]:
        return self._instances.get(identifier)

    def get_or_update(self, identifier: str, data: D, factory: Callable[[D], T]) -> T:
        instance = self._instances.get(identifier)
        if instance is not None:
            instance.update(data)
            return instance
        instance = factory(data)
        self._instances[identifier] = instance
        return instance

    def discard(self, identifier: str) -> Optional[T]:
        return self._instances.pop(identifier, None)


class ResourceCollection(Generic[T, D]):
    """
    Owner of one kind of resource. `sync` reconciles the cached instances with freshly scraped data:
    present items are created or updated, missing ones are closed.
    """

    def __init__(self, *, id_of: Callable[[D], str], factory: Callable[[D], T]) -> None:
        self._id_of = id_of
        self._factory = factory
        self.instances: ResourceIdentityCache[T] = ResourceIdentityCache()

    def materialize(self, data: D) -> T:
        return self.instances.get_or_update(self._id_of(data), data, self._factory)

    def sync(self, items: Iterable[D]) -> list[T]:
        out: list[T] = []
        seen: set[str] = set()
        for data in items:
            seen.add(self._id_of(data))
            out.append(self.materialize(data))

        for identifier in self.instances.ids():
            if identifier in seen:
                continue
            instance = self.instances.discard(identifier)
            if instance is not None:
                logger.debug("Closing %s %s: no longer present upstream", type(instance).__name__, identifier)
                instance.close()
        return out
