from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .page import Page


logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, bool]


def normalize_url(url: str) -> str:
    """
    Canonical form used for cache keys: lowercase scheme/host, sorted query, no fragment.
    """
    parts = urlsplit(url)
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", query, ""))


def cache_key(method: str, url: str, *, mobile: bool = False) -> CacheKey:
    return (method.upper(), normalize_url(url), bool(mobile))


@dataclass(frozen=True)
class CacheEntry:
    page: Page
    bond: Optional[str]
    stored_at: float
    # Public pages and login screens do not depend on the bond and survive bond switches.
    bond_independent: bool = False


class PageCache:
    """
    In-memory page store scoped by the session's current bond.

    An entry is only served while it is fresh and was stored under the bond that is current now
    (or was stored as bond-independent).
    """

    def __init__(self, *, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._current_bond: Optional[str] = None

    @property
    def current_bond(self) -> Optional[str]:
        return self._current_bond

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Optional[Page]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        if not entry.bond_independent and entry.bond != self._current_bond:
            return None
        return entry.page

    def store(self, key: CacheKey, page: Page, *, bond_independent: bool = False) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = CacheEntry(
            page=page,
            bond=self._current_bond,
            stored_at=self._clock(),
            bond_independent=bool(bond_independent),
        )

    def set_current_bond(self, bond: Optional[str]) -> None:
        if bond == self._current_bond:
            return
        doomed = [k for k, e in self._entries.items() if not e.bond_independent and e.bond != bond]
        for k in doomed:
            self._entries.pop(k, None)
        logger.debug("Page cache rescoped to bond=%s (evicted %d entries)", bond, len(doomed))
        self._current_bond = bond

    def clear(self) -> None:
        self._entries.clear()
