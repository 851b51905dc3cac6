from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestOptions:
    # Send the mobile User-Agent variant.
    mobile: bool = False
    # Skip the page cache lookup (the fresh page is still stored).
    no_cache: bool = False
    # Concurrent identical GETs with this flag wait for a single exchange.
    share_same_request: bool = False
    # Store the page so that it survives bond switches. Only the caller knows a page is public; the login
    # flow sets it for the login screen, everything else is bond-scoped unless marked.
    bond_independent: bool = False


DEFAULT_OPTIONS = RequestOptions()
