from __future__ import annotations

from typing import Optional


class BondController:
    """
    Holds the bond (enrollment context) the portal session is currently switched to.

    The value is the bond-switch URL that was last followed successfully, or None before any switch.
    Only the bond-aware HTTP layer and the session teardown assign it.
    """

    def __init__(self) -> None:
        self.current_bond: Optional[str] = None

    def __repr__(self) -> str:
        return f"<BondController current_bond={self.current_bond!r}>"
