from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Union

import httpx

from .account import Account
from .institutions import Institution, InstitutionProfile, get_profile
from .session.bond import HTTPFactory
from .session.hooks import HTTPSession, LoginStatus
from .session.page_cache import PageCache

if TYPE_CHECKING:
    from .config import AppConfig


logger = logging.getLogger(__name__)


class Sigaa:
    """
    Entry point for one portal login.

        async with Sigaa("IFSC") as sigaa:
            account = await sigaa.login(username, password)
            for bond in await account.get_active_bonds():
                page = await bond.get_page("/sigaa/portais/discente/discente.jsf")
    """

    def __init__(
        self,
        institution: Union[str, Institution],
        url: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout_seconds: float = 30.0,
        mobile: bool = False,
        cache_ttl_seconds: float = 300.0,
        form_encoding: str = "iso-8859-1",
    ) -> None:
        self.profile: InstitutionProfile = get_profile(institution)
        self.session = HTTPSession(
            self.profile,
            base_url=url or self.profile.default_url,
            page_cache=PageCache(ttl_seconds=cache_ttl_seconds),
        )
        self.factory = HTTPFactory(
            self.session,
            transport,
            timeout_seconds=timeout_seconds,
            form_encoding=form_encoding,
            mobile=mobile,
        )
        self.http = self.factory.create_http()
        self._login = self.profile.login_class(self.http, self.session)

    @classmethod
    def from_config(cls, cfg: "AppConfig", *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "Sigaa":
        return cls(
            cfg.portal.institution,
            cfg.portal.url,
            transport=transport,
            timeout_seconds=cfg.http.timeout_seconds,
            mobile=cfg.http.mobile,
            cache_ttl_seconds=cfg.http.cache_ttl_seconds,
            form_encoding=cfg.http.form_encoding,
        )

    def __repr__(self) -> str:
        return f"<Sigaa {self.profile.institution.value} {self.session.base_url}>"

    async def __aenter__(self) -> "Sigaa":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def is_logged_in(self) -> bool:
        return self.session.login_status == LoginStatus.AUTHENTICATED

    async def login(self, username: str, password: str) -> Account:
        landing = await self._login.login(username, password)
        return Account(self.factory, self.session, landing)

    async def close(self) -> None:
        self.session.close()
        await self.factory.aclose()
