from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

import httpx

from ..errors import BondSwitchFailedError
from .hooks import HTTPSession
from .http import FileResponse, MultipartFormData, ProgressCallback, SigaaHTTP
from .options import RequestOptions
from .page import Page


logger = logging.getLogger(__name__)

_SWITCH_OPTIONS = RequestOptions(no_cache=True)


class SigaaHTTPWithBond:
    """
    Same operations as SigaaHTTP, but every call first makes sure the portal session is switched to
    `bond_switch_url`. A None switch URL means the caller is not tied to a bond and no check is made.

    Two concurrent calls that both see a stale bond will both switch; switching is idempotent on the
    portal side, so the redundant exchange is accepted instead of serializing callers.
    """

    def __init__(self, http: SigaaHTTP, session: HTTPSession, bond_switch_url: Optional[str]) -> None:
        self.http = http
        self.session = session
        self.bond_switch_url = session.get_url(bond_switch_url) if bond_switch_url else None

    async def _ensure_bond(self) -> None:
        if self.bond_switch_url is None:
            return
        if self.bond_switch_url == self.session.bond_controller.current_bond:
            return
        await self._switch_bond(self.bond_switch_url)

    async def _switch_bond(self, bond_switch_url: str) -> None:
        logger.info(
            "Switching bond %s -> %s",
            self.session.bond_controller.current_bond or "(none)",
            bond_switch_url,
        )
        page = await self.http.get(bond_switch_url, _SWITCH_OPTIONS)
        final = await self.http.follow_all_redirects(page, _SWITCH_OPTIONS)
        if final.status_code != 200:
            raise BondSwitchFailedError(bond_switch_url, final.status_code)

        self.session.bond_controller.current_bond = bond_switch_url
        self.session.page_cache.set_current_bond(bond_switch_url)

    async def get(self, path: str, options: Optional[RequestOptions] = None) -> Page:
        await self._ensure_bond()
        return await self.http.get(path, options)

    async def post(self, path: str, fields: Mapping[str, str], options: Optional[RequestOptions] = None) -> Page:
        await self._ensure_bond()
        return await self.http.post(path, fields, options)

    async def post_multipart(
        self,
        path: str,
        form_data: MultipartFormData,
        options: Optional[RequestOptions] = None,
    ) -> Page:
        await self._ensure_bond()
        return await self.http.post_multipart(path, form_data, options)

    async def follow_all_redirects(self, page: Page, options: Optional[RequestOptions] = None) -> Page:
        await self._ensure_bond()
        return await self.http.follow_all_redirects(page, options)

    async def file_get(self, path: str, *, progress: Optional[ProgressCallback] = None) -> FileResponse:
        await self._ensure_bond()
        return await self.http.file_get(path, progress=progress)

    async def file_post(
        self,
        path: str,
        fields: Mapping[str, str],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> FileResponse:
        await self._ensure_bond()
        return await self.http.file_post(path, fields, progress=progress)

    async def download_file_by_get(
        self,
        path: str,
        base_path: Union[str, Path],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        await self._ensure_bond()
        return await self.http.download_file_by_get(path, base_path, progress=progress)

    async def download_file_by_post(
        self,
        path: str,
        fields: Mapping[str, str],
        base_path: Union[str, Path],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        await self._ensure_bond()
        return await self.http.download_file_by_post(path, fields, base_path, progress=progress)


class HTTPFactory:
    """
    Builds the HTTP objects of one session. All of them share the session context and one transport.
    """

    def __init__(
        self,
        session: HTTPSession,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        *,
        timeout_seconds: float = 30.0,
        form_encoding: str = "iso-8859-1",
        mobile: bool = False,
    ) -> None:
        self.session = session
        self._http = SigaaHTTP(
            session,
            transport,
            timeout_seconds=timeout_seconds,
            form_encoding=form_encoding,
            mobile=mobile,
        )

    def create_http(self) -> SigaaHTTP:
        return self._http

    def create_http_with_bond(self, bond_switch_url: Optional[str]) -> SigaaHTTPWithBond:
        return SigaaHTTPWithBond(self._http, self.session, bond_switch_url)

    async def aclose(self) -> None:
        await self._http.aclose()
