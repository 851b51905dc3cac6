from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bs4 import Tag

from ..errors import InvalidCredentialsError, LoginFlowError
from .hooks import HTTPSession, LoginStatus
from .options import RequestOptions
from .page import Form, Page

if TYPE_CHECKING:
    from .http import SigaaHTTP


logger = logging.getLogger(__name__)

_LOGIN_OPTIONS = RequestOptions(no_cache=True)
# The login screen is public; it stays cached across bond switches.
_LOGIN_SCREEN_OPTIONS = RequestOptions(no_cache=True, bond_independent=True)


class SigaaLogin:
    """
    Desktop login: GET the login screen, fill the login form, POST it, follow redirects, classify the result.
    """

    def __init__(self, http: "SigaaHTTP", session: HTTPSession) -> None:
        self.http = http
        self.session = session

    @property
    def selectors(self):
        return self.session.profile.selectors

    async def login(self, username: str, password: str) -> Page:
        if self.session.login_status == LoginStatus.AUTHENTICATED:
            raise LoginFlowError("This session already has a user logged in; log off first.")

        sel = self.selectors
        logger.info("Logging into %s as %s", self.session.base_url, username)
        page = await self.http.get(sel.login_path, _LOGIN_SCREEN_OPTIONS)
        page = await self.http.follow_all_redirects(page, _LOGIN_SCREEN_OPTIONS)

        form = self.login_form(page, username, password)
        result = await self.http.post(form.action, form.to_dict(), _LOGIN_OPTIONS)
        landing = await self.http.follow_all_redirects(result, _LOGIN_OPTIONS)
        return self._check_login_result(landing)

    def login_form(self, page: Page, username: str, password: str) -> Form:
        sel = self.selectors
        form = page.parse_form(sel.login_form).require(sel.username_field, sel.password_field)
        values = self._extra_fields(page)
        values[sel.username_field] = username
        values[sel.password_field] = password
        return form.with_values(**values)

    def _extra_fields(self, page: Page) -> dict[str, str]:
        return {}

    def _is_login_screen(self, page: Page) -> bool:
        body = page.body_decoded
        return any(t in body for t in self.selectors.login_screen_texts)

    def _check_login_result(self, page: Page) -> Page:
        if self._is_login_screen(page):
            body = page.body_decoded
            if any(t in body for t in self.selectors.invalid_credentials_texts):
                raise InvalidCredentialsError("SIGAA rejected the username/password.")
            raise LoginFlowError(f"Unexpected page after login attempt: {page.url} (status {page.status_code})")

        self.session.login_status = LoginStatus.AUTHENTICATED
        logger.info("Login OK (landing page %s)", page.url)
        return page


class SigaaLoginJSF(SigaaLogin):
    """
    JSF login screens only accept the POST when the clicked submit button is part of it.
    """

    def _extra_fields(self, page: Page) -> dict[str, str]:
        form_el = page.select_one(self.selectors.login_form)
        if form_el is None:
            return {}
        button = form_el.select_one("input[type='submit'][name]")
        if not isinstance(button, Tag):
            return {}
        return {str(button.get("name")): str(button.get("value") or "")}
