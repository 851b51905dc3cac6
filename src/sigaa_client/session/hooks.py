from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional
from urllib.parse import urljoin

import httpx

from ..errors import SessionExpiredError
from .bond_controller import BondController
from .options import RequestOptions
from .page import Page
from .page_cache import PageCache, cache_key

if TYPE_CHECKING:
    from ..institutions import InstitutionProfile


logger = logging.getLogger(__name__)

_SHARED_KEY_EXTENSION = "sigaa_shared_request_key"


class LoginStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class SessionHook:
    """
    Interception point around every page request. All methods are no-ops by default.

    Order per request: `after_http_options` -> `before_request` -> network exchange ->
    `after_successful_request` or `after_unsuccessful_request`.
    """

    async def after_http_options(self, request: httpx.Request, options: RequestOptions) -> httpx.Request:
        return request

    async def before_request(self, request: httpx.Request, options: RequestOptions) -> Optional[Page]:
        """
        Return a Page to complete the request without network I/O.
        """
        return None

    async def after_successful_request(
        self,
        page: Page,
        request: httpx.Request,
        options: RequestOptions,
        *,
        from_cache: bool,
    ) -> Page:
        return page

    async def after_unsuccessful_request(
        self,
        error: BaseException,
        request: httpx.Request,
        options: RequestOptions,
    ) -> None:
        return None


class CookieHook(SessionHook):
    def __init__(self, cookies: httpx.Cookies) -> None:
        self.cookies = cookies

    async def after_http_options(self, request: httpx.Request, options: RequestOptions) -> httpx.Request:
        if "cookie" not in request.headers:
            self.cookies.set_cookie_header(request)
        return request

    async def after_successful_request(self, page, request, options, *, from_cache):
        # Replaying Set-Cookie from a cached page would roll the session cookies back.
        if not from_cache:
            self.cookies.extract_cookies(httpx.Response(page.status_code, headers=page.headers, request=request))
        return page


class PageCacheHook(SessionHook):
    def __init__(self, cache: PageCache) -> None:
        self.cache = cache

    async def before_request(self, request, options):
        if options.no_cache or request.method != "GET":
            return None
        page = self.cache.get(cache_key(request.method, str(request.url), mobile=options.mobile))
        if page is not None:
            logger.debug("Page cache hit: %s %s", request.method, request.url)
        return page

    async def after_successful_request(self, page, request, options, *, from_cache):
        if from_cache or request.method != "GET" or page.status_code != 200:
            return page
        self.cache.store(
            cache_key(request.method, str(request.url), mobile=options.mobile),
            page,
            bond_independent=options.bond_independent,
        )
        return page


class SharedRequestHook(SessionHook):
    """
    Lets concurrent identical GETs flagged with `share_same_request` wait for one exchange.
    """

    def __init__(self) -> None:
        self._in_flight: dict[tuple[str, str, bool], asyncio.Future[Page]] = {}

    async def before_request(self, request, options):
        if not options.share_same_request or request.method != "GET":
            return None
        key = cache_key(request.method, str(request.url), mobile=options.mobile)
        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Waiting for in-flight request: %s", request.url)
            return await asyncio.shield(pending)

        self._in_flight[key] = asyncio.get_running_loop().create_future()
        request.extensions[_SHARED_KEY_EXTENSION] = key
        return None

    async def after_successful_request(self, page, request, options, *, from_cache):
        pending = self._pop(request)
        if pending is not None and not pending.done():
            pending.set_result(page)
        return page

    async def after_unsuccessful_request(self, error, request, options):
        pending = self._pop(request)
        if pending is None or pending.done():
            return
        if isinstance(error, asyncio.CancelledError):
            pending.cancel()
            return
        pending.set_exception(error)
        # Nobody may be waiting; mark the exception as retrieved so asyncio does not log it.
        pending.exception()

    def _pop(self, request: httpx.Request) -> Optional[asyncio.Future[Page]]:
        key = request.extensions.pop(_SHARED_KEY_EXTENSION, None)
        if key is None:
            return None
        return self._in_flight.pop(key, None)


class SessionStatusHook(SessionHook):
    def __init__(self, session: "HTTPSession") -> None:
        self.session = session

    async def after_unsuccessful_request(self, error, request, options):
        if isinstance(error, SessionExpiredError):
            logger.warning("SIGAA session expired while requesting %s; a new login is required.", request.url)
            self.session.login_status = LoginStatus.UNAUTHENTICATED


class HTTPSession:
    """
    Per-login session context: institution dialect, portal base URL, cookies, page cache, current bond
    and login status. It is handed to the HTTP layer explicitly; nothing here is global.
    """

    def __init__(
        self,
        profile: "InstitutionProfile",
        *,
        base_url: str = "",
        page_cache: Optional[PageCache] = None,
        bond_controller: Optional[BondController] = None,
        hooks: Optional[Iterable[SessionHook]] = None,
    ) -> None:
        self.profile = profile
        self.base_url = (base_url or profile.default_url).rstrip("/")
        self.page_cache = page_cache if page_cache is not None else PageCache()
        self.bond_controller = bond_controller if bond_controller is not None else BondController()
        self.cookies = httpx.Cookies()
        self.login_status = LoginStatus.UNAUTHENTICATED

        if hooks is None:
            hooks = [
                CookieHook(self.cookies),
                PageCacheHook(self.page_cache),
                SharedRequestHook(),
                SessionStatusHook(self),
            ]
        self.hooks: list[SessionHook] = list(hooks)

    def get_url(self, path: str) -> str:
        """
        Resolve a portal path (or a full URL) against the portal base URL.
        """
        return urljoin(self.base_url + "/", path)

    async def after_http_options(self, request: httpx.Request, options: RequestOptions) -> httpx.Request:
        for hook in self.hooks:
            request = await hook.after_http_options(request, options)
        return request

    async def before_request(self, request: httpx.Request, options: RequestOptions) -> Optional[Page]:
        for hook in self.hooks:
            page = await hook.before_request(request, options)
            if page is not None:
                return page
        return None

    async def after_successful_request(
        self,
        page: Page,
        request: httpx.Request,
        options: RequestOptions,
        *,
        from_cache: bool = False,
    ) -> Page:
        for hook in self.hooks:
            page = await hook.after_successful_request(page, request, options, from_cache=from_cache)
        return page

    async def after_unsuccessful_request(
        self,
        error: BaseException,
        request: httpx.Request,
        options: RequestOptions,
    ) -> None:
        for hook in self.hooks:
            await hook.after_unsuccessful_request(error, request, options)

    def close(self) -> None:
        self.cookies.clear()
        self.page_cache.clear()
        self.page_cache.set_current_bond(None)
        self.bond_controller.current_bond = None
        self.login_status = LoginStatus.UNAUTHENTICATED
