from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from email.message import Message
from pathlib import Path
from typing import AsyncIterator, Callable, Mapping, Optional, Union
from urllib.parse import quote, unquote, urlsplit

import httpx

from .. import __version__
from ..errors import BadStatusError, DownloadExpiredError, SigaaError
from .hooks import HTTPSession
from .options import DEFAULT_OPTIONS, RequestOptions
from .page import Page


logger = logging.getLogger(__name__)

# (total_size, downloaded_size); total_size is None when the server sends no Content-Length.
ProgressCallback = Callable[[Optional[int], int], None]

MAX_REDIRECTS = 20


def encode_rfc3986(value: str, encoding: str = "utf-8") -> str:
    """
    Percent-encode everything outside the RFC 3986 unreserved set (A-Z a-z 0-9 - _ . ~).

    Spaces become %20 (never "+"). Characters the form charset cannot represent are sent the way
    browsers do for legacy-charset pages: as HTML numeric character references.
    """
    return quote(value, safe="", encoding=encoding, errors="xmlcharrefreplace")


def encode_form(fields: Mapping[str, str], encoding: str = "utf-8") -> str:
    return "&".join(f"{encode_rfc3986(str(k), encoding)}={encode_rfc3986(str(v), encoding)}" for k, v in fields.items())


def user_agent(*, mobile: bool = False) -> str:
    platform = "Android 7.0; " if mobile else ""
    return f"SIGAA-Client/{__version__} ({platform}Python httpx/{httpx.__version__})"


def filename_from_headers(headers: httpx.Headers, url: str) -> str:
    """
    File name from Content-Disposition (RFC 2231/5987 `filename*` preferred), else the URL path.
    """
    name = ""
    disposition = headers.get("content-disposition")
    if disposition:
        msg = Message()
        msg["content-disposition"] = disposition
        name = msg.get_filename() or ""
    if not name:
        name = unquote(urlsplit(url).path.rsplit("/", 1)[-1])
    # Never let a server-provided name escape the destination directory.
    name = Path(name.replace("\\", "/")).name.strip()
    return name or "download"


@dataclass(frozen=True)
class FileResponse:
    url: str
    status_code: int
    headers: httpx.Headers
    content: bytes

    @property
    def filename(self) -> str:
        return filename_from_headers(self.headers, self.url)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")


@dataclass(frozen=True)
class MultipartFormData:
    fields: Mapping[str, str] = field(default_factory=dict)
    # field name -> (file name, content, content type)
    files: Mapping[str, tuple[str, bytes, str]] = field(default_factory=dict)


class SigaaHTTP:
    """
    Stateless transport: builds requests, runs them through the session hooks and turns responses into
    the institution's Page class. Cookies, cache and bond state live in the HTTPSession.
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
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport(retries=0)
        self._timeout = httpx.Timeout(timeout_seconds)
        self.form_encoding = form_encoding
        self.mobile = mobile

    async def aclose(self) -> None:
        await self._transport.aclose()

    def _headers(self, options: RequestOptions, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        headers = {
            "User-Agent": user_agent(mobile=options.mobile or self.mobile),
            "Accept-Encoding": "gzip, deflate",
            "Accept": "*/*",
            "Cache-Control": "max-age=0",
            "DNT": "1",
        }
        if extra:
            headers.update(extra)
        return headers

    def _build_request(self, method: str, url: str, headers: Mapping[str, str], **kwargs) -> httpx.Request:
        return httpx.Request(method, url, headers=headers, extensions={"timeout": self._timeout.as_dict()}, **kwargs)

    async def get(self, path: str, options: Optional[RequestOptions] = None) -> Page:
        options = options or DEFAULT_OPTIONS
        request = self._build_request("GET", self.session.get_url(path), self._headers(options))
        return await self._request_page(request, options)

    async def post(self, path: str, fields: Mapping[str, str], options: Optional[RequestOptions] = None) -> Page:
        options = options or DEFAULT_OPTIONS
        body = encode_form(fields, self.form_encoding).encode("ascii")
        headers = self._headers(options, {"Content-Type": "application/x-www-form-urlencoded"})
        request = self._build_request("POST", self.session.get_url(path), headers, content=body)
        return await self._request_page(request, options, request_body=body)

    async def post_multipart(
        self,
        path: str,
        form_data: MultipartFormData,
        options: Optional[RequestOptions] = None,
    ) -> Page:
        options = options or DEFAULT_OPTIONS
        request = self._build_request(
            "POST",
            self.session.get_url(path),
            self._headers(options),
            data=dict(form_data.fields),
            files={name: (fname, content, ctype) for name, (fname, content, ctype) in form_data.files.items()},
        )
        body = request.read()
        return await self._request_page(request, options, request_body=body)

    async def follow_all_redirects(
        self,
        page: Page,
        options: Optional[RequestOptions] = None,
        *,
        max_redirects: int = MAX_REDIRECTS,
    ) -> Page:
        """
        GET each `Location` until a page without one is reached. Every hop is a full request (hooks included).
        """
        hops = 0
        while page.location:
            if hops >= max_redirects:
                raise SigaaError(f"Too many redirects starting from {page.url}")
            page = await self.get(page.location, options)
            hops += 1
        return page

    async def _request_page(
        self,
        request: httpx.Request,
        options: RequestOptions,
        *,
        request_body: Optional[bytes] = None,
    ) -> Page:
        try:
            request = await self.session.after_http_options(request, options)
            cached = await self.session.before_request(request, options)
            if cached is not None:
                return await self.session.after_successful_request(cached, request, options, from_cache=True)

            response = await self._send(request)
            logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
            page = self.session.profile.page_class.from_response(response, request_body=request_body)
            return await self.session.after_successful_request(page, request, options, from_cache=False)
        except BaseException as e:
            # Cancellation included: shared in-flight waiters must be released.
            await self.session.after_unsuccessful_request(e, request, options)
            raise

    async def _send(self, request: httpx.Request) -> httpx.Response:
        response = await self._transport.handle_async_request(request)
        response.request = request
        try:
            await response.aread()
        finally:
            await response.aclose()
        return response

    @contextlib.asynccontextmanager
    async def _open_file(self, request: httpx.Request) -> AsyncIterator[httpx.Response]:
        options = RequestOptions(no_cache=True)
        try:
            request = await self.session.after_http_options(request, options)
            response = await self._transport.handle_async_request(request)
            response.request = request
            try:
                logger.debug("%s %s -> %s (file)", request.method, request.url, response.status_code)
                if response.status_code == 302:
                    raise DownloadExpiredError(str(request.url))
                if response.status_code != 200:
                    raise BadStatusError(str(request.url), response.status_code)
                yield response
            finally:
                await response.aclose()
        except BaseException as e:
            await self.session.after_unsuccessful_request(e, request, options)
            raise

    def _file_get_request(self, path: str) -> httpx.Request:
        return self._build_request("GET", self.session.get_url(path), self._headers(DEFAULT_OPTIONS))

    def _file_post_request(self, path: str, fields: Mapping[str, str]) -> httpx.Request:
        body = encode_form(fields, self.form_encoding).encode("ascii")
        headers = self._headers(DEFAULT_OPTIONS, {"Content-Type": "application/x-www-form-urlencoded"})
        return self._build_request("POST", self.session.get_url(path), headers, content=body)

    async def _read_file(self, request: httpx.Request, progress: Optional[ProgressCallback]) -> FileResponse:
        async with self._open_file(request) as response:
            total = _content_length(response)
            chunks: list[bytes] = []
            downloaded = 0
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                downloaded += len(chunk)
                if progress is not None:
                    progress(total, downloaded)
            return FileResponse(
                url=str(request.url),
                status_code=response.status_code,
                headers=response.headers,
                content=b"".join(chunks),
            )

    async def _save_file(
        self,
        request: httpx.Request,
        base_path: Union[str, Path],
        progress: Optional[ProgressCallback],
    ) -> Path:
        async with self._open_file(request) as response:
            dest = Path(base_path)
            if dest.is_dir():
                dest = dest / filename_from_headers(response.headers, str(request.url))
            dest.parent.mkdir(parents=True, exist_ok=True)
            tmp = dest.with_name(dest.name + ".part")

            total = _content_length(response)
            downloaded = 0
            try:
                with tmp.open("wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
                        downloaded += len(chunk)
                        if progress is not None:
                            progress(total, downloaded)
                tmp.replace(dest)
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise

        logger.info("Downloaded %s (%d bytes)", dest, downloaded)
        return dest

    async def file_get(self, path: str, *, progress: Optional[ProgressCallback] = None) -> FileResponse:
        return await self._read_file(self._file_get_request(path), progress)

    async def file_post(
        self,
        path: str,
        fields: Mapping[str, str],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> FileResponse:
        return await self._read_file(self._file_post_request(path, fields), progress)

    async def download_file_by_get(
        self,
        path: str,
        base_path: Union[str, Path],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        return await self._save_file(self._file_get_request(path), base_path, progress)

    async def download_file_by_post(
        self,
        path: str,
        fields: Mapping[str, str],
        base_path: Union[str, Path],
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        return await self._save_file(self._file_post_request(path, fields), base_path, progress)


def _content_length(response: httpx.Response) -> Optional[int]:
    raw = (response.headers.get("content-length") or "").strip()
    return int(raw) if raw.isdigit() else None
