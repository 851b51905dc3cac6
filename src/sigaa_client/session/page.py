from __future__ import annotations

import html as _html
import re
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from ..errors import InvalidFormError, SessionExpiredError


EXPIRED_SESSION_PATH = "/sigaa/expirada.jsp"
VIEW_STATE_FIELD = "javax.faces.ViewState"

_NOT_COMPUTED = object()


@dataclass(frozen=True)
class Form:
    """
    An HTML form ready to be replayed: the URL to submit to and its ordered field map.
    """

    action: str
    post_values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Copy so later edits by the parser (or the caller) cannot leak into the form.
        object.__setattr__(self, "post_values", MappingProxyType(dict(self.post_values)))

    def require(self, *names: str) -> "Form":
        missing = [n for n in names if n not in self.post_values]
        if missing:
            raise InvalidFormError(
                f"Form {self.action} is missing required fields: {', '.join(missing)}",
                missing_fields=missing,
            )
        return self

    def with_values(self, **changes: str) -> "Form":
        values = dict(self.post_values)
        values.update(changes)
        return Form(action=self.action, post_values=values)

    def to_dict(self) -> dict[str, str]:
        return dict(self.post_values)


class Page:
    """
    One HTTP response from the portal.

    Everything except the lazily computed fields (`body_decoded`, `soup`, `view_state`) is fixed at
    construction. A refreshed page is a new `Page`; this one is never edited.
    """

    def __init__(
        self,
        *,
        method: str,
        url: Union[str, httpx.URL],
        status_code: int,
        headers: Union[Mapping[str, str], httpx.Headers],
        body: str,
        request_headers: Optional[Union[Mapping[str, str], httpx.Headers]] = None,
        request_body: Optional[bytes] = None,
    ) -> None:
        self.method = method.upper()
        self.url = str(url)
        self.status_code = int(status_code)
        self.headers = httpx.Headers(headers)
        self.request_headers = httpx.Headers(request_headers or {})
        self.request_body = request_body
        self.body = body
        self.created_at = time.time()

        # Must run before anything else looks at the body: an expired session answers every request
        # with the login screen, which would otherwise be parsed as if it were the requested page.
        self._check_session_expired()

        self._body_decoded: object = _NOT_COMPUTED
        self._soup: object = _NOT_COMPUTED
        self._view_state: object = _NOT_COMPUTED

    @classmethod
    def from_response(cls, response: httpx.Response, *, request_body: Optional[bytes] = None) -> "Page":
        request = response.request
        return cls(
            method=request.method,
            url=request.url,
            status_code=response.status_code,
            headers=response.headers,
            body=response.text,
            request_headers=request.headers,
            request_body=request_body,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.method} {self.url} status={self.status_code}>"

    def _check_session_expired(self) -> None:
        location = self.headers.get("location") or ""
        if self.status_code == 302 and EXPIRED_SESSION_PATH in location:
            raise SessionExpiredError(location)

    @property
    def location(self) -> Optional[str]:
        raw = self.headers.get("location")
        if not raw:
            return None
        return urljoin(self.url, raw)

    @property
    def body_decoded(self) -> str:
        if self._body_decoded is _NOT_COMPUTED:
            self._body_decoded = _html.unescape(self.body)
        return self._body_decoded  # type: ignore[return-value]

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is _NOT_COMPUTED:
            self._soup = BeautifulSoup(self.body, "html.parser")
        return self._soup  # type: ignore[return-value]

    @property
    def view_state(self) -> Optional[str]:
        """
        Value of the hidden `javax.faces.ViewState` input, or None when the page has none.
        """
        if self._view_state is _NOT_COMPUTED:
            el = self.soup.find("input", attrs={"name": VIEW_STATE_FIELD})
            value = el.get("value") if isinstance(el, Tag) else None
            self._view_state = value if isinstance(value, str) else None
        return self._view_state  # type: ignore[return-value]

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def select(self, selector: str) -> list[Tag]:
        return list(self.soup.select(selector))

    def parse_form(self, selector: str) -> Form:
        """
        Build a Form from a `<form>` element matched by a CSS selector.
        """
        form_el = self.soup.select_one(selector)
        if form_el is None or form_el.name != "form":
            raise InvalidFormError(f"Form not found on {self.url} (selector={selector!r})")
        return self._form_from_element(form_el)

    def _form_from_element(self, form_el: Tag) -> Form:
        action = urljoin(self.url, str(form_el.get("action") or ""))
        return Form(action=action, post_values=_form_field_values(form_el))

    def _form_by_id(self, form_id: str) -> Tag:
        form_el = self.soup.find("form", attrs={"id": form_id}) or self.soup.find("form", attrs={"name": form_id})
        if not isinstance(form_el, Tag):
            raise InvalidFormError(f"Form {form_id!r} referenced by callback not found on {self.url}")
        return form_el

    def parse_jsfcljs(self, javascript: str) -> Form:
        """
        Build a Form from an inline JSF `jsfcljs(...)` callback (usually an element's onclick).

        The callback markup differs per institution dialect. The base page knows no dialect and rejects every
        callback; the institution subclasses parse them.
        """
        raise InvalidFormError(f"No JSF callback dialect for {type(self).__name__} on {self.url}")


def _form_field_values(form_el: Tag) -> dict[str, str]:
    values: dict[str, str] = {}
    for el in form_el.find_all(["input", "select", "textarea"]):
        name = el.get("name")
        if not name:
            continue
        if el.name == "input":
            input_type = str(el.get("type") or "text").lower()
            if input_type in ("submit", "button", "image", "reset", "file"):
                continue
            if input_type in ("checkbox", "radio") and not el.has_attr("checked"):
                continue
            values[str(name)] = str(el.get("value") or ("on" if input_type in ("checkbox", "radio") else ""))
        elif el.name == "select":
            option = el.find("option", selected=True) or el.find("option")
            if isinstance(option, Tag):
                values[str(name)] = str(option.get("value") if option.has_attr("value") else option.get_text())
        else:
            values[str(name)] = el.get_text()
    return values


_GET_ELEMENT_BY_ID_RE = re.compile(r"getElementById\(\s*'([^']+)'\s*\)\s*,\s*(\{.*?\})\s*,", re.S)
_FORMS_INDEX_RE = re.compile(r"document\.forms\[\s*'([^']+)'\s*\]\s*,\s*'([^']*)'", re.S)


_JS_STRING = r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\""
_LITERAL_PAIR_RE = re.compile(
    rf"\s*(?P<key>{_JS_STRING})\s*:\s*(?P<value>{_JS_STRING}|null)\s*(?:,|\Z)",
    re.S,
)
_JS_ESCAPE_RE = re.compile(r"\\(.)", re.S)


def _js_string_value(token: str) -> str:
    if token == "null":
        return ""
    return _JS_ESCAPE_RE.sub(r"\1", token[1:-1])


def _parse_object_literal(literal: str) -> dict[str, str]:
    """
    Parse the `{'a':'b','c':'d'}` literal JSF emits in its callbacks.

    Keys and values are JS string literals in either quote style; backslash escapes are honored.
    """
    body = literal.strip()
    if not (body.startswith("{") and body.endswith("}")):
        raise InvalidFormError(f"Malformed JSF callback parameters: {literal!r}")
    body = body[1:-1]

    values: dict[str, str] = {}
    pos = 0
    while body[pos:].strip():
        m = _LITERAL_PAIR_RE.match(body, pos)
        if not m:
            raise InvalidFormError(f"Malformed JSF callback parameters: {literal!r}")
        values[_js_string_value(m.group("key"))] = _js_string_value(m.group("value"))
        pos = m.end()
    return values


class _ObjectLiteralCallbackPage(Page):
    """
    Dialect whose callbacks look like:
    `if(typeof jsfcljs == 'function'){jsfcljs(document.getElementById('form'),{'k':'v'},'');}return false`
    """

    def parse_jsfcljs(self, javascript: str) -> Form:
        m = _GET_ELEMENT_BY_ID_RE.search(javascript or "")
        if not m:
            raise InvalidFormError(f"Could not parse JSF callback on {self.url}: {javascript!r}")
        form_el = self._form_by_id(m.group(1))
        form = self._form_from_element(form_el)
        return form.with_values(**_parse_object_literal(m.group(2)))


class IFSCPage(_ObjectLiteralCallbackPage):
    pass


class UFPBPage(_ObjectLiteralCallbackPage):
    pass


class UNILABPage(_ObjectLiteralCallbackPage):
    pass


class UNBPage(Page):
    """
    UNB still serves the older JSF callback:
    `jsfcljs(document.forms['form'],'k1,v1,k2,v2','');return false`
    """

    def parse_jsfcljs(self, javascript: str) -> Form:
        m = _FORMS_INDEX_RE.search(javascript or "")
        if not m:
            raise InvalidFormError(f"Could not parse JSF callback on {self.url}: {javascript!r}")
        form_el = self._form_by_id(m.group(1))
        form = self._form_from_element(form_el)

        pairs = m.group(2).split(",") if m.group(2) else []
        if len(pairs) % 2:
            raise InvalidFormError(f"Odd number of JSF callback parameters: {m.group(2)!r}")
        params = {pairs[i]: pairs[i + 1] for i in range(0, len(pairs), 2)}
        return form.with_values(**params)
