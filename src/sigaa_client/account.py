from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

from bs4 import Tag

from .errors import MissingColumnError, SigaaError
from .models import BondInfo, FileKeyData
from .resources.file import FileCollection, SigaaFile
from .session.bond import HTTPFactory, SigaaHTTPWithBond
from .session.hooks import HTTPSession
from .session.options import RequestOptions
from .session.page import Page
from .util.text import element_text


logger = logging.getLogger(__name__)

# Header text -> BondInfo field. First match wins.
_BOND_COLUMNS: dict[str, tuple[str, ...]] = {
    "kind": ("Vínculo", "Tipo"),
    "registration": ("Matrícula", "Identificador"),
    "program": ("Curso", "Outras Informações"),
    "status": ("Ativo", "Situação", "Status"),
}
_REQUIRED_BOND_COLUMNS = ("kind", "registration")
_ACTIVE_VALUES = {"sim", "ativo", "ativa"}


class StudentBond:
    """
    One enrollment context. Every request made through it runs under this bond.
    """

    def __init__(self, info: BondInfo, http: SigaaHTTPWithBond) -> None:
        self.info = info
        self.http = http
        self.files = FileCollection(http)

    def __repr__(self) -> str:
        return f"<StudentBond {self.info.kind} {self.info.registration} {self.info.program!r}>"

    @property
    def registration(self) -> str:
        return self.info.registration

    @property
    def program(self) -> str:
        return self.info.program

    @property
    def switch_url(self) -> Optional[str]:
        return self.info.switch_url

    async def get_page(self, path: str, options: Optional[RequestOptions] = None) -> Page:
        return await self.http.get(path, options)

    def file(self, id: str, key: str, *, title: Optional[str] = None) -> SigaaFile:
        return self.files.materialize(FileKeyData(id=id, key=key, title=title))


class Account:
    """
    The logged-in user: name, bonds and logoff.
    """

    def __init__(self, factory: HTTPFactory, session: HTTPSession, landing_page: Page) -> None:
        self.factory = factory
        self.session = session
        self.http = factory.create_http()
        self._landing_page = landing_page
        self._bonds: Optional[list[StudentBond]] = None

    @property
    def selectors(self):
        return self.session.profile.selectors

    async def get_name(self) -> str:
        name = self._find_name(self._landing_page)
        if not name:
            page = await self.http.get(self.selectors.student_portal_path)
            name = self._find_name(page)
        if not name:
            raise SigaaError("Could not find the user name on the portal pages")
        return name

    def _find_name(self, page: Page) -> str:
        return element_text(page.select_one(self.selectors.user_name))

    async def get_bonds(self) -> list[StudentBond]:
        if self._bonds is None:
            infos = await self._load_bond_infos()
            self._bonds = [StudentBond(info, self.factory.create_http_with_bond(info.switch_url)) for info in infos]
        return list(self._bonds)

    async def get_active_bonds(self) -> list[StudentBond]:
        return [b for b in await self.get_bonds() if b.info.active]

    async def get_inactive_bonds(self) -> list[StudentBond]:
        return [b for b in await self.get_bonds() if not b.info.active]

    async def get_bond(self, registration: str) -> StudentBond:
        for bond in await self.get_bonds():
            if bond.registration == registration:
                return bond
        raise SigaaError(f"No bond with registration {registration!r}")

    async def _load_bond_infos(self) -> list[BondInfo]:
        sel = self.selectors
        page = self._landing_page
        if sel.bond_choice_path in page.url:
            return parse_bond_table(page, sel.bond_table, sel.bond_link)
        if sel.student_portal_path not in page.url:
            page = await self.http.get(sel.student_portal_path)
        return [parse_student_profile(page, sel.student_profile_rows)]

    async def logoff(self) -> None:
        try:
            page = await self.http.get(self.selectors.logoff_path, RequestOptions(no_cache=True))
            await self.http.follow_all_redirects(page, RequestOptions(no_cache=True))
        finally:
            self.session.close()
            self._bonds = None
        logger.info("Logged off from %s", self.session.base_url)


def _column_indexes(header_cells: list[Tag]) -> dict[str, int]:
    texts = [element_text(c).rstrip(":") for c in header_cells]
    out: dict[str, int] = {}
    for field_name, labels in _BOND_COLUMNS.items():
        for idx, text in enumerate(texts):
            if text in labels:
                out[field_name] = idx
                break
    return out


def parse_bond_table(page: Page, table_selector: str, link_selector: str = "a[href]") -> list[BondInfo]:
    table = page.select_one(table_selector)
    if table is None:
        raise SigaaError(f"Bond table not found on {page.url}")

    header_cells = table.select("thead tr th") or table.select("thead tr td")
    columns = _column_indexes(header_cells)
    for required in _REQUIRED_BOND_COLUMNS:
        if required not in columns:
            raise MissingColumnError("bonds", _BOND_COLUMNS[required][0])

    rows = table.select("tbody tr") or [tr for tr in table.select("tr") if not tr.find_parent("thead")]
    bonds: list[BondInfo] = []
    for row in rows:
        cells = row.find_all("td", recursive=False)
        if len(cells) <= max(columns.values()):
            continue
        values = {name: element_text(cells[idx]) for name, idx in columns.items()}
        if not values.get("registration"):
            continue

        link = row.select_one(link_selector)
        switch_url = urljoin(page.url, str(link.get("href"))) if isinstance(link, Tag) else None
        status = values.get("status", "")
        bonds.append(
            BondInfo(
                kind=values.get("kind") or "Discente",
                registration=values["registration"],
                program=values.get("program", ""),
                status=status,
                active=(status.strip().lower() in _ACTIVE_VALUES) if "status" in columns else True,
                switch_url=switch_url,
            )
        )
    return bonds


def parse_student_profile(page: Page, rows_selector: str) -> BondInfo:
    """
    Single-bond users land on the student portal; the bond is described by its profile table.
    """
    fields: dict[str, str] = {}
    for row in page.select(rows_selector):
        cells = row.find_all("td")
        if len(cells) < 2:
            continue
        label = element_text(cells[0]).rstrip(":").strip()
        if label:
            fields[label] = element_text(cells[1])

    registration = fields.get("Matrícula", "")
    if not registration:
        raise MissingColumnError("student profile", "Matrícula")
    return BondInfo(
        kind="Discente",
        registration=registration,
        program=fields.get("Curso", ""),
        status=fields.get("Status", ""),
        active=True,
        switch_url=None,
        extra={k: v for k, v in fields.items() if k not in ("Matrícula", "Curso", "Status")},
    )
