from __future__ import annotations

import asyncio

import pytest

from sigaa_client import Sigaa
from sigaa_client.errors import InvalidCredentialsError, LoginFlowError, MissingColumnError
from sigaa_client.session.hooks import LoginStatus
from sigaa_client.session.page_cache import cache_key


BASE = "https://sigaa.ifsc.edu.br"

IFSC_LOGIN_PAGE = """
<html><body>
<h3>Entrar no Sistema</h3>
<form name="loginForm" method="post" action="/sigaa/logar.do?dispatch=logOn">
  <input type="hidden" name="width" value="0">
  <input type="hidden" name="urlRedirect" value="">
  <input type="text" name="user.login">
  <input type="password" name="user.senha">
  <input type="submit" value="Entrar">
</form>
</body></html>
"""

UFPB_LOGIN_PAGE = """
<html><body>
<p>Entrar no Sistema</p>
<form id="form" name="form" method="post" action="/sigaa/logon.jsf">
  <input type="hidden" name="form" value="form">
  <input type="text" name="form:login">
  <input type="password" name="form:senha">
  <input type="submit" name="form:entrar" value="Entrar">
  <input type="hidden" name="javax.faces.ViewState" value="j_id1">
</form>
</body></html>
"""

BONDS_PAGE = """
<html><body>
<p class="usuario"><span>FULANO DE TAL</span></p>
<table class="subFormulario">
  <thead><tr><th>Vínculo</th><th>Matrícula</th><th>Curso</th><th>Ativo</th></tr></thead>
  <tbody>
    <tr>
      <td><a href="/sigaa/escolhaVinculo.do?dispatch=escolher&amp;vinculo=1">Discente</a></td>
      <td>2019001</td><td>ENGENHARIA ELÉTRICA</td><td>Sim</td>
    </tr>
    <tr>
      <td><a href="/sigaa/escolhaVinculo.do?dispatch=escolher&amp;vinculo=2">Discente</a></td>
      <td>2015002</td><td>TÉCNICO EM ELETRÔNICA</td><td>Não</td>
    </tr>
  </tbody>
</table>
</body></html>
"""

PORTAL_PAGE = """
<html><body>
<p class="usuario"><span>BELTRANA</span></p>
<div id="perfil-docente"><table>
  <tr><td>Matrícula:</td><td>2020123</td></tr>
  <tr><td>Curso:</td><td>ANÁLISE E DESENVOLVIMENTO DE SISTEMAS</td></tr>
  <tr><td>Status:</td><td>ATIVO</td></tr>
  <tr><td>Entrada:</td><td>2020.1</td></tr>
</table></div>
</body></html>
"""


def _script_ifsc_login(portal, landing_path: str, landing_body: str) -> None:
    portal.add("GET", "/sigaa/verTelaLogin.do", body=IFSC_LOGIN_PAGE, headers={"set-cookie": "JSESSIONID=s1; Path=/"})
    portal.add("POST", "/sigaa/logar.do?dispatch=logOn", status=302, headers={"Location": landing_path})
    portal.add("GET", landing_path, body=landing_body)


def test_ifsc_login_posts_credentials_and_lists_bonds(portal) -> None:
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", BONDS_PAGE)

    async def run():
        async with Sigaa("ifsc", transport=portal.transport) as sigaa:
            account = await sigaa.login("fulano", "s3nh@ forte")
            assert sigaa.is_logged_in
            return (
                await account.get_name(),
                await account.get_active_bonds(),
                await account.get_inactive_bonds(),
            )

    name, active, inactive = asyncio.run(run())

    (login_post,) = portal.calls("POST")
    assert login_post.headers["cookie"] == "JSESSIONID=s1"
    assert login_post.content == b"width=0&urlRedirect=&user.login=fulano&user.senha=s3nh%40%20forte"

    assert name == "FULANO DE TAL"
    assert [b.registration for b in active] == ["2019001"]
    assert active[0].program == "ENGENHARIA ELÉTRICA"
    assert active[0].switch_url == "https://sigaa.ifsc.edu.br/sigaa/escolhaVinculo.do?dispatch=escolher&vinculo=1"
    assert [b.registration for b in inactive] == ["2015002"]
    assert inactive[0].info.status == "Não"


def test_invalid_credentials(portal) -> None:
    portal.add("GET", "/sigaa/verTelaLogin.do", body=IFSC_LOGIN_PAGE)
    portal.add("POST", "/sigaa/logar.do?dispatch=logOn", body=IFSC_LOGIN_PAGE + "<p>Usuário e/ou senha inválidos</p>")

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            with pytest.raises(InvalidCredentialsError):
                await sigaa.login("fulano", "errada")
            return sigaa.session.login_status

    assert asyncio.run(run()) == LoginStatus.UNAUTHENTICATED


def test_unrecognized_login_result(portal) -> None:
    portal.add("GET", "/sigaa/verTelaLogin.do", body=IFSC_LOGIN_PAGE)
    portal.add("POST", "/sigaa/logar.do?dispatch=logOn", body=IFSC_LOGIN_PAGE)

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            await sigaa.login("fulano", "x")

    with pytest.raises(LoginFlowError):
        asyncio.run(run())


def test_second_login_requires_logoff(portal) -> None:
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", BONDS_PAGE)

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            await sigaa.login("fulano", "x")
            await sigaa.login("fulano", "x")

    with pytest.raises(LoginFlowError):
        asyncio.run(run())


def test_ufpb_login_includes_jsf_button_and_view_state(portal) -> None:
    portal.add("GET", "/sigaa/logon.jsf", body=UFPB_LOGIN_PAGE)
    portal.add("POST", "/sigaa/logon.jsf", status=302, headers={"Location": "/sigaa/portais/discente/discente.jsf"})
    portal.add("GET", "/sigaa/portais/discente/discente.jsf", body=PORTAL_PAGE)

    async def run():
        async with Sigaa("UFPB", transport=portal.transport) as sigaa:
            account = await sigaa.login("beltrana", "x")
            return await account.get_bonds()

    (bond,) = asyncio.run(run())
    body = portal.calls("POST")[0].content
    assert body == b"form=form&form%3Alogin=beltrana&form%3Asenha=x&javax.faces.ViewState=j_id1&form%3Aentrar=Entrar"
    assert str(portal.requests[0].url).startswith("https://sigaa.ufpb.br/")
    assert bond.registration == "2020123"
    assert bond.switch_url is None


def test_single_bond_from_student_portal(portal) -> None:
    _script_ifsc_login(portal, "/sigaa/portais/discente/discente.jsf", PORTAL_PAGE)
    portal.add("GET", "/sigaa/ava/index.jsf", body="<html>turma</html>")

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            account = await sigaa.login("beltrana", "x")
            (bond,) = await account.get_active_bonds()
            page = await bond.get_page("/sigaa/ava/index.jsf")
            return account, bond, page

    account, bond, page = asyncio.run(run())
    assert bond.registration == "2020123"
    assert bond.program == "ANÁLISE E DESENVOLVIMENTO DE SISTEMAS"
    assert bond.info.extra == {"Entrada": "2020.1"}
    assert page.status_code == 200
    assert "escolhaVinculo" not in " ".join(str(r.url) for r in portal.requests)


def test_bond_table_without_registration_column(portal) -> None:
    broken = BONDS_PAGE.replace("<th>Matrícula</th>", "<th>Código</th>")
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", broken)

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            account = await sigaa.login("fulano", "x")
            await account.get_bonds()

    with pytest.raises(MissingColumnError) as exc:
        asyncio.run(run())
    assert exc.value.column == "Matrícula"


def test_bond_file_download_switches_bond_first(portal, tmp_path) -> None:
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", BONDS_PAGE)
    portal.add("GET", "/sigaa/escolhaVinculo.do?dispatch=escolher&vinculo=1", status=302, headers={"Location": "/sigaa/portais/discente/discente.jsf"})
    portal.add("GET", "/sigaa/portais/discente/discente.jsf", body=PORTAL_PAGE)
    portal.add("GET", "/sigaa/verProducao", body=b"pdf", headers={"content-disposition": 'attachment; filename="plano.pdf"'})

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            account = await sigaa.login("fulano", "x")
            (bond,) = await account.get_active_bonds()
            f = bond.file("42", "abc", title="Plano")
            assert bond.file("42", "abc") is f
            return await f.download(tmp_path)

    path = asyncio.run(run())
    assert path.read_bytes() == b"pdf"
    tail = [r.url.raw_path.decode("ascii") for r in portal.requests[-3:]]
    assert tail == [
        "/sigaa/escolhaVinculo.do?dispatch=escolher&vinculo=1",
        "/sigaa/portais/discente/discente.jsf",
        "/sigaa/verProducao?idProducao=42&key=abc",
    ]


def test_login_screen_survives_bond_switch(portal) -> None:
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", BONDS_PAGE)
    portal.add("GET", "/sigaa/escolhaVinculo.do?dispatch=escolher&vinculo=1", status=302, headers={"Location": "/sigaa/portais/discente/discente.jsf"})
    portal.add("GET", "/sigaa/portais/discente/discente.jsf", body=PORTAL_PAGE)

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            account = await sigaa.login("fulano", "x")
            (bond,) = await account.get_active_bonds()
            await bond.get_page("/sigaa/portais/discente/discente.jsf")
            cache = sigaa.session.page_cache
            return (
                cache_key("GET", f"{BASE}/sigaa/verTelaLogin.do") in cache,
                cache_key("GET", f"{BASE}/sigaa/vinculos.jsf") in cache,
            )

    login_screen_kept, landing_kept = asyncio.run(run())
    assert login_screen_kept
    assert not landing_kept


def test_logoff_closes_session(portal) -> None:
    _script_ifsc_login(portal, "/sigaa/vinculos.jsf", BONDS_PAGE)
    portal.add("GET", "/sigaa/logar.do?dispatch=logOff", status=302, headers={"Location": "/sigaa/verTelaLogin.do"})

    async def run():
        async with Sigaa("IFSC", transport=portal.transport) as sigaa:
            account = await sigaa.login("fulano", "x")
            await account.logoff()
            return sigaa.session

    session = asyncio.run(run())
    assert session.login_status == LoginStatus.UNAUTHENTICATED
    assert len(session.cookies) == 0
    assert len(session.page_cache) == 0
    assert portal.requests[-1].url.path == "/sigaa/verTelaLogin.do"
