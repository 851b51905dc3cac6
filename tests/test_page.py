from __future__ import annotations

import pytest

from sigaa_client.errors import InvalidFormError, SessionExpiredError
from sigaa_client.session.page import Form, IFSCPage, Page, UFPBPage, UNBPage


def _page(body: str = "", *, status: int = 200, headers: dict | None = None, cls=Page, url: str = "https://sigaa.ifsc.edu.br/sigaa/x.jsf") -> Page:
    return cls(method="GET", url=url, status_code=status, headers=headers or {}, body=body)


_JSF_PAGE = """
<html><body>
<form id="form" name="form" action="/sigaa/ava/index.jsf" method="post">
  <input type="hidden" name="form" value="form">
  <input type="hidden" name="javax.faces.ViewState" value="j_id12">
  <input type="text" name="busca" value="">
  <input type="checkbox" name="ativo" checked>
  <input type="checkbox" name="ignorado">
  <input type="submit" name="form:enviar" value="Enviar">
  <select name="periodo"><option value="2023.1">2023.1</option><option value="2023.2" selected>2023.2</option></select>
  <textarea name="obs">linha</textarea>
</form>
</body></html>
"""


def test_view_state_read_from_hidden_input() -> None:
    assert _page(_JSF_PAGE).view_state == "j_id12"


def test_view_state_absent_is_none() -> None:
    assert _page("<html><body><p>sem formulário</p></body></html>").view_state is None


def test_expired_session_redirect_raises() -> None:
    with pytest.raises(SessionExpiredError) as exc:
        _page(status=302, headers={"Location": "https://sigaa.ifsc.edu.br/sigaa/expirada.jsp"})
    assert "/sigaa/expirada.jsp" in exc.value.location


def test_plain_redirect_is_not_expired_and_location_is_absolute() -> None:
    page = _page(status=302, headers={"Location": "/sigaa/portais/discente/discente.jsf"})
    assert page.location == "https://sigaa.ifsc.edu.br/sigaa/portais/discente/discente.jsf"


def test_expired_path_without_redirect_is_a_normal_page() -> None:
    page = _page("see /sigaa/expirada.jsp", status=200, headers={"Location": "/sigaa/expirada.jsp"})
    assert page.status_code == 200


def test_body_decoded_unescapes_entities() -> None:
    assert _page("Matr&iacute;cula &amp; Curso").body_decoded == "Matrícula & Curso"


def test_parse_form_collects_submittable_fields() -> None:
    form = _page(_JSF_PAGE).parse_form("form#form")

    assert form.action == "https://sigaa.ifsc.edu.br/sigaa/ava/index.jsf"
    assert form.to_dict() == {
        "form": "form",
        "javax.faces.ViewState": "j_id12",
        "busca": "",
        "ativo": "on",
        "periodo": "2023.2",
        "obs": "linha",
    }


def test_parse_form_missing_raises() -> None:
    with pytest.raises(InvalidFormError):
        _page("<html></html>").parse_form("form#nope")


def test_form_require_reports_missing_fields() -> None:
    form = Form(action="/x", post_values={"id": "1"})
    assert form.require("id") is form
    with pytest.raises(InvalidFormError) as exc:
        form.require("id", "key")
    assert exc.value.missing_fields == ("key",)


def test_form_values_are_copied() -> None:
    values = {"a": "1"}
    form = Form(action="/x", post_values=values)
    values["a"] = "2"
    assert form.post_values["a"] == "1"
    assert form.with_values(a="3").post_values["a"] == "3"
    assert form.post_values["a"] == "1"


def test_object_literal_jsfcljs_merges_callback_params() -> None:
    js = (
        "if(typeof jsfcljs == 'function'){jsfcljs(document.getElementById('form'),"
        "{'form:j_id_jsp_1':'form:j_id_jsp_1','id':'42','key':'abc'},'');}return false"
    )
    for cls in (IFSCPage, UFPBPage):
        form = _page(_JSF_PAGE, cls=cls).parse_jsfcljs(js)
        assert form.action == "https://sigaa.ifsc.edu.br/sigaa/ava/index.jsf"
        assert form.post_values["id"] == "42"
        assert form.post_values["key"] == "abc"
        assert form.post_values["javax.faces.ViewState"] == "j_id12"


def test_object_literal_values_keep_quotes_and_escapes() -> None:
    js = (
        "jsfcljs(document.getElementById('form'),"
        "{'id':'42','title':'Plano \\'final\\' \"v2\"',\"key\":\"a,b\",'extra':null},'');"
    )
    form = _page(_JSF_PAGE, cls=IFSCPage).parse_jsfcljs(js)
    assert form.post_values["title"] == 'Plano \'final\' "v2"'
    assert form.post_values["key"] == "a,b"
    assert form.post_values["extra"] == ""


def test_object_literal_garbage_is_rejected() -> None:
    js = "jsfcljs(document.getElementById('form'),{'id' 42},'');"
    with pytest.raises(InvalidFormError):
        _page(_JSF_PAGE, cls=IFSCPage).parse_jsfcljs(js)


def test_unb_jsfcljs_reads_comma_pairs() -> None:
    js = "jsfcljs(document.forms['form'],'form:j_id_jsp_1,form:j_id_jsp_1,id,42,key,abc','');return false"
    form = _page(_JSF_PAGE, cls=UNBPage).parse_jsfcljs(js)
    assert form.post_values["id"] == "42"
    assert form.post_values["key"] == "abc"
    assert form.post_values["form"] == "form"


def test_unb_jsfcljs_odd_params_rejected() -> None:
    js = "jsfcljs(document.forms['form'],'id,42,key','');return false"
    with pytest.raises(InvalidFormError):
        _page(_JSF_PAGE, cls=UNBPage).parse_jsfcljs(js)


def test_jsfcljs_in_wrong_dialect_is_rejected() -> None:
    unb_js = "jsfcljs(document.forms['form'],'id,42','');return false"
    with pytest.raises(InvalidFormError):
        _page(_JSF_PAGE, cls=IFSCPage).parse_jsfcljs(unb_js)


def test_jsfcljs_unknown_form_raises() -> None:
    js = "jsfcljs(document.getElementById('outro'),{'id':'1'},'');"
    with pytest.raises(InvalidFormError):
        _page(_JSF_PAGE, cls=IFSCPage).parse_jsfcljs(js)


def test_base_page_has_no_jsfcljs_dialect() -> None:
    with pytest.raises(InvalidFormError):
        _page(_JSF_PAGE).parse_jsfcljs("jsfcljs()")
