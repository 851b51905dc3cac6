from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class DialectSelectors:
    """
    SIGAA is server-rendered and each institution ships its own markup variant; paths and selectors may
    change over time. Keep every markup hook here so a dialect change is a data change.
    """

    # Login
    login_path: str = "/sigaa/verTelaLogin.do"
    login_form: str = "form[name='loginForm']"
    username_field: str = "user.login"
    password_field: str = "user.senha"
    # Text that only appears while the login screen is displayed.
    login_screen_texts: tuple[str, ...] = ("Entrar no Sistema",)
    invalid_credentials_texts: tuple[str, ...] = ("Usuário e/ou senha inválidos",)
    logoff_path: str = "/sigaa/logar.do?dispatch=logOff"

    # Account
    user_name: str = "p.usuario > span, #info-usuario p.usuario, .usuario .nome"
    # Bond choice page (shown after login when the user has more than one bond).
    bond_choice_path: str = "/sigaa/vinculos.jsf"
    bond_table: str = "table.subFormulario, #tabela-vinculos table, table.listagem"
    bond_link: str = "a[href]"
    # Student portal profile (single-bond login lands here).
    student_portal_path: str = "/sigaa/portais/discente/discente.jsf"
    student_profile_rows: str = "#agenda-docente table tr, #perfil-docente table tr"


IFSC_SELECTORS = DialectSelectors()

UFPB_SELECTORS = replace(
    IFSC_SELECTORS,
    login_path="/sigaa/logon.jsf",
    login_form="form#form, form[name='form']",
    username_field="form:login",
    password_field="form:senha",
)

UNB_SELECTORS = replace(
    UFPB_SELECTORS,
    user_name="#painel-usuario .nome, p.usuario > span",
)

UNILAB_SELECTORS = replace(IFSC_SELECTORS)
