from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Union

from .errors import UnknownInstitutionError
from .session.login import SigaaLogin, SigaaLoginJSF
from .session.page import IFSCPage, Page, UFPBPage, UNBPage, UNILABPage
from .session.selectors import (
    IFSC_SELECTORS,
    UFPB_SELECTORS,
    UNB_SELECTORS,
    UNILAB_SELECTORS,
    DialectSelectors,
)


class Institution(str, Enum):
    IFSC = "IFSC"
    UFPB = "UFPB"
    UNB = "UNB"
    UNILAB = "UNILAB"


@dataclass(frozen=True)
class InstitutionProfile:
    institution: Institution
    display_name: str
    default_url: str
    page_class: type[Page]
    login_class: type[SigaaLogin]
    selectors: DialectSelectors


# The whole dialect dispatch. Supporting a new institution means adding an entry here.
INSTITUTIONS: Mapping[Institution, InstitutionProfile] = {
    Institution.IFSC: InstitutionProfile(
        institution=Institution.IFSC,
        display_name="Instituto Federal de Santa Catarina",
        default_url="https://sigaa.ifsc.edu.br",
        page_class=IFSCPage,
        login_class=SigaaLogin,
        selectors=IFSC_SELECTORS,
    ),
    Institution.UFPB: InstitutionProfile(
        institution=Institution.UFPB,
        display_name="Universidade Federal da Paraíba",
        default_url="https://sigaa.ufpb.br",
        page_class=UFPBPage,
        login_class=SigaaLoginJSF,
        selectors=UFPB_SELECTORS,
    ),
    Institution.UNB: InstitutionProfile(
        institution=Institution.UNB,
        display_name="Universidade de Brasília",
        default_url="https://sigaa.unb.br",
        page_class=UNBPage,
        login_class=SigaaLoginJSF,
        selectors=UNB_SELECTORS,
    ),
    Institution.UNILAB: InstitutionProfile(
        institution=Institution.UNILAB,
        display_name="Universidade da Integração Internacional da Lusofonia Afro-Brasileira",
        default_url="https://sig.unilab.edu.br",
        page_class=UNILABPage,
        login_class=SigaaLogin,
        selectors=UNILAB_SELECTORS,
    ),
}


def get_profile(value: Union[str, Institution]) -> InstitutionProfile:
    try:
        key = value if isinstance(value, Institution) else Institution((value or "").strip().upper())
    except ValueError:
        raise UnknownInstitutionError(str(value)) from None
    return INSTITUTIONS[key]
