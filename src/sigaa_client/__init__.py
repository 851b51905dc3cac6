__version__ = "0.1.0"

from .account import Account, StudentBond
from .errors import SigaaError
from .institutions import Institution
from .sigaa import Sigaa

__all__ = ["__version__", "Account", "Institution", "Sigaa", "SigaaError", "StudentBond"]
