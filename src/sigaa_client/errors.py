from __future__ import annotations

from typing import Iterable, Optional


class SigaaError(RuntimeError):
    """
    Base class for every error raised by this package.
    """


class SessionExpiredError(SigaaError):
    """
    The portal redirected to its expired-session page. The caller must log in again.
    """

    def __init__(self, location: str = "") -> None:
        super().__init__(f"SIGAA session expired (redirected to {location or 'expired-session page'})")
        self.location = location


class BondSwitchFailedError(SigaaError):
    def __init__(self, bond_switch_url: str, status_code: int) -> None:
        super().__init__(f"Could not switch bond to {bond_switch_url} (final status {status_code})")
        self.bond_switch_url = bond_switch_url
        self.status_code = status_code


class InvalidFormError(SigaaError):
    """
    The page markup did not contain a form (or form field) we depend on.
    """

    def __init__(self, message: str, *, missing_fields: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.missing_fields = tuple(missing_fields or ())


class MissingColumnError(SigaaError):
    def __init__(self, table: str, column: str) -> None:
        super().__init__(f"Invalid {table} table: could not find the column {column!r}")
        self.table = table
        self.column = column


class InstanceClosedError(SigaaError):
    def __init__(self, identifier: str = "") -> None:
        super().__init__(f"Instance {identifier!r} has already been closed" if identifier else "Instance has already been closed")
        self.identifier = identifier


class InstanceNotUpdatableError(SigaaError):
    pass


class FileDownloadError(SigaaError):
    pass


class DownloadExpiredError(FileDownloadError):
    """
    The portal answered a file request with a 302; the download link is no longer valid.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Download link expired: {url}")
        self.url = url


class BadStatusError(FileDownloadError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Unexpected status code {status_code} for {url}")
        self.url = url
        self.status_code = status_code


class InvalidCredentialsError(SigaaError):
    pass


class LoginFlowError(SigaaError):
    """
    Login did not end on a recognizable page (or was attempted in the wrong state).
    """


class UnknownInstitutionError(SigaaError):
    def __init__(self, value: str) -> None:
        super().__init__(f"Unknown institution {value!r}")
        self.value = value
