from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, InstanceOf, model_validator

from .session.page import Form


class FileKeyData(BaseModel):
    """
    A file addressed by its id and the security key SIGAA generates for it.
    """

    id: str
    key: str
    title: Optional[str] = None
    description: Optional[str] = None


class FileFormData(BaseModel):
    """
    A file reachable only by replaying the form of the page that lists it.

    The form must carry the `id` and `key` fields; they are the file's natural identity.
    """

    model_config = ConfigDict(frozen=True)

    form: InstanceOf[Form]
    title: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _require_identity_fields(self) -> "FileFormData":
        self.form.require("id", "key")
        return self

    @property
    def id(self) -> str:
        return self.form.post_values["id"]

    @property
    def key(self) -> str:
        return self.form.post_values["key"]


FileData = Union[FileFormData, FileKeyData]


class BondInfo(BaseModel):
    """
    One row of the user's bonds (enrollments), as listed by the portal.
    """

    kind: str = "Discente"
    registration: str
    program: str = ""
    status: str = ""
    active: bool = True
    # None when the user has a single bond and the portal offers no switch link.
    switch_url: Optional[str] = None
    extra: dict[str, str] = Field(default_factory=dict)
