from __future__ import annotations

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar, Union
from urllib.parse import quote

import httpx

from ..errors import FileDownloadError, InvalidFormError
from ..models import FileData, FileFormData, FileKeyData
from ..session.http import FileResponse, ProgressCallback
from ..session.page import Form
from .updatable import ResourceCollection, UpdatableResource, UpdaterCallback


logger = logging.getLogger(__name__)
R = TypeVar("R")

FILE_DOWNLOAD_PATH = "/sigaa/verProducao"


class SigaaFile(UpdatableResource):
    """
    A file attached to some portal page.

    It downloads by replaying its form when it has one, otherwise by GET with id + security key. Forms
    carry a view-state token that can expire between page loads, so a failed form download refreshes the
    file once through its owner and retries through the id/key path. Session expiry and bond switch
    failures propagate untouched.
    """

    type = "file"

    def __init__(self, http, data: FileData, updater: Optional[UpdaterCallback] = None) -> None:
        super().__init__(data.id, updater)
        self.http = http
        self._form: Optional[Form] = None
        self._id = ""
        self._key = ""
        self._title: Optional[str] = None
        self._description: Optional[str] = None
        self.update(data)

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<SigaaFile id={self.instance_identifier!r} {state}>"

    def update(self, data: FileData) -> None:
        if isinstance(data, FileFormData):
            form: Optional[Form] = data.form
        elif isinstance(data, FileKeyData):
            form = None
        else:
            raise InvalidFormError(f"Invalid file data: {type(data).__name__}")

        # Swap everything together so id and key always come from the same snapshot.
        self._form, self._id, self._key, self._title, self._description = (
            form,
            data.id,
            data.key,
            data.title,
            data.description,
        )
        self._reopen()

    @property
    def id(self) -> str:
        self._check_if_closed()
        return self._id

    @property
    def key(self) -> str:
        self._check_if_closed()
        return self._key

    @property
    def title(self) -> Optional[str]:
        self._check_if_closed()
        return self._title

    @property
    def description(self) -> Optional[str]:
        self._check_if_closed()
        return self._description

    @property
    def download_path(self) -> str:
        self._check_if_closed()
        return f"{FILE_DOWNLOAD_PATH}?idProducao={quote(self._id, safe='')}&key={quote(self._key, safe='')}"

    async def download(self, base_path: Union[str, Path], *, progress: Optional[ProgressCallback] = None) -> Path:
        """
        Save the file under `base_path` (a directory, or the full destination path). Returns the saved path.
        """
        return await self._with_refresh_retry(
            lambda form: self.http.download_file_by_post(form.action, form.to_dict(), base_path, progress=progress),
            lambda: self.http.download_file_by_get(self.download_path, base_path, progress=progress),
        )

    async def get_response(self, *, progress: Optional[ProgressCallback] = None) -> FileResponse:
        return await self._with_refresh_retry(
            lambda form: self.http.file_post(form.action, form.to_dict(), progress=progress),
            lambda: self.http.file_get(self.download_path, progress=progress),
        )

    async def _with_refresh_retry(
        self,
        by_form: Callable[[Form], Awaitable[R]],
        by_key: Callable[[], Awaitable[R]],
    ) -> R:
        self._check_if_closed()
        form = self._form
        if form is None:
            return await by_key()

        try:
            return await by_form(form)
        except (FileDownloadError, httpx.HTTPError) as e:
            logger.warning("Download of file %s via its form failed; refreshing and retrying once. (%s)", self._id, e)

        self._form = None
        if self._updater is not None:
            await self.update_instance()
        self._check_if_closed()
        return await by_key()


class FileCollection(ResourceCollection[SigaaFile, FileData]):
    """
    Files of one listing. `fetch` re-scrapes the listing; it also backs every file's updater.
    """

    def __init__(self, http, fetch: Optional[Callable[[], Awaitable[list[FileData]]]] = None) -> None:
        super().__init__(id_of=lambda data: data.id, factory=self._create)
        self.http = http
        self._fetch = fetch

    def _create(self, data: FileData) -> SigaaFile:
        updater = self._refresh_one if self._fetch is not None else None
        return SigaaFile(self.http, data, updater)

    async def refresh(self) -> list[SigaaFile]:
        if self._fetch is None:
            return list(self.instances)
        return self.sync(await self._fetch())

    async def _refresh_one(self, identifier: str) -> None:
        await self.refresh()
