"""Google Drive v3 backend: folder resolution, child enumeration, file queries."""
from __future__ import annotations

import http.client
import logging
from datetime import datetime
from pathlib import Path

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import Error as GoogleApiError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import BackendUnavailable

log = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
PAGE_SIZE = 1000
HTTP_TIMEOUT_SECONDS = 60


class DriveFolder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    mime_type: str = Field(default="", alias="mimeType")


class DriveFile(BaseModel):
    """A file entry from files.list; only the fields we request."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    web_view_link: str | None = Field(default=None, alias="webViewLink")
    modified_time: datetime = Field(alias="modifiedTime")

    @property
    def url(self) -> str:
        return self.web_view_link or f"https://drive.google.com/file/d/{self.id}/view"


def build_service(credentials_file: Path):
    """Build an authorized Drive v3 client from a service-account key file."""
    if not credentials_file.exists():
        raise FileNotFoundError(f"Google credentials not found at {credentials_file}")

    credentials = Credentials.from_service_account_file(str(credentials_file), scopes=SCOPES)
    http = google_auth_httplib2.AuthorizedHttp(
        credentials, http=httplib2.Http(timeout=HTTP_TIMEOUT_SECONDS)
    )
    return build("drive", "v3", http=http, cache_discovery=False)


def quote(value: str) -> str:
    """Quote a literal for the Drive query language."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class DriveBackend:
    def __init__(self, service) -> None:
        self.service = service

    @classmethod
    def from_credentials(cls, credentials_file: Path) -> DriveBackend:
        return cls(build_service(credentials_file))

    def _execute(self, request, what: str) -> dict:
        try:
            return request.execute()
        except (
            GoogleApiError,
            GoogleAuthError,
            httplib2.HttpLib2Error,
            http.client.HTTPException,
            OSError,
        ) as exc:
            raise BackendUnavailable(f"Drive {what} failed: {exc}") from exc

    def get_folder(self, folder_id: str) -> DriveFolder:
        request = self.service.files().get(
            fileId=folder_id,
            fields="id, name, mimeType",
            supportsAllDrives=True,
        )
        data = self._execute(request, f"lookup of folder {folder_id}")
        try:
            folder = DriveFolder.model_validate(data)
        except ValidationError as exc:
            raise BackendUnavailable(f"Unexpected folder payload for {folder_id}: {exc}") from exc
        if folder.mime_type and folder.mime_type != FOLDER_MIME_TYPE:
            raise BackendUnavailable(f"{folder_id} is not a folder ({folder.mime_type})")
        return folder

    def _list(self, query: str, fields: str, what: str) -> list[dict]:
        items: list[dict] = []
        page_token = None
        while True:
            request = self.service.files().list(
                q=query,
                spaces="drive",
                fields=f"nextPageToken, files({fields})",
                pageSize=PAGE_SIZE,
                pageToken=page_token,
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            )
            response = self._execute(request, what)
            items.extend(response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    def list_child_folder_ids(self, folder_id: str) -> list[str]:
        query = (
            f"{quote(folder_id)} in parents and mimeType = '{FOLDER_MIME_TYPE}' "
            "and trashed = false"
        )
        items = self._list(query, "id", f"child listing of {folder_id}")
        return [item["id"] for item in items if item.get("id")]

    def search_files(self, query: str) -> list[DriveFile]:
        items = self._list(query, "id, name, webViewLink, modifiedTime", "file search")
        files = []
        for item in items:
            try:
                files.append(DriveFile.model_validate(item))
            except ValidationError as exc:
                log.warning(f"Skipping malformed Drive file entry {item.get('id')}: {exc}")
        return files
