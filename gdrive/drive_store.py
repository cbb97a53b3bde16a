"""Google Drive and Sheets client for the content synchronizer."""
import io
import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from processor.models import RemoteFile

logger = logging.getLogger(__name__)

SCOPES = [
    'https://www.googleapis.com/auth/spreadsheets.readonly',
    'https://www.googleapis.com/auth/drive.readonly'
]
TOKEN_URI = 'https://oauth2.googleapis.com/token'

FILE_FIELDS = 'nextPageToken, files(id, name, md5Checksum, parents)'
PAGE_SIZE = 1000

MISSING_RANGE_MARKERS = ('unable to parse range',)


@dataclass(frozen=True)
class DriveSession:
    """Authenticated API clients for one sync run."""
    credentials: Any
    drive: Any
    sheets: Any


def initialize(service_account_email: str, private_key: str) -> DriveSession:
    """
    Authenticate with a service account and build the API clients.

    Args:
        service_account_email: Service account client email
        private_key: PEM private key; literal '\\n' sequences are unescaped

    Returns:
        DriveSession holding credentials and Drive/Sheets clients
    """
    info = {
        'type': 'service_account',
        'client_email': service_account_email,
        'private_key': private_key.replace('\\n', '\n'),
        'token_uri': TOKEN_URI
    }
    credentials = service_account.Credentials.from_service_account_info(
        info, scopes=SCOPES
    )
    drive = build('drive', 'v3', credentials=credentials, cache_discovery=False)
    sheets = build('sheets', 'v4', credentials=credentials, cache_discovery=False)
    logger.info(f"Initialized Google session for {service_account_email}")
    return DriveSession(credentials=credentials, drive=drive, sheets=sheets)


def is_missing_range_error(error: BaseException) -> bool:
    """
    Best-effort check for a "sheet tab / range does not exist" API error.

    The Sheets API reports a missing tab as a generic 400 whose message says
    it is unable to parse the range; there is no dedicated error code, so the
    reason and response body are inspected for that text.
    """
    if not isinstance(error, HttpError):
        return False

    texts = [str(getattr(error, 'reason', '') or '')]
    content = getattr(error, 'content', b'') or b''
    if isinstance(content, bytes):
        content = content.decode('utf-8', errors='replace')
    texts.append(str(content))
    texts.append(str(error))

    haystack = ' '.join(texts).lower()
    return any(marker in haystack for marker in MISSING_RANGE_MARKERS)


def _escape_query(value: str) -> str:
    return value.replace('\\', '\\\\').replace("'", "\\'")


class DriveStore:
    """Read-only access to the Drive folders and spreadsheet being mirrored."""

    def __init__(self, session: DriveSession):
        """
        Initialize the store with an authenticated session.

        Args:
            session: DriveSession from initialize()
        """
        self.session = session
        self._local = threading.local()

    def _thread_http(self):
        # httplib2 connections are not thread-safe; give each worker its own.
        http = getattr(self._local, 'http', None)
        if http is None:
            http = AuthorizedHttp(self.session.credentials, http=httplib2.Http())
            self._local.http = http
        return http

    def list_files(self, folder_id: str, name: Optional[str] = None) -> List[RemoteFile]:
        """
        List non-trashed files in a folder.

        Args:
            folder_id: Drive folder id
            name: Optional exact file name to filter on

        Returns:
            List of RemoteFile objects
        """
        query = f"'{_escape_query(folder_id)}' in parents and trashed = false"
        if name:
            query = f"name = '{_escape_query(name)}' and {query}"

        files = []
        page_token = None
        while True:
            response = self.session.drive.files().list(
                q=query,
                fields=FILE_FIELDS,
                pageSize=PAGE_SIZE,
                pageToken=page_token,
                supportsAllDrives=True,
                includeItemsFromAllDrives=True
            ).execute()

            for item in response.get('files', []):
                parents = item.get('parents') or [folder_id]
                files.append(RemoteFile(
                    id=item['id'],
                    name=item['name'],
                    content_hash=item.get('md5Checksum'),
                    parent_folder_id=parents[0]
                ))

            page_token = response.get('nextPageToken')
            if not page_token:
                break

        logger.debug(f"Listed {len(files)} files in folder {folder_id}")
        return files

    def get_file_bytes(self, file_id: str) -> bytes:
        """
        Download a file's content.

        Args:
            file_id: Drive file id

        Returns:
            File content as bytes
        """
        request = self.session.drive.files().get_media(
            fileId=file_id, supportsAllDrives=True
        )
        request.http = self._thread_http()

        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)
        done = False
        while not done:
            _, done = downloader.next_chunk()
        return buffer.getvalue()

    def list_rows(self, range_spec: str, spreadsheet_id: str) -> List[List[str]]:
        """
        Read a range of cell values from a spreadsheet.

        Args:
            range_spec: A1 range such as 'tannleger!A2:H'
            spreadsheet_id: Spreadsheet id

        Returns:
            List of rows; empty when the range has no values
        """
        response = self.session.sheets.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=range_spec
        ).execute()
        rows = response.get('values', [])
        logger.debug(f"Read {len(rows)} rows from {range_spec}")
        return rows

    def get_parent_folder_id(self, file_id: str) -> Optional[str]:
        """Return the first parent folder id of a file, if any."""
        response = self.session.drive.files().get(
            fileId=file_id,
            fields='parents',
            supportsAllDrives=True
        ).execute()
        parents = response.get('parents') or []
        return parents[0] if parents else None
