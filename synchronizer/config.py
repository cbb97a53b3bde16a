"""Environment configuration for a sync run."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from processor.models import MARKDOWN_DOCUMENTS, SyncTarget

REQUIRED_VARIABLES = {
    'service_account_email': 'GOOGLE_SERVICE_ACCOUNT_EMAIL',
    'private_key': 'GOOGLE_PRIVATE_KEY',
    'spreadsheet_id': 'GOOGLE_SHEET_ID',
    'services_folder_id': 'GOOGLE_DRIVE_TJENESTER_FOLDER_ID',
    'messages_folder_id': 'GOOGLE_DRIVE_MELDINGER_FOLDER_ID',
    'staff_folder_id': 'GOOGLE_DRIVE_TANNLEGER_FOLDER_ID'
}

AUTOMATION_ACTORS = frozenset({'dependabot[bot]', 'renovate[bot]'})

DEFAULT_MAX_WORKERS = 4


class MissingConfigurationError(Exception):
    """Raised when required environment variables are not set."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing required configuration: " + ', '.join(self.missing)
        )


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one synchronization run."""
    service_account_email: str = ''
    private_key: str = ''
    spreadsheet_id: str = ''
    services_folder_id: str = ''
    messages_folder_id: str = ''
    staff_folder_id: str = ''
    gallery_folder_id: Optional[str] = None
    content_root: Path = field(default_factory=Path.cwd)
    staff_range: str = 'tannleger!A2:H'
    gallery_range: str = 'galleri!A2:I'
    settings_range: str = 'Innstillinger!A2:C'
    cover_setting_key: str = 'forsidebilde'
    max_workers: int = DEFAULT_MAX_WORKERS
    github_actor: str = ''

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Read configuration from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            SyncConfig instance; required values may be empty
        """
        if environ is None:
            environ = os.environ

        values = {
            attr: environ.get(name, '').strip()
            for attr, name in REQUIRED_VARIABLES.items()
        }

        try:
            max_workers = int(environ.get('SYNC_MAX_WORKERS', DEFAULT_MAX_WORKERS))
        except ValueError:
            max_workers = DEFAULT_MAX_WORKERS

        return cls(
            gallery_folder_id=environ.get('GOOGLE_DRIVE_GALLERY_FOLDER_ID') or None,
            content_root=Path(environ.get('CONTENT_ROOT') or Path.cwd()),
            max_workers=max(1, max_workers),
            github_actor=environ.get('GITHUB_ACTOR', ''),
            **values
        )

    def missing_settings(self) -> List[str]:
        """Return the names of required variables that are not set."""
        return [
            name for attr, name in REQUIRED_VARIABLES.items()
            if not getattr(self, attr)
        ]

    @property
    def is_automated_dependency_run(self) -> bool:
        """True for CI runs started by a dependency-update bot without secrets."""
        return self.github_actor in AUTOMATION_ACTORS

    # Local paths

    @property
    def staff_assets(self) -> Path:
        return self.content_root / 'src' / 'assets' / 'tannleger'

    @property
    def staff_manifest(self) -> Path:
        return self.content_root / 'src' / 'content' / 'tannleger.json'

    @property
    def gallery_assets(self) -> Path:
        return self.content_root / 'src' / 'assets' / 'galleri'

    @property
    def gallery_manifest(self) -> Path:
        return self.content_root / 'src' / 'content' / 'galleri.json'

    @property
    def settings_manifest(self) -> Path:
        return self.content_root / 'src' / 'content' / 'innstillinger.json'

    @property
    def cover_assets(self) -> Path:
        return self.content_root / 'src' / 'assets' / 'forsidebilde'

    @property
    def cover_output(self) -> Path:
        return self.content_root / 'public' / 'forsidebilde.jpg'

    @property
    def messages_manifest(self) -> Path:
        return self.content_root / 'src' / 'content' / 'meldinger.json'

    def document_targets(self) -> List[SyncTarget]:
        """Markdown collections, in the order they are synchronized."""
        content = self.content_root / 'src' / 'content'
        return [
            SyncTarget(
                name='tjenester',
                remote_folder_id=self.services_folder_id,
                local_destination=str(content / 'tjenester'),
                kind=MARKDOWN_DOCUMENTS
            ),
            SyncTarget(
                name='meldinger',
                remote_folder_id=self.messages_folder_id,
                local_destination=str(content / 'meldinger'),
                kind=MARKDOWN_DOCUMENTS
            )
        ]

    def describe(self) -> Dict[str, str]:
        """Non-secret summary for logging."""
        return {
            'spreadsheet_id': self.spreadsheet_id,
            'content_root': str(self.content_root),
            'max_workers': str(self.max_workers)
        }
