"""Data models for content synchronization."""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union


DEFAULT_SCALE = 1.0
DEFAULT_POSITION = 50

GALLERY_TYPE = 'gallery'
COVER_IMAGE_TYPE = 'cover-image'

MARKDOWN_DOCUMENTS = 'markdown-documents'
ROW_SHEET = 'row-sheet'
SINGLE_IMAGE = 'single-image'


@dataclass(frozen=True)
class RemoteFile:
    """One object in the remote store, as seen during a single sync run."""
    id: str
    name: str
    content_hash: Optional[str]
    parent_folder_id: Optional[str] = None


@dataclass(frozen=True)
class SyncTarget:
    """One collection to mirror from a remote folder."""
    name: str
    remote_folder_id: str
    local_destination: str
    kind: str = MARKDOWN_DOCUMENTS


@dataclass(frozen=True)
class ManifestEntry:
    """Unit of change detection for a single download decision."""
    remote_id: str
    remote_hash: Optional[str]
    local_path: str


@dataclass(frozen=True)
class ImageConfig:
    """Zoom and focus point for a displayed image."""
    scale: float = DEFAULT_SCALE
    position_x: int = DEFAULT_POSITION
    position_y: int = DEFAULT_POSITION

    def to_dict(self) -> dict:
        return {
            'scale': self.scale,
            'positionX': self.position_x,
            'positionY': self.position_y
        }


@dataclass
class StaffRecord:
    """One roster row, as written to the staff manifest."""
    id: str
    name: str
    title: str
    description: str
    image_file: str
    active: bool
    image_config: ImageConfig = field(default_factory=ImageConfig)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'title': self.title,
            'description': self.description,
            'image': self.image_file,
            'active': self.active,
            'imageConfig': self.image_config.to_dict()
        }


@dataclass
class GalleryItem:
    """One gallery sheet row."""
    title: str
    image_file: str
    alt_text: str
    active: bool
    order: int
    image_config: ImageConfig = field(default_factory=ImageConfig)
    type: str = GALLERY_TYPE

    @property
    def is_cover_image(self) -> bool:
        return self.type == COVER_IMAGE_TYPE

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'image': self.image_file,
            'altText': self.alt_text,
            'active': self.active,
            'order': self.order,
            'imageConfig': self.image_config.to_dict(),
            'type': self.type
        }


@dataclass
class AnnouncementRecord:
    """Time-ranged announcement shown on the front page."""
    title: str
    start_date: Union[str, date, None]
    end_date: Union[str, date, None] = None
    body: str = ''

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'startDate': _date_to_json(self.start_date),
            'endDate': _date_to_json(self.end_date),
            'body': self.body
        }


@dataclass
class SyncResult:
    """Result of syncing one collection."""
    downloaded: int = 0
    skipped: int = 0
    deleted: int = 0
    written: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'downloaded': self.downloaded,
            'skipped': self.skipped,
            'deleted': self.deleted,
            'written': self.written,
            'errors': list(self.errors)
        }


def _date_to_json(value):
    if isinstance(value, date):
        return value.isoformat()
    return value
