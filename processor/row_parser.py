"""Row parser for roster, gallery and settings sheets."""
import logging
import math
import re
import unicodedata
from typing import List, Optional, Sequence

from processor.models import (
    COVER_IMAGE_TYPE,
    DEFAULT_POSITION,
    DEFAULT_SCALE,
    GALLERY_TYPE,
    GalleryItem,
    ImageConfig,
    StaffRecord,
)

logger = logging.getLogger(__name__)

MIN_SCALE = 0.5
MAX_SCALE = 2.0
MIN_POSITION = 0
MAX_POSITION = 100

# Rows without a usable order value sort after every numbered row.
UNORDERED = 9999

AFFIRMATIVE_FLAGS = frozenset({'ja', 'yes', 'true', 'x', '1'})

STAFF_FIELDS = (
    'name', 'title', 'description', 'image_file', 'active',
    'scale', 'position_x', 'position_y'
)
GALLERY_FIELDS = (
    'title', 'image_file', 'alt_text', 'active', 'order',
    'scale', 'position_x', 'position_y', 'type'
)

_TRANSLITERATION = str.maketrans({
    'æ': 'ae', 'Æ': 'ae',
    'ø': 'o', 'Ø': 'o',
    'å': 'a', 'Å': 'a'
})


def row_to_fields(row: Sequence, fields: Sequence[str]) -> dict:
    """
    Map a positional sheet row onto named fields.

    Short rows (the Sheets API drops empty trailing cells) are padded with
    empty strings, and extra cells beyond the known columns are ignored.

    Args:
        row: Cell values as returned by the Sheets API
        fields: Ordered column names

    Returns:
        Dictionary of field name to stripped string value
    """
    values = {}
    for index, name in enumerate(fields):
        cell = row[index] if index < len(row) else ''
        values[name] = '' if cell is None else str(cell).strip()
    return values


def is_active_flag(value: Optional[str]) -> bool:
    """Return True for an affirmative marker such as 'Ja' or 'yes'."""
    if not value:
        return False
    return value.strip().lower() in AFFIRMATIVE_FLAGS


def slugify(name: str) -> str:
    """
    Generate a URL-safe id from a person's name.

    Norwegian letters are transliterated before NFKD normalization drops
    the remaining non-ASCII characters.
    """
    text = name.translate(_TRANSLITERATION)
    text = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    text = re.sub(r'[^a-z0-9]+', '-', text.lower().strip())
    return text.strip('-')


def _parse_number(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(',', '.')
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp_scale(value) -> float:
    """Clamp a zoom factor into [0.5, 2.0]; unusable input gives 1.0."""
    number = _parse_number(value)
    if number is None:
        return DEFAULT_SCALE
    return min(MAX_SCALE, max(MIN_SCALE, number))


def normalize_position(value) -> int:
    """Return a focus percentage in [0, 100], or 50 when out of range."""
    number = _parse_number(value)
    if number is None or number < MIN_POSITION or number > MAX_POSITION:
        return DEFAULT_POSITION
    return int(math.floor(number + 0.5))


def build_image_config(scale=None, position_x=None, position_y=None) -> ImageConfig:
    """
    Build a complete, in-bounds image configuration.

    Args:
        scale: Zoom factor (clamped to [0.5, 2.0])
        position_x: Horizontal focus percentage (50 when outside [0, 100])
        position_y: Vertical focus percentage (50 when outside [0, 100])

    Returns:
        ImageConfig with every field present
    """
    return ImageConfig(
        scale=clamp_scale(scale),
        position_x=normalize_position(position_x),
        position_y=normalize_position(position_y)
    )


def parse_staff_row(row: Sequence) -> Optional[StaffRecord]:
    """
    Parse a roster row into a StaffRecord.

    Args:
        row: [name, title, description, imageFile, activeFlag, scale?, posX?, posY?]

    Returns:
        StaffRecord, or None when the row has no name
    """
    values = row_to_fields(row, STAFF_FIELDS)
    if not values['name']:
        logger.warning("Skipping roster row without a name")
        return None

    return StaffRecord(
        id=slugify(values['name']),
        name=values['name'],
        title=values['title'],
        description=values['description'],
        image_file=values['image_file'],
        active=is_active_flag(values['active']),
        image_config=build_image_config(
            values['scale'], values['position_x'], values['position_y']
        )
    )


def parse_gallery_row(row: Sequence) -> Optional[GalleryItem]:
    """
    Parse a gallery row into a GalleryItem.

    The type column was added later; eight-column rows are ordinary gallery
    items.

    Args:
        row: [title, imageFile, altText, activeFlag, order, scale?, posX?, posY?, type?]

    Returns:
        GalleryItem, or None when the row has no image file
    """
    values = row_to_fields(row, GALLERY_FIELDS)
    if not values['image_file']:
        logger.warning(f"Skipping gallery row without an image: '{values['title']}'")
        return None

    order = _parse_number(values['order'])
    item_type = values['type'].lower()

    return GalleryItem(
        title=values['title'],
        image_file=values['image_file'],
        alt_text=values['alt_text'],
        active=is_active_flag(values['active']),
        order=int(order) if order is not None else UNORDERED,
        image_config=build_image_config(
            values['scale'], values['position_x'], values['position_y']
        ),
        type=COVER_IMAGE_TYPE if item_type == COVER_IMAGE_TYPE else GALLERY_TYPE
    )


def parse_staff_rows(rows: List[Sequence]) -> List[StaffRecord]:
    """Parse roster rows, keeping only active staff in sheet order."""
    records = []
    for row in rows:
        record = parse_staff_row(row)
        if record and record.active:
            records.append(record)
    return records


def parse_settings_rows(rows: List[Sequence]) -> dict:
    """Turn a flat [key, value, note?] sheet into a key to value mapping."""
    settings = {}
    for row in rows:
        values = row_to_fields(row, ('key', 'value'))
        if values['key']:
            settings[values['key']] = values['value']
    return settings
