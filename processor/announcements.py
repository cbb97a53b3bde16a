"""Status classification and ordering for front-page announcements."""
import enum
import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Optional

import frontmatter

from processor.models import AnnouncementRecord

logger = logging.getLogger(__name__)

FAR_FUTURE = date(9999, 12, 31)

_EDITOR_DATA = re.compile(r'<!--stackedit_data-->.*?<!--/stackedit_data-->', re.DOTALL)


class Status(enum.IntEnum):
    """Temporal status, ordered by display priority."""
    ACTIVE = 0
    PLANNED = 1
    EXPIRED = 2
    UNKNOWN = 3


def today_utc(now: Optional[datetime] = None) -> date:
    """Return the UTC calendar day for now (or the given moment)."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def parse_day(value) -> Optional[date]:
    """
    Parse a date-like value to a calendar day.

    Accepts date and datetime objects (as YAML front matter produces) and ISO
    strings with or without a time part. Aware datetimes are converted to UTC
    before the time of day is dropped.

    Returns:
        date or None if the value cannot be parsed
    """
    if isinstance(value, datetime):
        return today_utc(value)
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return today_utc(datetime.fromisoformat(text.replace('Z', '+00:00')))
    except ValueError:
        return None


def _bounds(record: AnnouncementRecord):
    start = parse_day(record.start_date)
    if record.end_date is None or record.end_date == '':
        end = FAR_FUTURE
    else:
        end = parse_day(record.end_date)
    return start, end


def classify(record: AnnouncementRecord, today: date) -> Status:
    """
    Classify an announcement relative to today.

    The range is inclusive on both ends; an announcement ending today is
    still active for the whole day.
    """
    start, end = _bounds(record)
    if start is None or end is None:
        return Status.UNKNOWN
    if today < start:
        return Status.PLANNED
    if today > end:
        return Status.EXPIRED
    return Status.ACTIVE


def _sort_key(record: AnnouncementRecord, today: date):
    status = classify(record, today)
    start, end = _bounds(record)
    if status == Status.ACTIVE:
        return (status, end.toordinal())
    if status == Status.PLANNED:
        return (status, start.toordinal())
    if status == Status.EXPIRED:
        return (status, -end.toordinal())
    return (status, 0)


def sort_announcements(records: List[AnnouncementRecord],
                       today: Optional[date] = None) -> List[AnnouncementRecord]:
    """
    Return announcements in display priority order.

    Active ones first (soonest ending first), then planned (soonest starting
    first), then expired (most recently ended first), then unknown in input
    order. The sort is stable.
    """
    if today is None:
        today = today_utc()
    return sorted(records, key=lambda record: _sort_key(record, today))


def active_announcements(records: List[AnnouncementRecord],
                         now: Optional[datetime] = None) -> List[AnnouncementRecord]:
    """Return the announcements active now, in display order."""
    today = today_utc(now)
    return [
        record for record in sort_announcements(records, today)
        if classify(record, today) == Status.ACTIVE
    ]


def select_live(records: List[AnnouncementRecord],
                now: Optional[datetime] = None) -> Optional[AnnouncementRecord]:
    """
    Select the single announcement to show right now.

    When several active ranges overlap, the one ending soonest wins; equal
    end dates keep the collection's own order.
    """
    active = active_announcements(records, now)
    return active[0] if active else None


def clean_body(text: Optional[str]) -> str:
    """Strip editor metadata blocks and surrounding whitespace."""
    if not text:
        return ''
    return _EDITOR_DATA.sub('', text).strip()


def load_announcements(directory: Path) -> List[AnnouncementRecord]:
    """
    Load announcement documents from a directory of markdown files.

    Documents are returned in filename order. A document whose front matter
    cannot be read is logged and skipped.
    """
    records = []
    for path in sorted(Path(directory).glob('*.md')):
        if path.name.startswith('_'):
            continue
        try:
            post = frontmatter.loads(path.read_text(encoding='utf-8'))
        except Exception as e:
            logger.warning(f"Failed to read announcement '{path.name}': {e}")
            continue

        records.append(AnnouncementRecord(
            title=str(post.get('title', path.stem)),
            start_date=post.get('startDate'),
            end_date=post.get('endDate'),
            body=clean_body(post.content)
        ))

    logger.info(f"Loaded {len(records)} announcements from {directory}")
    return records
