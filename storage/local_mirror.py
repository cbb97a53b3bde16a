"""Local file mirror: staleness checks, atomic writes and orphan cleanup."""
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Union

from processor.models import ManifestEntry, RemoteFile

logger = logging.getLogger(__name__)

KEEP_FILE = '.gitkeep'
CHUNK_SIZE = 64 * 1024

PathLike = Union[str, Path]


def ensure_directory(path: PathLike) -> Path:
    """Create a directory (and parents) if missing."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def file_md5(path: PathLike) -> str:
    """
    Compute the MD5 hex digest of a local file.

    Google Drive publishes md5Checksum for binary files, so the local side
    uses the same algorithm.
    """
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def manifest_entry(remote: RemoteFile, destination: PathLike) -> ManifestEntry:
    """Build the change-detection entry for a remote file in a directory."""
    return ManifestEntry(
        remote_id=remote.id,
        remote_hash=remote.content_hash,
        local_path=str(Path(destination) / remote.name)
    )


def needs_download(entry: ManifestEntry) -> bool:
    """
    Decide whether a remote file must be downloaded.

    A download is required when the local file is missing, when the remote
    metadata carries no content hash, or when the local bytes hash to a
    different value.

    Args:
        entry: Remote id/hash and the local path it mirrors to

    Returns:
        True if the local copy is stale
    """
    local_path = Path(entry.local_path)
    if not local_path.is_file():
        return True
    if not entry.remote_hash:
        return True
    return file_md5(local_path) != entry.remote_hash.lower()


def _write_atomic(path: Path, data: bytes) -> None:
    ensure_directory(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_bytes_atomic(path: PathLike, data: bytes) -> None:
    """Write bytes via a temporary file so readers never see partial content."""
    _write_atomic(Path(path), data)


def write_json_atomic(path: PathLike, payload) -> None:
    """Write a JSON manifest (UTF-8, indented) atomically."""
    text = json.dumps(payload, indent=2, ensure_ascii=False) + '\n'
    _write_atomic(Path(path), text.encode('utf-8'))
    logger.info(f"Wrote manifest {path}")


def remove_unreferenced(directory: PathLike, keep_names: Iterable[str],
                        suffix: str = None) -> List[str]:
    """
    Delete files in a directory that are no longer referenced.

    Only regular files directly inside the directory are considered, and the
    keep-file sentinel is never deleted.

    Args:
        directory: Directory to clean
        keep_names: File names that are still referenced
        suffix: If given, only files with this suffix are candidates

    Returns:
        Sorted list of deleted file names
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    keep = set(keep_names)
    keep.add(KEEP_FILE)
    deleted = []

    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.name in keep:
            continue
        if suffix and not path.name.endswith(suffix):
            continue
        path.unlink()
        deleted.append(path.name)
        logger.info(f"Deleted unreferenced file {path.name} from {directory}")

    return deleted
