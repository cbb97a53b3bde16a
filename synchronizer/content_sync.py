"""Per-collection synchronization from Google Sheets/Drive to local files."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from gdrive.drive_store import is_missing_range_error
from processor.announcements import load_announcements
from processor.models import GalleryItem, ImageConfig, RemoteFile, SyncResult, SyncTarget
from processor.row_parser import (
    build_image_config,
    parse_gallery_row,
    parse_settings_rows,
    parse_staff_rows,
)
from storage.image_crop import crop_to_fixed_aspect
from storage.local_mirror import (
    ensure_directory,
    manifest_entry,
    needs_download,
    remove_unreferenced,
    write_bytes_atomic,
    write_json_atomic,
)
from synchronizer.config import SyncConfig

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = '.md'


def _is_plain_file_name(name: str) -> bool:
    return bool(name) and name not in ('.', '..') and '/' not in name and '\\' not in name


class ContentSynchronizer:
    """Mirror the clinic's Sheets/Drive content into the site's source tree."""

    def __init__(self, store, config: SyncConfig):
        """
        Initialize the synchronizer.

        Args:
            store: Remote store (DriveStore or a compatible object)
            config: SyncConfig for this run
        """
        self.store = store
        self.config = config
        self.results: Dict[str, SyncResult] = {}
        self._settings: Optional[dict] = None
        self._gallery_folder_id: Optional[str] = None

    # Shared helpers

    def _download_if_stale(self, remote: RemoteFile, destination: Path,
                           result: SyncResult) -> bool:
        entry = manifest_entry(remote, destination)
        if not needs_download(entry):
            logger.debug(f"Unchanged, skipping {remote.name}")
            result.skipped += 1
            return False

        data = self.store.get_file_bytes(remote.id)
        write_bytes_atomic(entry.local_path, data)
        result.downloaded += 1
        logger.info(f"Downloaded {remote.name} ({len(data)} bytes)")
        return True

    def _sync_images(self, image_names: Iterable[str], folder_id: str,
                     destination: Path, result: SyncResult) -> None:
        names = [name for name in dict.fromkeys(image_names) if name]
        if not names:
            return

        remote_by_name = {
            remote.name: remote for remote in self.store.list_files(folder_id)
        }

        for name in names:
            if not _is_plain_file_name(name):
                message = f"Ignoring image with unsafe name: {name}"
                logger.warning(message)
                result.errors.append(message)
                continue

            remote = remote_by_name.get(name)
            if remote is None:
                message = f"Image not found on Drive: {name}"
                logger.warning(message)
                result.errors.append(message)
                continue

            try:
                self._download_if_stale(remote, destination, result)
            except Exception as e:
                message = f"Failed to download image {name}: {e}"
                logger.warning(message)
                result.errors.append(message)

    def _read_gallery_rows(self) -> Optional[List[list]]:
        """Read gallery rows, or None when the gallery tab does not exist."""
        try:
            return self.store.list_rows(self.config.gallery_range, self.config.spreadsheet_id)
        except Exception as e:
            if is_missing_range_error(e):
                return None
            raise

    def _resolve_gallery_folder(self) -> Optional[str]:
        if self._gallery_folder_id is None:
            self._gallery_folder_id = (
                self.config.gallery_folder_id
                or self.store.get_parent_folder_id(self.config.spreadsheet_id)
            )
            if self._gallery_folder_id:
                logger.info(f"Gallery images folder: {self._gallery_folder_id}")
        return self._gallery_folder_id

    def _gallery_folder_or_error(self, result: SyncResult) -> Optional[str]:
        folder_id = self._resolve_gallery_folder()
        if not folder_id:
            message = (
                "Could not resolve the gallery images folder; set "
                "GOOGLE_DRIVE_GALLERY_FOLDER_ID or share the spreadsheet's folder"
            )
            logger.warning(message)
            result.errors.append(message)
        return folder_id

    # Collections

    def sync_settings(self) -> dict:
        """
        Mirror the flat settings sheet to a JSON mapping.

        The settings sheet only feeds optional values such as the cover image
        fallback, so read failures are logged and the existing manifest is
        left in place.

        Returns:
            Mapping of setting key to value (empty when the sheet is unavailable)
        """
        result = SyncResult()
        self.results['innstillinger'] = result

        try:
            rows = self.store.list_rows(self.config.settings_range, self.config.spreadsheet_id)
        except Exception as e:
            if not is_missing_range_error(e):
                message = f"Could not read settings sheet: {e}"
                logger.warning(message)
                result.errors.append(message)
                self._settings = {}
                return self._settings
            logger.warning(f"Settings range {self.config.settings_range} not found")
            rows = []

        settings = parse_settings_rows(rows)
        write_json_atomic(self.config.settings_manifest, settings)
        result.written = len(settings)
        self._settings = settings
        return settings

    def sync_row_collection(self, sheet_range: str, folder_id: str,
                            destination: Path, manifest_path: Path) -> int:
        """
        Mirror the staff roster sheet and its portraits.

        The sheet read is not caught: without the roster the site cannot be
        built. Image failures are logged per image and do not stop the run.

        Args:
            sheet_range: A1 range of the roster rows
            folder_id: Drive folder holding the portraits
            destination: Local portrait directory
            manifest_path: JSON file to write

        Returns:
            Number of active staff records written
        """
        logger.info(f"Syncing staff roster from {sheet_range}")
        result = SyncResult()
        self.results['tannleger'] = result
        destination = ensure_directory(destination)

        rows = self.store.list_rows(sheet_range, self.config.spreadsheet_id)
        records = parse_staff_rows(rows)
        image_names = [record.image_file for record in records if record.image_file]

        self._sync_images(image_names, folder_id, destination, result)

        write_json_atomic(manifest_path, [record.to_dict() for record in records])
        result.written = len(records)

        result.deleted = len(remove_unreferenced(destination, image_names))

        logger.info(
            f"Staff roster synced: {result.written} records, "
            f"{result.downloaded} downloaded, {result.skipped} unchanged, "
            f"{result.deleted} deleted"
        )
        return len(records)

    def sync_document_collection(self, target: SyncTarget) -> SyncResult:
        """
        Mirror a Drive folder of markdown documents.

        Local documents missing remotely are deleted, changed documents are
        downloaded in parallel, and unchanged ones are left alone. An empty
        remote folder is reported and leaves local files untouched.

        Args:
            target: Collection to synchronize

        Returns:
            SyncResult for the collection
        """
        logger.info(f"Syncing document collection '{target.name}'")
        result = SyncResult()
        self.results[target.name] = result
        destination = ensure_directory(target.local_destination)

        remote_files = self.store.list_files(target.remote_folder_id)
        if not remote_files:
            logger.warning(
                f"No files found for '{target.name}'; check folder id and "
                f"service account access"
            )
            return result

        documents = []
        for remote in remote_files:
            if remote.name.endswith(MARKDOWN_SUFFIX) and _is_plain_file_name(remote.name):
                documents.append(remote)
            else:
                logger.debug(f"Skipping non-markdown file {remote.name}")

        deleted = remove_unreferenced(
            destination, [doc.name for doc in documents], suffix=MARKDOWN_SUFFIX
        )
        result.deleted = len(deleted)

        stale = [
            doc for doc in documents
            if needs_download(manifest_entry(doc, destination))
        ]
        result.skipped = len(documents) - len(stale)

        failures = []
        if stale:
            workers = min(self.config.max_workers, len(stale))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(self.store.get_file_bytes, doc.id): doc
                    for doc in stale
                }
                for future in as_completed(futures):
                    doc = futures[future]
                    try:
                        write_bytes_atomic(destination / doc.name, future.result())
                        result.downloaded += 1
                        logger.info(f"Downloaded document {doc.name}")
                    except Exception as e:
                        logger.error(f"Failed to download document {doc.name}: {e}")
                        result.errors.append(f"{doc.name}: {e}")
                        failures.append(e)

        logger.info(
            f"Collection '{target.name}' synced: {result.downloaded} downloaded, "
            f"{result.skipped} unchanged, {result.deleted} deleted"
        )

        if failures:
            raise failures[0]
        return result

    def sync_gallery(self) -> SyncResult:
        """
        Mirror the gallery sheet and its images.

        A missing gallery tab produces an empty manifest; any other API error
        propagates. The cover-image row is never part of the gallery manifest.

        Returns:
            SyncResult for the gallery
        """
        logger.info("Syncing gallery")
        result = SyncResult()
        self.results['galleri'] = result
        destination = ensure_directory(self.config.gallery_assets)

        rows = self._read_gallery_rows()
        if rows is None:
            logger.warning(
                f"Gallery range {self.config.gallery_range} not found; "
                f"writing empty gallery"
            )
            write_json_atomic(self.config.gallery_manifest, [])
            return result

        items = [item for item in map(parse_gallery_row, rows) if item]
        gallery = sorted(
            (item for item in items if item.active and not item.is_cover_image),
            key=lambda item: item.order
        )
        image_names = [item.image_file for item in gallery]

        folder_id = self._gallery_folder_or_error(result) if image_names else None
        if folder_id:
            self._sync_images(image_names, folder_id, destination, result)

        write_json_atomic(self.config.gallery_manifest, [item.to_dict() for item in gallery])
        result.written = len(gallery)
        if folder_id or not image_names:
            result.deleted = len(remove_unreferenced(destination, image_names))

        logger.info(
            f"Gallery synced: {result.written} items, {result.downloaded} downloaded, "
            f"{result.skipped} unchanged, {result.deleted} deleted"
        )
        return result

    def _find_cover_row(self) -> Optional[GalleryItem]:
        try:
            rows = self._read_gallery_rows()
        except Exception as e:
            logger.warning(f"Could not read gallery sheet for cover image: {e}")
            return None

        for row in rows or []:
            item = parse_gallery_row(row)
            if item and item.is_cover_image and item.active:
                return item
        return None

    def _settings_for_cover(self) -> dict:
        if self._settings is None:
            self.sync_settings()
        return self._settings

    def resolve_cover_image(self):
        """
        Find the cover image file name and crop settings.

        The gallery sheet's active cover row wins; otherwise the settings
        sheet's cover key is used.

        Returns:
            Tuple of (file name or None, ImageConfig)
        """
        cover = self._find_cover_row()
        if cover:
            return cover.image_file, cover.image_config

        settings = self._settings_for_cover()
        key = self.config.cover_setting_key
        filename = settings.get(key, '').strip()
        image_config = build_image_config(
            settings.get(f'{key}Skala'),
            settings.get(f'{key}X'),
            settings.get(f'{key}Y')
        )
        return (filename or None), image_config

    def sync_cover_image(self) -> Optional[str]:
        """
        Mirror the cover image source and regenerate its 1200x630 crop.

        The crop is always regenerated, since the zoom and focus point can
        change without the source image changing.

        Returns:
            Cover file name, or None when no cover image is configured
        """
        result = SyncResult()
        self.results['forsidebilde'] = result

        filename, image_config = self.resolve_cover_image()
        if not filename:
            logger.info("No cover image configured; skipping")
            return None
        if not _is_plain_file_name(filename):
            message = f"Ignoring cover image with unsafe name: {filename}"
            logger.warning(message)
            result.errors.append(message)
            return None

        destination = ensure_directory(self.config.cover_assets)
        source_path = destination / filename

        folder_id = self._gallery_folder_or_error(result)
        if folder_id:
            self._download_cover(folder_id, filename, destination, result)

        if not source_path.is_file():
            logger.warning(f"No local copy of cover image {filename}; crop not generated")
            return None

        result.deleted = len(remove_unreferenced(destination, [filename]))
        self._crop_cover(source_path, image_config)
        result.written = 1
        return filename

    def _download_cover(self, folder_id: str, filename: str, destination: Path,
                        result: SyncResult) -> None:
        remotes = self.store.list_files(folder_id, name=filename)
        if not remotes:
            message = f"Cover image not found on Drive: {filename}"
            logger.warning(message)
            result.errors.append(message)
            return

        try:
            self._download_if_stale(remotes[0], destination, result)
        except Exception as e:
            message = f"Failed to download cover image {filename}: {e}"
            logger.warning(message)
            result.errors.append(message)

    def _crop_cover(self, source_path: Path, image_config: ImageConfig) -> None:
        crop_to_fixed_aspect(
            source_path,
            self.config.cover_output,
            scale=image_config.scale,
            focus_x=image_config.position_x,
            focus_y=image_config.position_y
        )

    def export_announcements(self, directory: Path, manifest_path: Path) -> int:
        """
        Write the announcements manifest from mirrored markdown documents.

        Returns:
            Number of announcements written
        """
        records = load_announcements(directory)
        write_json_atomic(manifest_path, [record.to_dict() for record in records])
        return len(records)
