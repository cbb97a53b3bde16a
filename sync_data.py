"""Build-time entry point: mirror clinic content from Google Sheets/Drive."""
import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from gdrive.drive_store import DriveStore, initialize
from processor.models import SyncResult
from synchronizer.config import MissingConfigurationError, SyncConfig
from synchronizer.content_sync import ContentSynchronizer

logger = logging.getLogger(__name__)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # googleapiclient logs every discovery and request at INFO
    logging.getLogger('googleapiclient').setLevel(logging.WARNING)


def validate_config(config: SyncConfig) -> None:
    """
    Check required settings before any network I/O.

    Raises:
        MissingConfigurationError: If any required variable is missing
    """
    missing = config.missing_settings()
    if missing:
        raise MissingConfigurationError(missing)


def run_sync(config: SyncConfig, store=None) -> Dict[str, SyncResult]:
    """
    Run every collection sync in a fixed order.

    Order: settings, staff roster, gallery, cover image, then each markdown
    collection, then the announcements manifest. The first failure of a
    required collection aborts the run.

    Args:
        config: SyncConfig for this run
        store: Remote store; a DriveStore is created when omitted

    Returns:
        Mapping of collection name to SyncResult
    """
    validate_config(config)

    if store is None:
        store = DriveStore(initialize(config.service_account_email, config.private_key))

    synchronizer = ContentSynchronizer(store, config)

    synchronizer.sync_settings()
    synchronizer.sync_row_collection(
        config.staff_range,
        config.staff_folder_id,
        config.staff_assets,
        config.staff_manifest
    )
    synchronizer.sync_gallery()
    synchronizer.sync_cover_image()

    targets = config.document_targets()
    for target in targets:
        synchronizer.sync_document_collection(target)

    messages = next(target for target in targets if target.name == 'meldinger')
    announcements = synchronizer.export_announcements(
        Path(messages.local_destination), config.messages_manifest
    )
    synchronizer.results['meldinger'].written = announcements

    return synchronizer.results


def _summary(results: Dict[str, SyncResult]) -> dict:
    return {name: result.to_dict() for name, result in results.items()}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command-line entry point.

    Returns:
        Process exit status: 0 on success (or when a dependency-update bot
        runs without secrets), 1 on failure
    """
    parser = argparse.ArgumentParser(
        description='Synchronize site content from Google Sheets and Drive'
    )
    parser.add_argument('--log-level', default=None,
                        help='Logging level (default: LOG_LEVEL or INFO)')
    parser.add_argument('--env-file', default=None,
                        help='Path to a .env file (default: ./.env)')
    args = parser.parse_args(argv)

    load_dotenv(dotenv_path=args.env_file)
    setup_logging(args.log_level or os.environ.get('LOG_LEVEL', 'INFO'))

    config = SyncConfig.from_env()
    start_time = time.time()
    logger.info("Content sync started", extra=config.describe())

    try:
        results = run_sync(config)
    except MissingConfigurationError as e:
        if config.is_automated_dependency_run:
            logger.warning(
                f"Skipping content sync for {config.github_actor}: {e}"
            )
            return 0
        logger.error(str(e))
        return 1
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Content sync failed after {round(duration, 2)}s: "
            f"{type(e).__name__}: {e}",
            exc_info=True
        )
        return 1

    duration = time.time() - start_time
    logger.info(
        f"Content sync completed in {round(duration, 2)}s: "
        f"{json.dumps(_summary(results), ensure_ascii=False)}"
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
