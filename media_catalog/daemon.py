"""
Keeps the catalog in step with filesystem changes under one library root.

The daemon owns a single sequential loop: every notification is handled to
completion before the next one is taken, so all catalog writes made by one
daemon are serialized. Handlers re-resolve records from the catalog on every
call and treat a missing record as "nothing to do", which makes duplicate,
missing or out-of-order events harmless.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

from . import config
from .database.ops import DBOperations
from .exceptions import DatabaseError, MountError
from .models import Library, MediaFile, UpdateMediaFile, Work
from .scanning.filesystem import path_to_text
from .scanning.ingest import LibraryScanner
from .watching.events import Create, Notification, Remove, Rename, WatchError
from .watching.source import WatchSource


class ScannerDaemon:
    def __init__(self,
                 db_ops: DBOperations,
                 library: Library,
                 scanner: Optional[LibraryScanner] = None,
                 logger: Optional[logging.Logger] = None,
                 source_factory: Callable[..., WatchSource] = WatchSource):
        self.db = db_ops
        self.library = library
        self.scanner = scanner or LibraryScanner(db_ops, library)
        self.log = logger or logging.getLogger("media_catalog.daemon")
        self._source_factory = source_factory
        self._source: Optional[WatchSource] = None
        self._stop_requested = False

    def start_daemon(self):
        """
        Watches the library root and reconciles until stop() is called or the
        source closes.

        Raises:
            WatchSetupError: the watch could not be established.
        """
        source = self._source_factory(
            Path(self.library.location), recursive=True, delay=config.DEBOUNCE_SECONDS
        )
        source.start()
        self._source = source
        if self._stop_requested:
            source.close()

        try:
            for notification in source:
                self.dispatch(notification)
        finally:
            source.close()
            self._source = None

    def stop(self):
        """Ends start_daemon() once the current notification is handled. Thread-safe."""
        self._stop_requested = True
        source = self._source
        if source is not None:
            source.close()

    def dispatch(self, notification: Notification):
        try:
            if isinstance(notification, Create):
                self.handle_create(Path(notification.path))
            elif isinstance(notification, Rename):
                self.handle_rename(Path(notification.from_path), Path(notification.to_path))
            elif isinstance(notification, Remove):
                self.handle_remove(Path(notification.path))
            elif isinstance(notification, WatchError):
                self.log.error(f"Received error: {notification.error!r}")
            else:
                self.log.debug(f"Tried to handle unmatched event {notification!r}")
        except Exception:
            # A handler bug must not end the watch
            self.log.exception(f"Unhandled error while processing {notification!r}")

    def handle_create(self, path: Path):
        self.log.debug(f"Received handle_create event: {path}")

        if path.is_file() and self.scanner.is_supported(path):
            try:
                self.scanner.mount_file(path)
            except (MountError, DatabaseError) as e:
                self.log.warning(f"Failed to mount file={path} e={e}")
                return
        elif path.is_dir():
            self.scanner.start(path)

        self.scanner.fix_orphans()

    def handle_remove(self, path: Path):
        self.log.debug(f"Received handle_remove event: {path}")

        media_file = self._resolve_file(path)
        if media_file is None:
            return

        work = self._resolve_work(media_file)

        try:
            self.db.delete_file(media_file.id)
        except DatabaseError as e:
            self.log.error(f"Failed to remove mediafile because e={e}")
            return

        # A work with no files left is a ghost entry and gets purged
        if work is None:
            return
        try:
            remaining = self.db.get_files_of_work(work)
        except DatabaseError as e:
            self.log.error(f"Failed to list files of work_id={work.id} e={e}")
            return
        if remaining:
            return

        try:
            self.db.delete_work(work.id)
        except DatabaseError as e:
            self.log.error(f"Failed to delete ghost work_id={work.id} e={e}")
            return
        self.log.info(f"Deleted ghost work '{work.name}' (work_id={work.id})")

    def handle_rename(self, from_path: Path, to_path: Path):
        self.log.debug(f"Received handle_rename event: {from_path} -> {to_path}")

        media_file = self._resolve_file(from_path)
        if media_file is None:
            return

        target = path_to_text(to_path)
        if target is None:
            self.log.error(
                f"Failed to update target file {from_path} -> {to_path!r} for "
                f"mediafile_id={media_file.id}: destination is not representable as text"
            )
            return

        try:
            self.db.update_file(media_file.id, UpdateMediaFile(target_file=target))
        except DatabaseError as e:
            self.log.error(
                f"Failed to update target file {from_path} -> {to_path} for "
                f"mediafile_id={media_file.id}: {e}"
            )

    def _resolve_file(self, path: Path) -> Optional[MediaFile]:
        """The MediaFile stored at path, or None if untracked or unrepresentable."""
        text = path_to_text(path)
        if text is None:
            return None
        try:
            return self.db.get_file_by_path(text)
        except DatabaseError as e:
            self.log.warning(f"Lookup failed for {path}, skipping event: {e}")
            return None

    def _resolve_work(self, media_file: MediaFile) -> Optional[Work]:
        try:
            return self.db.get_work_of_file(media_file)
        except DatabaseError as e:
            self.log.warning(f"Work lookup failed for mediafile_id={media_file.id}: {e}")
            return None
