import logging
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .. import config
from ..database.ops import DBOperations
from ..exceptions import DatabaseError, MetadataExtractionError, MountError
from ..metadata.extract import MetadataExtractor
from ..metadata.parse import NameParser
from ..models import Library, MediaFile, Work
from .filesystem import DiskScanner, in_hidden_dir, path_to_text


class LibraryScanner:
    """
    Ingests files of one library into the catalog.

    mount_file() handles a single new file, start() walks a directory tree,
    fix_orphans() walks the whole library for files the catalog has missed.
    """
    def __init__(self,
                 db_ops: DBOperations,
                 library: Library,
                 extractor: Optional[MetadataExtractor] = None,
                 parser: Optional[NameParser] = None):
        self.db = db_ops
        self.library = library
        self.extractor = extractor or MetadataExtractor()
        self.parser = parser or NameParser()
        self.disk = DiskScanner(config.SUPPORTED_EXTS[library.media_type])

    @property
    def root(self) -> Path:
        return Path(self.library.location)

    def is_supported(self, path: Path) -> bool:
        return self.disk.is_supported(path) and not in_hidden_dir(path, self.root)

    def mount_file(self, path: Path) -> MediaFile:
        """
        Adds one file to the catalog under its Work, creating the Work if needed.
        Mounting a path that is already tracked returns the existing record.

        Raises:
            MountError: the path is unusable or the catalog rejected the insert.
        """
        target = path_to_text(path)
        if target is None:
            raise MountError(f"Path is not representable as text: {path!r}")
        if not path.is_file():
            raise MountError(f"Not a regular file: {target}")

        try:
            existing = self.db.get_file_by_path(target)
            if existing:
                logging.debug(f"Already tracked: {target} (mediafile_id={existing.id})")
                return existing

            parsed = self.parser.parse(path, self.library.media_type)

            probe = {}
            corrupt = False
            try:
                probe = self.extractor.get_video_metadata(path)
            except MetadataExtractionError as e:
                logging.warning(f"Marking {target} as corrupt: {e}")
                corrupt = True

            work = self._find_or_create_work(parsed.title, parsed.year)
            media_file = self.db.insert_media_file(MediaFile(
                id=0,
                work_id=work.id,
                library_id=self.library.id,
                target_file=target,
                raw_name=parsed.title,
                raw_year=parsed.year,
                season=parsed.season,
                episode=parsed.episode,
                quality=parsed.quality,
                container=probe.get('container'),
                codec=probe.get('codec'),
                audio=probe.get('audio'),
                original_resolution=probe.get('original_resolution'),
                duration=probe.get('duration'),
                corrupt=corrupt,
            ))
        except DatabaseError as e:
            raise MountError(f"Catalog rejected {target}: {e}") from e

        logging.info(f"Mounted {target} -> work '{work.name}' (mediafile_id={media_file.id})")
        return media_file

    def start(self, path: Optional[Path] = None, progress: bool = False) -> int:
        """
        Recursively mounts every supported, untracked file under path
        (default: the library root). Returns the number of files mounted.
        """
        root = path or self.root
        logging.info(f"Scanning {root}...")

        tracked = self.db.fetch_tracked_paths(self.library.id)
        candidates = self.disk.iter_media_files(root)

        mounted = 0
        for file_path in tqdm(candidates, desc="Scanning", unit="file", disable=not progress):
            target = path_to_text(file_path)
            if target is None:
                logging.warning(f"Skipping non-text path: {file_path!r}")
                continue
            if target in tracked:
                continue
            try:
                self.mount_file(file_path)
            except MountError as e:
                logging.warning(f"Failed to mount file={file_path} e={e}")
                continue
            tracked.add(target)
            mounted += 1

        logging.info(f"Scan of {root} complete. Mounted {mounted} files.")
        return mounted

    def fix_orphans(self) -> int:
        """
        Mounts files present under the library root that have no catalog
        record, e.g. ones whose create event was lost or arrived out of order.
        """
        root = self.root
        tracked = self.db.fetch_tracked_paths(self.library.id)

        orphans = []
        for file_path in self.disk.iter_media_files(root):
            target = path_to_text(file_path)
            if target is not None and target not in tracked:
                orphans.append(file_path)

        if not orphans:
            return 0

        logging.info(f"Found {len(orphans)} orphan files under {root}")
        fixed = 0
        for file_path in orphans:
            try:
                self.mount_file(file_path)
                fixed += 1
            except MountError as e:
                logging.warning(f"Failed to mount orphan file={file_path} e={e}")
        return fixed

    def _find_or_create_work(self, name: str, year: Optional[int]) -> Work:
        # Shows group every episode under one work regardless of year
        lookup_year = year if self.library.media_type == 'movie' else None
        work = self.db.find_work(self.library.id, name, lookup_year)
        if work:
            return work
        return self.db.insert_work(self.library.id, name, year)
