import sqlite3
import logging
from datetime import datetime, UTC
from typing import Optional, List, Set

from ..exceptions import DatabaseError
from ..models import Library, Work, MediaFile, UpdateMediaFile

LIBRARY_COLUMNS = "id, name, location, media_type"
WORK_COLUMNS = "id, library_id, name, year, added_at"
MEDIA_FILE_COLUMNS = """
    id, work_id, library_id, target_file, raw_name, raw_year, season, episode,
    quality, container, codec, audio, original_resolution, duration, corrupt, added_at
"""

# Columns UpdateMediaFile is allowed to touch
UPDATABLE_FILE_COLUMNS = {'target_file'}


def _to_media_file(row) -> MediaFile:
    (file_id, work_id, library_id, target_file, raw_name, raw_year, season, episode,
     quality, container, codec, audio, resolution, duration, corrupt, added_at) = row
    return MediaFile(
        id=file_id, work_id=work_id, library_id=library_id, target_file=target_file,
        raw_name=raw_name, raw_year=raw_year, season=season, episode=episode,
        quality=quality, container=container, codec=codec, audio=audio,
        original_resolution=resolution, duration=duration, corrupt=bool(corrupt),
        added_at=added_at,
    )


class DBOperations:
    """
    Catalog store primitives. Every mutation runs in its own transaction;
    sqlite errors surface as DatabaseError.
    """
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Libraries ---

    def get_library_by_location(self, location: str) -> Optional[Library]:
        try:
            row = self.conn.execute(
                f"SELECT {LIBRARY_COLUMNS} FROM libraries WHERE location = ?", (location,)
            ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Library lookup failed for {location}: {e}") from e
        return Library(*row) if row else None

    def get_or_create_library(self, location: str, media_type: str, name: Optional[str] = None) -> Library:
        """
        Returns the library registered at location, registering it if needed.
        An existing library keeps its original media type.
        """
        existing = self.get_library_by_location(location)
        if existing:
            if existing.media_type != media_type:
                logging.warning(
                    f"Library {location} is registered as '{existing.media_type}', ignoring '{media_type}'"
                )
            return existing

        now_iso = datetime.now(UTC).isoformat()
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO libraries (name, location, media_type, created_at) VALUES (?, ?, ?, ?)",
                    (name or location, location, media_type, now_iso),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to register library {location}: {e}") from e

        if cur.lastrowid is None:
            raise DatabaseError("Database INSERT failed to return a row ID.")
        logging.info(f"Registered {media_type} library at {location}")
        return Library(cur.lastrowid, name or location, location, media_type)

    # --- Works ---

    def find_work(self, library_id: int, name: str, year: Optional[int] = None) -> Optional[Work]:
        """Exact (case-insensitive) match on name, and on year when one is given."""
        query = f"SELECT {WORK_COLUMNS} FROM works WHERE library_id = ? AND name = ? COLLATE NOCASE"
        params: list = [library_id, name]
        if year is not None:
            query += " AND year = ?"
            params.append(year)
        query += " ORDER BY id LIMIT 1"
        try:
            row = self.conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Work lookup failed for {name!r}: {e}") from e
        return Work(*row) if row else None

    def insert_work(self, library_id: int, name: str, year: Optional[int] = None) -> Work:
        now_iso = datetime.now(UTC).isoformat()
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO works (library_id, name, year, added_at) VALUES (?, ?, ?, ?)",
                    (library_id, name, year, now_iso),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to insert work {name!r}: {e}") from e

        if cur.lastrowid is None:
            raise DatabaseError("Database INSERT failed to return a row ID.")
        return Work(cur.lastrowid, library_id, name, year, now_iso)

    def get_work_of_file(self, media_file: MediaFile) -> Optional[Work]:
        try:
            row = self.conn.execute(
                f"SELECT {WORK_COLUMNS} FROM works WHERE id = ?", (media_file.work_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Work lookup failed for mediafile_id={media_file.id}: {e}") from e
        return Work(*row) if row else None

    def delete_work(self, work_id: int):
        try:
            with self.conn:
                cur = self.conn.execute("DELETE FROM works WHERE id = ?", (work_id,))
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to delete work_id={work_id}: {e}") from e
        if cur.rowcount == 0:
            raise DatabaseError(f"No work with id={work_id}")

    # --- Media Files ---

    def insert_media_file(self, rec: MediaFile) -> MediaFile:
        """Inserts rec (its id is ignored) and returns it with the new id."""
        now_iso = datetime.now(UTC).isoformat()
        try:
            with self.conn:
                cur = self.conn.execute("""
                    INSERT INTO media_files (
                        work_id, library_id, target_file, raw_name, raw_year, season, episode,
                        quality, container, codec, audio, original_resolution, duration,
                        corrupt, added_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    rec.work_id, rec.library_id, rec.target_file, rec.raw_name, rec.raw_year,
                    rec.season, rec.episode, rec.quality, rec.container, rec.codec, rec.audio,
                    rec.original_resolution, rec.duration, int(rec.corrupt), now_iso,
                ))
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to insert mediafile {rec.target_file}: {e}") from e

        if cur.lastrowid is None:
            raise DatabaseError("Database INSERT failed to return a row ID.")
        rec.id = cur.lastrowid
        rec.added_at = now_iso
        return rec

    def get_file_by_path(self, target_file: str) -> Optional[MediaFile]:
        """Exact match on the stored path string."""
        try:
            row = self.conn.execute(
                f"SELECT {MEDIA_FILE_COLUMNS} FROM media_files WHERE target_file = ?", (target_file,)
            ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Mediafile lookup failed for {target_file}: {e}") from e
        return _to_media_file(row) if row else None

    def get_files_of_work(self, work: Work) -> List[MediaFile]:
        try:
            rows = self.conn.execute(
                f"SELECT {MEDIA_FILE_COLUMNS} FROM media_files WHERE work_id = ? ORDER BY id", (work.id,)
            ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Mediafile listing failed for work_id={work.id}: {e}") from e
        return [_to_media_file(r) for r in rows]

    def fetch_library_files(self, library_id: int) -> List[MediaFile]:
        try:
            rows = self.conn.execute(
                f"SELECT {MEDIA_FILE_COLUMNS} FROM media_files WHERE library_id = ? ORDER BY target_file",
                (library_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Mediafile listing failed for library_id={library_id}: {e}") from e
        return [_to_media_file(r) for r in rows]

    def fetch_tracked_paths(self, library_id: int) -> Set[str]:
        """Returns every target_file the library already tracks."""
        try:
            rows = self.conn.execute(
                "SELECT target_file FROM media_files WHERE library_id = ?", (library_id,)
            ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Path listing failed for library_id={library_id}: {e}") from e
        return {r[0] for r in rows}

    def delete_file(self, file_id: int):
        """Deleting an id that no longer exists is an error, not a no-op."""
        try:
            with self.conn:
                cur = self.conn.execute("DELETE FROM media_files WHERE id = ?", (file_id,))
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to delete mediafile_id={file_id}: {e}") from e
        if cur.rowcount == 0:
            raise DatabaseError(f"No mediafile with id={file_id}")

    def update_file(self, file_id: int, update: UpdateMediaFile):
        changes = update.changes()
        if not changes:
            raise DatabaseError(f"Empty update for mediafile_id={file_id}")
        unknown = set(changes) - UPDATABLE_FILE_COLUMNS
        if unknown:
            raise DatabaseError(f"Cannot update columns {sorted(unknown)}")

        assignments = ", ".join(f"{col} = ?" for col in changes)
        try:
            with self.conn:
                cur = self.conn.execute(
                    f"UPDATE media_files SET {assignments} WHERE id = ?",
                    (*changes.values(), file_id),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update mediafile_id={file_id}: {e}") from e
        if cur.rowcount == 0:
            raise DatabaseError(f"No mediafile with id={file_id}")
