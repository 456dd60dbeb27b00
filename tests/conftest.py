import pytest
import sqlite3
from media_catalog.database.schema import init_schema
from media_catalog.database.ops import DBOperations
from media_catalog.models import MediaFile

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    c.execute("PRAGMA foreign_keys=ON;")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)

@pytest.fixture
def library(db_ops, tmp_path):
    """A movie library rooted in a fresh temporary directory."""
    root = tmp_path / "movies"
    root.mkdir()
    return db_ops.get_or_create_library(str(root), "movie", name="Movies")

@pytest.fixture
def add_file(db_ops, library):
    """Inserts a MediaFile for path under the given work."""
    def _add(work, path, **kwargs):
        return db_ops.insert_media_file(MediaFile(
            id=0, work_id=work.id, library_id=library.id, target_file=str(path), **kwargs
        ))
    return _add
