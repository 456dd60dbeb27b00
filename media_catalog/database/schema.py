"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Libraries (watched roots)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS libraries (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            name            TEXT NOT NULL,
            location        TEXT NOT NULL UNIQUE,
            media_type      TEXT NOT NULL,
            created_at      TEXT NOT NULL
        );
        """)

        # 3. Works (logical titles)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS works (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            library_id      INTEGER NOT NULL,
            name            TEXT NOT NULL,
            year            INTEGER,
            added_at        TEXT NOT NULL,
            FOREIGN KEY(library_id) REFERENCES libraries(id) ON DELETE CASCADE
        );
        """)

        # 4. Media Files (physical files, one owning work each)
        # target_file is the join key for filesystem events
        conn.execute("""
        CREATE TABLE IF NOT EXISTS media_files (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            work_id             INTEGER NOT NULL,
            library_id          INTEGER NOT NULL,
            target_file         TEXT NOT NULL UNIQUE,
            raw_name            TEXT,
            raw_year            INTEGER,
            season              INTEGER,
            episode             INTEGER,
            quality             TEXT,
            container           TEXT,
            codec               TEXT,
            audio               TEXT,
            original_resolution TEXT,
            duration            REAL,
            corrupt             INTEGER NOT NULL DEFAULT 0,
            added_at            TEXT NOT NULL,
            FOREIGN KEY(work_id) REFERENCES works(id) ON DELETE CASCADE,
            FOREIGN KEY(library_id) REFERENCES libraries(id) ON DELETE CASCADE
        );
        """)

        # 5. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_works_library_name ON works(library_id, name);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_files_work ON media_files(work_id);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_files_library ON media_files(library_id);")

    logging.debug("Database schema initialized.")
