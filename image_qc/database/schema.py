"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
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

        # 2. Images
        # Identity is the scanned path
        conn.execute("""
        CREATE TABLE IF NOT EXISTS images (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            filepath        TEXT NOT NULL UNIQUE,
            filename        TEXT NOT NULL,
            extension       TEXT NOT NULL,
            file_type       TEXT NOT NULL,
            file_size       INTEGER,
            first_seen_at   TEXT NOT NULL,
            last_seen_at    TEXT NOT NULL
        );
        """)

        # 3. Extracted Tags
        # Values are stored as text; arrays/objects as JSON
        conn.execute("""
        CREATE TABLE IF NOT EXISTS exif_data (
            image_id        INTEGER NOT NULL,
            tag_name        TEXT NOT NULL,
            tag_value       TEXT,
            PRIMARY KEY (image_id, tag_name),
            FOREIGN KEY(image_id) REFERENCES images(id) ON DELETE CASCADE
        );
        """)

        # 4. Runs
        conn.execute("""
        CREATE TABLE IF NOT EXISTS validation_runs (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            version         INTEGER NOT NULL,
            config_hash     TEXT NOT NULL,
            started_at      TEXT NOT NULL,
            completed_at    TEXT,
            total_images    INTEGER,
            passed          INTEGER,
            failed          INTEGER
        );
        """)

        # 5. Per-check Results
        # One row per (image, run, check_type)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS validation_results (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            image_id        INTEGER NOT NULL,
            validation_run  INTEGER NOT NULL,
            check_type      TEXT NOT NULL,
            status          TEXT NOT NULL CHECK (status IN ('pass', 'fail', 'warning', 'skip')),
            severity        TEXT CHECK (severity IS NULL OR severity IN ('critical', 'fixable', 'warning')),
            message         TEXT,
            details         TEXT,
            created_at      TEXT NOT NULL,
            FOREIGN KEY(image_id) REFERENCES images(id) ON DELETE CASCADE,
            FOREIGN KEY(validation_run) REFERENCES validation_runs(id) ON DELETE CASCADE
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_results_run_image ON validation_results(validation_run, image_id);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_results_status ON validation_results(validation_run, status);")

    logging.debug(f"Schema v{CURRENT_SCHEMA_VERSION} ready.")
