import json
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, UTC
from typing import Optional, List, Dict, Any, Iterator

from ..exceptions import PersistenceError
from ..models import FileRecord, CheckOutcome, ValidationRun

class DBOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Groups writes into one atomic unit. Any sqlite error rolls the unit
        back and surfaces as PersistenceError.
        """
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            raise PersistenceError(f"Database write failed: {e}") from e

    # --- Images ---

    def insert_or_update_file(self, rec: FileRecord) -> int:
        """Inserts an image keyed by path, or refreshes the existing row."""
        now_iso = datetime.now(UTC).isoformat()
        cur = self.conn.cursor()

        cur.execute("SELECT id FROM images WHERE filepath = ?", (rec.key,))
        row = cur.fetchone()

        if row is None:
            cur.execute("""
                INSERT INTO images (filepath, filename, extension, file_type, file_size, first_seen_at, last_seen_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (rec.key, rec.filename, rec.extension, rec.file_type, rec.size_bytes, now_iso, now_iso))

            if cur.lastrowid is None:
                raise PersistenceError("Database INSERT failed to return a row ID.")
            return cur.lastrowid

        image_id = int(row[0])
        cur.execute("""
            UPDATE images
            SET filename = ?, extension = ?, file_type = ?, file_size = ?, last_seen_at = ?
            WHERE id = ?
        """, (rec.filename, rec.extension, rec.file_type, rec.size_bytes, now_iso, image_id))
        return image_id

    def fetch_image(self, image_id: int) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT id, filepath, filename, extension, file_type, file_size FROM images WHERE id = ?", (image_id,))
        r = cur.fetchone()
        if r is None:
            return None
        return {
            'id': r[0], 'filepath': r[1], 'filename': r[2],
            'extension': r[3], 'file_type': r[4], 'file_size': r[5],
        }

    def replace_tags(self, image_id: int, tags: Dict[str, Any]):
        """
        Replaces all stored tags of an image. Deleting first drops tags that
        disappeared since the previous extraction.
        """
        self.conn.execute("DELETE FROM exif_data WHERE image_id = ?", (image_id,))
        self.conn.executemany(
            "INSERT INTO exif_data (image_id, tag_name, tag_value) VALUES (?, ?, ?)",
            [(image_id, name, json.dumps(value, default=str)) for name, value in tags.items()],
        )

    def fetch_tags(self, image_id: int) -> Dict[str, Any]:
        cur = self.conn.cursor()
        cur.execute("SELECT tag_name, tag_value FROM exif_data WHERE image_id = ?", (image_id,))
        return {name: json.loads(value) if value is not None else None for name, value in cur.fetchall()}

    # --- Check Results ---

    def delete_check_results(self, image_id: int, run_id: int):
        self.conn.execute(
            "DELETE FROM validation_results WHERE image_id = ? AND validation_run = ?",
            (image_id, run_id),
        )

    def insert_check_result(self, image_id: int, run_id: int, outcome: CheckOutcome) -> int:
        cur = self.conn.cursor()
        cur.execute("""
            INSERT INTO validation_results
            (image_id, validation_run, check_type, status, severity, message, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            image_id, run_id, outcome.check_type, outcome.status, outcome.severity,
            outcome.message, json.dumps(outcome.details, default=str),
            datetime.now(UTC).isoformat(),
        ))
        if cur.lastrowid is None:
            raise PersistenceError("Database INSERT failed to return a row ID.")
        return cur.lastrowid

    def fetch_results(self, run_id: int, image_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Result rows for a run, optionally narrowed to one image."""
        cur = self.conn.cursor()
        query = """
            SELECT id, image_id, validation_run, check_type, status, severity, message, details
            FROM validation_results
            WHERE validation_run = ?
        """
        params: List[Any] = [run_id]
        if image_id is not None:
            query += " AND image_id = ?"
            params.append(image_id)
        query += " ORDER BY image_id, id"
        cur.execute(query, params)
        return [
            {
                'id': r[0], 'image_id': r[1], 'run_id': r[2], 'check_type': r[3],
                'status': r[4], 'severity': r[5], 'message': r[6],
                'details': json.loads(r[7]) if r[7] else None,
            }
            for r in cur.fetchall()
        ]

    # --- Runs ---

    def next_run_version(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM validation_runs")
        return int(cur.fetchone()[0]) + 1

    def start_run(self, config_hash: str, version: Optional[int] = None) -> ValidationRun:
        now_iso = datetime.now(UTC).isoformat()
        with self.transaction():
            if version is None:
                version = self.next_run_version()
            cur = self.conn.cursor()
            cur.execute(
                "INSERT INTO validation_runs (version, config_hash, started_at) VALUES (?, ?, ?)",
                (version, config_hash, now_iso),
            )
            run_id = cur.lastrowid
        if run_id is None:
            raise PersistenceError("Database INSERT failed to return a row ID.")
        logging.info(f"Started validation run {run_id} (version {version})")
        return ValidationRun(id=run_id, version=version, config_hash=config_hash, started_at=now_iso)

    def complete_run(self, run_id: int, total: int, passed: int, failed: int):
        with self.transaction():
            self.conn.execute("""
                UPDATE validation_runs
                SET completed_at = ?, total_images = ?, passed = ?, failed = ?
                WHERE id = ?
            """, (datetime.now(UTC).isoformat(), total, passed, failed, run_id))

    def latest_open_run(self) -> Optional[ValidationRun]:
        """Most recent run that was started but never completed."""
        cur = self.conn.cursor()
        cur.execute("SELECT id FROM validation_runs WHERE completed_at IS NULL ORDER BY id DESC LIMIT 1")
        row = cur.fetchone()
        return self.fetch_run(row[0]) if row else None

    def fetch_run(self, run_id: int) -> Optional[ValidationRun]:
        cur = self.conn.cursor()
        cur.execute("""
            SELECT id, version, config_hash, started_at, completed_at, total_images, passed, failed
            FROM validation_runs WHERE id = ?
        """, (run_id,))
        r = cur.fetchone()
        if r is None:
            return None
        return ValidationRun(*r)
