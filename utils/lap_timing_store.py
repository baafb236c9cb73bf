"""
Persistent storage for completed runs.

Stores every finished run with its checkpoints and ghost path in an
SQLite database so best runs and lap numbers survive restarts.
"""

import json
import logging
import os
import sqlite3
import threading
from dataclasses import asdict
from typing import Dict, List, Optional

from config import RUNS_DATABASE_FILE
from lap_timing.data.models import Checkpoint, CheckpointType, GhostPoint, RunRecord

logger = logging.getLogger('timeattack.store')


def _checkpoint_to_json(checkpoint: Checkpoint) -> str:
    data = asdict(checkpoint)
    data["type"] = checkpoint.type.value
    return json.dumps(data)


def _checkpoint_from_json(text: str) -> Checkpoint:
    data = json.loads(text)
    data["type"] = CheckpointType(data["type"])
    return Checkpoint(**data)


def _ghost_to_json(path: List[GhostPoint]) -> str:
    return json.dumps([[p.latitude, p.longitude, p.timestamp] for p in path])


def _ghost_from_json(text: Optional[str]) -> List[GhostPoint]:
    if not text:
        return []
    return [GhostPoint(latitude=lat, longitude=lon, timestamp=ts)
            for lat, lon, ts in json.loads(text)]


class RunStore:
    """
    Manages persistent storage of completed runs.

    Thread-safe singleton; writes come from the pipeline thread while
    reads may come from a UI thread.
    """

    _instance: Optional['RunStore'] = None
    _lock = threading.Lock()

    _COLUMNS = ("id, course_id, lap_number, start_time, end_time, duration, "
                "average_speed, max_speed, date, start_checkpoint, "
                "finish_checkpoint, ghost_path")

    def __new__(cls, db_path: Optional[str] = None):
        """Singleton pattern - only one store instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialised = False
        return cls._instance

    def __init__(self, db_path: Optional[str] = None):
        """Initialise the run store."""
        if self._initialised:
            return

        self._db_path = db_path or RUNS_DATABASE_FILE
        self._db_lock = threading.Lock()
        self._ensure_data_dir()
        self._init_database()
        self._initialised = True

    def _ensure_data_dir(self):
        """Create data directory if it doesn't exist."""
        directory = os.path.dirname(self._db_path)
        if not directory:
            return
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create run data directory: %s", e)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _init_database(self):
        """Initialise the SQLite database with required tables."""
        with self._db_lock:
            try:
                conn = self._connect()
                cursor = conn.cursor()
                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS runs (
                        id TEXT PRIMARY KEY,
                        course_id TEXT NOT NULL,
                        lap_number INTEGER NOT NULL,
                        start_time REAL NOT NULL,
                        end_time REAL NOT NULL,
                        duration REAL NOT NULL,
                        average_speed REAL,
                        max_speed REAL,
                        date TEXT,
                        start_checkpoint TEXT NOT NULL,
                        finish_checkpoint TEXT NOT NULL,
                        ghost_path TEXT
                    )
                ''')
                cursor.execute('''
                    CREATE INDEX IF NOT EXISTS idx_runs_course
                    ON runs(course_id)
                ''')
                conn.commit()
                conn.close()
                logger.debug("Run database initialised: %s", self._db_path)
            except sqlite3.Error as e:
                logger.warning("Could not initialise run database: %s", e)

    def _row_to_record(self, row: tuple) -> RunRecord:
        return RunRecord(
            id=row[0],
            course_id=row[1],
            lap_number=row[2],
            start_time=row[3],
            end_time=row[4],
            duration=row[5],
            average_speed=row[6] or 0.0,
            max_speed=row[7] or 0.0,
            date=row[8] or "",
            start_checkpoint=_checkpoint_from_json(row[9]),
            finish_checkpoint=_checkpoint_from_json(row[10]),
            ghost_path=_ghost_from_json(row[11]),
        )

    def save_run(self, record: RunRecord) -> bool:
        """
        Store a completed run.

        Args:
            record: The finished run

        Returns:
            True if the run was written
        """
        with self._db_lock:
            try:
                conn = self._connect()
                conn.execute(f'''
                    INSERT OR REPLACE INTO runs ({self._COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (
                    record.id,
                    record.course_id,
                    record.lap_number,
                    record.start_time,
                    record.end_time,
                    record.duration,
                    record.average_speed,
                    record.max_speed,
                    record.date,
                    _checkpoint_to_json(record.start_checkpoint),
                    _checkpoint_to_json(record.finish_checkpoint),
                    _ghost_to_json(record.ghost_path),
                ))
                conn.commit()
                conn.close()
                logger.info("Saved run %s (%s) for %s", record.id,
                            record.format_time(), record.course_id)
                return True
            except sqlite3.Error as e:
                logger.warning("Could not save run: %s", e)
                return False

    def count_runs(self, course_id: str) -> int:
        """Number of runs stored for a course."""
        with self._db_lock:
            try:
                conn = self._connect()
                row = conn.execute(
                    'SELECT COUNT(*) FROM runs WHERE course_id = ?', (course_id,)
                ).fetchone()
                conn.close()
                return row[0] if row else 0
            except sqlite3.Error as e:
                logger.warning("Could not count runs: %s", e)
                return 0

    def get_best_run(self, course_id: str) -> Optional[RunRecord]:
        """
        Fastest run for a course.

        Returns:
            Run with the shortest duration, or None if none recorded
        """
        with self._db_lock:
            try:
                conn = self._connect()
                row = conn.execute(f'''
                    SELECT {self._COLUMNS} FROM runs
                    WHERE course_id = ? ORDER BY duration ASC LIMIT 1
                ''', (course_id,)).fetchone()
                conn.close()
            except sqlite3.Error as e:
                logger.warning("Could not get best run: %s", e)
                return None

        return self._row_to_record(row) if row else None

    def get_runs(self, course_id: Optional[str] = None, limit: int = 50) -> List[RunRecord]:
        """Most recent runs, optionally for one course."""
        query = f'SELECT {self._COLUMNS} FROM runs'
        params: tuple = ()
        if course_id is not None:
            query += ' WHERE course_id = ?'
            params = (course_id,)
        query += ' ORDER BY end_time DESC LIMIT ?'
        params += (limit,)

        with self._db_lock:
            try:
                conn = self._connect()
                rows = conn.execute(query, params).fetchall()
                conn.close()
            except sqlite3.Error as e:
                logger.warning("Could not get runs: %s", e)
                return []

        return [self._row_to_record(row) for row in rows]

    def get_best_times(self) -> Dict[str, float]:
        """Best duration (ms) per course."""
        with self._db_lock:
            try:
                conn = self._connect()
                rows = conn.execute(
                    'SELECT course_id, MIN(duration) FROM runs GROUP BY course_id'
                ).fetchall()
                conn.close()
            except sqlite3.Error as e:
                logger.warning("Could not get best times: %s", e)
                return {}
        return {course_id: duration for course_id, duration in rows}

    def clear_course(self, course_id: str) -> int:
        """
        Delete every run for a course.

        Returns:
            Number of runs deleted
        """
        with self._db_lock:
            try:
                conn = self._connect()
                cursor = conn.execute('DELETE FROM runs WHERE course_id = ?', (course_id,))
                deleted = cursor.rowcount
                conn.commit()
                conn.close()
                logger.info("Cleared %d runs for %s", deleted, course_id)
                return deleted
            except sqlite3.Error as e:
                logger.warning("Could not clear runs: %s", e)
                return 0


def get_run_store() -> RunStore:
    """Get the run store singleton."""
    return RunStore()
