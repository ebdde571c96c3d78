"""
Finance Tracker - Database Migration Runner

Handles schema migrations for the SQLite database. Migrations are SQL files in
finance_tracker/migrations/ applied in order.

Migration files are named: 001_description.sql, 002_description.sql, etc.

The schema_version table tracks which migrations have been applied.
"""

import logging
import re
import sqlite3
from pathlib import Path

from finance_tracker import config

logger = logging.getLogger(__name__)

MIGRATION_FILE_RE = re.compile(r'^(\d{3})_(.+)\.sql$')


def get_migrations_path():
    """Return the path to the migrations folder"""
    return Path(__file__).parent / "migrations"


def get_current_version(conn):
    """
    Get the current schema version from the database.

    Returns:
        int: The highest migration version applied, or 0 if no migrations
    """
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT MAX(version) FROM schema_version")
        result = cursor.fetchone()
        return result[0] if result[0] is not None else 0
    except sqlite3.OperationalError:
        # schema_version table doesn't exist yet (fresh database)
        return 0
    finally:
        cursor.close()


def get_migrations():
    """
    List every migration file.

    Returns:
        list: (version, filepath, description) tuples sorted by version
    """
    migrations = []
    for file in sorted(get_migrations_path().glob('*.sql')):
        match = MIGRATION_FILE_RE.match(file.name)
        if match:
            version = int(match.group(1))
            description = match.group(2).replace('_', ' ')
            migrations.append((version, file, description))
    return migrations


def apply_migration(conn, version, filepath, description):
    """
    Apply a single migration file and record it in schema_version.

    Returns:
        bool: True if successful, False otherwise
    """
    cursor = conn.cursor()
    try:
        sql = filepath.read_text(encoding='utf-8')
        # executescript commits any pending transaction before it runs
        cursor.executescript(sql)
        cursor.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (version, description)
        )
        conn.commit()
        logger.info("[MIGRATION] Applied %03d: %s", version, description)
        return True
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("[MIGRATION] %03d (%s) failed: %s", version, description, e)
        return False
    finally:
        cursor.close()


def run_all_pending(db_path=None):
    """
    Run all pending migrations.

    Returns:
        int: Number of migrations applied, or -1 if one failed
    """
    db_path = Path(db_path or config.get_db_path())
    if not db_path.exists():
        logger.warning("[MIGRATION] Database does not exist. Run init-db first.")
        return 0

    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys = ON;")
    try:
        current_version = get_current_version(conn)
        pending = [m for m in get_migrations() if m[0] > current_version]
        if not pending:
            return 0

        logger.info("[MIGRATION] Found %d pending migration(s)", len(pending))
        applied = 0
        for version, filepath, description in pending:
            if not apply_migration(conn, version, filepath, description):
                return -1
            applied += 1
        return applied
    finally:
        conn.close()


def list_migrations(db_path=None):
    """Return [(version, description, applied)] for every migration file."""
    db_path = Path(db_path or config.get_db_path())
    current_version = 0
    if db_path.exists():
        conn = sqlite3.connect(str(db_path))
        try:
            current_version = get_current_version(conn)
        finally:
            conn.close()
    return [(version, description, version <= current_version)
            for version, _, description in get_migrations()]
