"""
Finance Tracker - SQLite Database Setup & Initialization

This module creates the Finance Tracker SQLite database schema.

Database Schema Overview:
------------------------
- transactions: Income/expense records, including installment groups
- categories: Debit/credit categories (soft-deleted via is_active)
- settings: Key/value store (JSON-encoded values, password hash)
- logs: Persisted application event log
- goals: Savings goals, spending limits and category budgets
- schema_version: Track applied database migrations

Statement-import columns and the investment tables are added by the
numbered migrations in finance_tracker/migrations/.

Key Design Features:
- TEXT storage for monetary values (preserves exact precision)
- Indexes on the columns used for date/category filtering
- Idempotent: safe to run on every startup

License: MIT
"""

import logging
import sqlite3
from pathlib import Path

from finance_tracker import config

logger = logging.getLogger(__name__)


TABLES = {}

TABLES['transactions'] = """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL,
        type TEXT CHECK(type IN ('debit', 'credit')) NOT NULL,
        category TEXT NOT NULL,
        description TEXT NOT NULL,
        amount TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        attachment_id TEXT DEFAULT NULL,
        payment_method TEXT DEFAULT 'Outros',
        installments INTEGER DEFAULT 1,
        installment_number INTEGER DEFAULT 1,
        parent_transaction_id TEXT DEFAULT NULL
    )
"""

TABLES['categories'] = """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT CHECK(kind IN ('debit', 'credit')) NOT NULL,
        name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1
    )
"""

TABLES['settings'] = """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
"""

TABLES['logs'] = """
    CREATE TABLE IF NOT EXISTS logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ts TEXT NOT NULL,
        user TEXT NOT NULL DEFAULT 'system',
        module TEXT NOT NULL,
        level TEXT CHECK(level IN ('INFO', 'WARN', 'ERROR')) NOT NULL,
        action TEXT NOT NULL,
        message TEXT NOT NULL,
        stack TEXT DEFAULT ''
    )
"""

TABLES['goals'] = """
    CREATE TABLE IF NOT EXISTS goals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        target_amount TEXT NOT NULL,
        current_amount TEXT NOT NULL DEFAULT '0.00',
        category TEXT DEFAULT NULL,
        type TEXT CHECK(type IN ('savings', 'spending-limit', 'category-budget')) NOT NULL,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        status TEXT CHECK(status IN ('active', 'completed', 'cancelled')) NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL
    )
"""

TABLES['schema_version'] = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        description TEXT NOT NULL,
        applied_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
"""

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_parent ON transactions(parent_transaction_id);",
    "CREATE INDEX IF NOT EXISTS idx_categories_kind ON categories(kind);",
    "CREATE INDEX IF NOT EXISTS idx_logs_ts ON logs(ts);",
]


def get_db_path():
    """Return the path to the SQLite database file"""
    return config.get_db_path()


def create_database(db_path=None):
    """
    Create the Finance Tracker tables if they do not exist yet.

    Existing data is never touched.

    Returns:
        bool: True if the schema is in place
    """
    db_path = Path(db_path or get_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")

    logger.info("[SETUP] Creating database at %s", db_path)
    try:
        for table_name, ddl in TABLES.items():
            cursor.execute(ddl)
            logger.debug("[SETUP] Table '%s' OK", table_name)
        for statement in INDEXES:
            cursor.execute(statement)
        conn.commit()
        return True
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("[SETUP] Failed to create schema: %s", e)
        return False
    finally:
        cursor.close()
        conn.close()
