"""
Finance Tracker - Personal Finance Engine

This module contains the FinanceEngine class, a stateless engine for the
Controle Financeiro Pessoal application. All state lives in SQLite; every
method opens its own connection and closes it before returning.

The engine provides:
- Single-owner authentication with bcrypt password hashing
- Transactions with installment splitting (parcelamento)
- Debit/credit categories with soft delete
- Period, category and installment reports
- Dashboard KPIs, insights and cached bundles
- Goals, settings, email reports, exports and backups
- CSV bank statement import with deduplication
- Investment portfolio with average-cost accounting
- Persisted event log (logs table)

Key Design Principles:
- **Stateless Architecture**: All state is stored in the SQLite database
- **Tuple Returns**: Mutations return (success, message[, payload]) instead of raising
- **Exact Money**: Amounts are stored as TEXT and handled as Decimal
- **Audit Trail**: Important actions and every unexpected error land in the logs table

Functional areas live in mixins (categories.py, transactions.py, ...); this
module holds the shared plumbing, the event log and authentication.

License: MIT
"""

import datetime
import json
import logging
import re
import sqlite3
import threading
import traceback
from decimal import Decimal
from pathlib import Path

import bcrypt

from finance_tracker import APP_NAME, __version__, config
from finance_tracker.attachments import AttachmentMixin
from finance_tracker.categories import CategoryMixin
from finance_tracker.dashboard import DashboardMixin
from finance_tracker.email_reports import EmailReportMixin
from finance_tracker.exporter import ExportMixin
from finance_tracker.goals import GoalMixin
from finance_tracker.investments import InvestmentMixin
from finance_tracker.maintenance import MaintenanceMixin
from finance_tracker.migration_runner import run_all_pending
from finance_tracker.reports import ReportMixin
from finance_tracker.settings import SettingsMixin
from finance_tracker.setup_sqlite import create_database
from finance_tracker.statement_import import StatementImportMixin
from finance_tracker.transactions import TransactionMixin

logger = logging.getLogger(__name__)

LOG_LEVELS = ('INFO', 'WARN', 'ERROR')
LOG_RETENTION_DAYS = 90
MIN_PASSWORD_LENGTH = 12


class FinanceEngine(CategoryMixin, TransactionMixin, ReportMixin, DashboardMixin,
                    SettingsMixin, EmailReportMixin, GoalMixin, ExportMixin,
                    AttachmentMixin, StatementImportMixin, InvestmentMixin,
                    MaintenanceMixin):
    """
    Stateless personal finance engine.

    Methods are organized into functional groups:
    - Plumbing: connections, money/date conversion, the write lock
    - Event log: log_event, get_logs, clean_old_logs
    - Authentication: login, change_password, public config
    - Everything else comes from the mixins listed in the class bases

    Example:
        engine = FinanceEngine("data/finance.db")
        engine.initialize()
        ok, message, tx = engine.create_transaction({
            'date': '2025-01-10', 'type': 'debit', 'category': 'Alimentação',
            'description': 'Mercado', 'amount': '152.30'})
    """

    # One lock per process: serializes batch writes (installments, imports,
    # resets, backups) the way a single spreadsheet lock would.
    _lock = threading.RLock()

    def __init__(self, db_path=None, mailer=None, backup_dir=None, upload_dir=None):
        self.db_path = Path(db_path or config.get_db_path())
        self.backup_dir = Path(backup_dir or config.get_backup_dir())
        self.upload_dir = Path(upload_dir) if upload_dir else None
        self.mailer = mailer
        self._cache = {}

    def initialize(self):
        """
        Create the schema, apply migrations and seed defaults. Idempotent.

        Returns:
            tuple: (success bool, message str)
        """
        if not create_database(self.db_path):
            return False, "Could not create the database schema."
        if run_all_pending(self.db_path) < 0:
            return False, "A database migration failed. Check the log output."
        self.create_default_categories()
        self._ensure_password()
        return True, "System configured successfully."

    # =============================================================================
    # SQLITE HELPER METHODS
    # =============================================================================

    @staticmethod
    def _to_money_str(value):
        """Convert Decimal or float to string for SQLite storage"""
        if value is None:
            return None
        if isinstance(value, Decimal):
            return str(value.quantize(Decimal('0.01')))
        if isinstance(value, (int, float)):
            return f"{value:.2f}"
        return str(value)

    @staticmethod
    def _from_money_str(value):
        """Convert string from SQLite to Decimal for calculations"""
        if value is None or value == '':
            return Decimal('0.00')
        return Decimal(str(value))

    @staticmethod
    def _to_bool_int(value):
        return 1 if value else 0

    @staticmethod
    def _to_datetime_str(dt):
        """Convert datetime object to SQLite TEXT format"""
        if dt is None:
            return None
        if isinstance(dt, datetime.datetime):
            return dt.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(dt, datetime.date):
            return dt.strftime('%Y-%m-%d')
        return str(dt)

    def _now(self):
        return self._to_datetime_str(datetime.datetime.now())

    @staticmethod
    def _rows_to_dicts(rows):
        """Convert list of sqlite3.Row objects to list of dicts"""
        return [dict(row) for row in rows]

    # =============================================================================
    # DATABASE CONNECTION
    # =============================================================================

    def _get_db_connection(self):
        """
        Establish a new database connection.

        Returns:
            tuple: (connection, cursor) - SQLite connection and cursor

        Note:
            Callers are responsible for closing the connection and cursor.
            A second connection must never write while the first one still
            holds uncommitted changes; log after commit or rollback.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        return conn, conn.cursor()

    def _count_rows(self, table):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"SELECT COUNT(*) FROM {table}")
            return cursor.fetchone()[0]
        finally:
            cursor.close()
            conn.close()

    # =============================================================================
    # KEY/VALUE STORE & DATA VERSIONS
    # =============================================================================

    def get_setting(self, key, default=None):
        """Read one JSON-encoded value from the settings table."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
        finally:
            cursor.close()
            conn.close()
        if row is None or row['value'] is None:
            return default
        try:
            return json.loads(row['value'])
        except ValueError:
            return row['value']

    def set_setting(self, key, value, cursor=None):
        """Upsert one value. Pass an open cursor to join its transaction."""
        params = (key, json.dumps(value, default=str), self._now())
        sql = """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """
        if cursor is not None:
            cursor.execute(sql, params)
            return True
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(sql, params)
            conn.commit()
            return True
        finally:
            cursor.close()
            conn.close()

    def get_data_version(self, scope='transactions'):
        return int(self.get_setting(f'_data_version_{scope}', 0) or 0)

    def _bump_data_version(self, cursor, scope='transactions'):
        """Increment a data version inside the caller's transaction."""
        cursor.execute("""
            INSERT INTO settings (key, value, updated_at) VALUES (?, '1', ?)
            ON CONFLICT(key) DO UPDATE SET value = CAST(value AS INTEGER) + 1, updated_at = excluded.updated_at
        """, (f'_data_version_{scope}', self._now()))

    # =============================================================================
    # EVENT LOG
    # =============================================================================

    def log_event(self, module, level, action, message, stack='', user='system'):
        """
        Persist an application event and mirror it to the Python logger.

        Entries with missing fields are dropped. This method never raises:
        failing to log must not break the operation being logged.
        """
        if not module or not level or not action or not message:
            logger.error("[LOGS] Invalid log entry dropped: %s/%s/%s", module, level, action)
            return False

        level = level.upper()
        if level not in LOG_LEVELS:
            level = 'INFO'

        log_line = f"[{module}] {action}: {message}"
        if level == 'ERROR':
            logger.error(log_line)
        elif level == 'WARN':
            logger.warning(log_line)
        else:
            logger.info(log_line)

        try:
            conn, cursor = self._get_db_connection()
            try:
                cursor.execute(
                    "INSERT INTO logs (ts, user, module, level, action, message, stack) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (self._now(), user or 'system', module, level, action, str(message), stack or '')
                )
                conn.commit()
            finally:
                cursor.close()
                conn.close()
            return True
        except sqlite3.Error as e:
            logger.error("[LOGS] Could not persist log entry: %s", e)
            return False

    def log_error(self, module, action, error):
        stack = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return self.log_event(module, 'ERROR', action, str(error) or 'Unknown error', stack)

    def log_warning(self, module, action, message):
        return self.log_event(module, 'WARN', action, message)

    def log_info(self, module, action, message):
        return self.log_event(module, 'INFO', action, message)

    def get_logs(self, level=None, module=None, start_date=None, end_date=None, limit=100):
        """
        Get log entries, newest first.

        Args:
            level (str): INFO, WARN or ERROR
            module (str): Module tag (AUTH, TRANSACTIONS, ...)
            start_date (str): YYYY-MM-DD, inclusive
            end_date (str): YYYY-MM-DD, inclusive
            limit (int): Maximum entries returned (applied last)
        """
        query = "SELECT id, ts, user, module, level, action, message, stack FROM logs WHERE 1=1"
        params = []
        if level:
            query += " AND level = ?"
            params.append(level.upper())
        if module:
            query += " AND module = ?"
            params.append(module)
        if start_date:
            query += " AND substr(ts, 1, 10) >= ?"
            params.append(start_date)
        if end_date:
            query += " AND substr(ts, 1, 10) <= ?"
            params.append(end_date)
        query += " ORDER BY ts DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(max(1, int(limit)))

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def clean_old_logs(self, days=LOG_RETENTION_DAYS):
        """Delete log entries older than `days` days. Returns the number removed."""
        cutoff = self._to_datetime_str(datetime.datetime.now() - datetime.timedelta(days=days))
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM logs WHERE ts < ?", (cutoff,))
            removed = cursor.rowcount
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        if removed:
            self.log_info('LOGS', 'clean_old_logs', f"Removed {removed} entries older than {days} days")
        return removed

    # =============================================================================
    # AUTHENTICATION
    # =============================================================================

    def _ensure_password(self):
        """Install the default password on first run."""
        if self.get_setting('password_hash'):
            return False
        self._store_password(config.DEFAULT_PASSWORD)
        logger.warning("[SETUP] Default password installed. Change it after the first login.")
        return True

    def _store_password(self, password):
        password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())
        self.set_setting('password_hash', password_hash.decode('utf-8'))

    def _check_password(self, password):
        stored = self.get_setting('password_hash')
        if not stored:
            return None
        return bcrypt.checkpw(password.encode('utf-8'), stored.encode('utf-8'))

    def login(self, password):
        """
        Verify the owner password.

        Returns:
            tuple: (success bool, message str)
        """
        if not password or not isinstance(password, str):
            self.log_warning('AUTH', 'login', 'Login attempt without password')
            return False, "Password is required."

        valid = self._check_password(password)
        if valid is None:
            self.log_event('AUTH', 'ERROR', 'login', 'Credentials not found')
            return False, "System is not configured. Run init-db first."
        if not valid:
            self.log_warning('AUTH', 'login', 'Wrong password')
            return False, "Incorrect password."

        self.log_info('AUTH', 'login', 'Login successful')
        return True, "Login successful."

    def change_password(self, current_password, new_password):
        """
        Change the owner password after verifying the current one.

        The new password needs at least 12 characters with letters and digits.

        Returns:
            tuple: (success bool, message str)
        """
        if not current_password or not new_password:
            return False, "Current and new password are required."
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return False, f"New password must be at least {MIN_PASSWORD_LENGTH} characters long."
        if not re.search(r'[a-zA-Z]', new_password) or not re.search(r'[0-9]', new_password):
            return False, "New password must contain letters and numbers."

        valid = self._check_password(current_password)
        if valid is None:
            return False, "Could not read stored credentials."
        if not valid:
            self.log_warning('AUTH', 'change_password', 'Wrong current password')
            return False, "Current password is incorrect."

        self._store_password(new_password)
        self.log_info('AUTH', 'change_password', 'Password changed')
        return True, "Password changed successfully."

    def get_public_config(self):
        return {
            'app_name': APP_NAME,
            'version': __version__,
            'session_duration': config.SESSION_DURATION,
        }
