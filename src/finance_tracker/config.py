"""
Finance Tracker - Runtime Configuration

All settings come from environment variables (a local .env file is loaded
first). Paths default to a data/ folder next to the package so the app runs
without any setup.

License: MIT
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

PACKAGE_DIR = Path(__file__).parent

# --- SESSION ---
SESSION_DURATION = 6 * 60 * 60  # seconds
DEFAULT_PASSWORD = "admin123"
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def get_db_path():
    """Return the path to the SQLite database file"""
    return Path(os.getenv('FINANCE_DB_PATH', PACKAGE_DIR / "data" / "finance.db"))


def get_backup_dir():
    """Backups go to Documents/FinanceTracker_Data/backups unless overridden"""
    configured = os.getenv('FINANCE_BACKUP_DIR')
    if configured:
        return Path(configured)
    return Path.home() / 'Documents' / 'FinanceTracker_Data' / 'backups'


def get_upload_dir():
    return Path(os.getenv('FINANCE_UPLOAD_DIR', PACKAGE_DIR / "data" / "attachments"))


def get_smtp_settings():
    """SMTP connection settings for report emails."""
    username = os.getenv('SMTP_USER')
    return {
        'host': os.getenv('SMTP_HOST'),
        'port': int(os.getenv('SMTP_PORT', '587')),
        'username': username,
        'password': os.getenv('SMTP_PASSWORD'),
        'sender': os.getenv('SMTP_SENDER') or username,
        'use_tls': _env_bool('SMTP_USE_TLS', True),
        'use_ssl': _env_bool('SMTP_USE_SSL', False),
    }


LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
DEBUG = _env_bool('FLASK_DEBUG')
PORT = int(os.getenv('PORT', '5000'))
