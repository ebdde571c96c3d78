#!/usr/bin/env python3
"""
Finance Tracker - Simple Launcher

This script handles:
1. Python version check (requires 3.9+)
2. Dependency verification
3. Database setup (creates if missing, restores from the latest backup if available)
4. Automatic backup (when enabled in settings)
5. Flask server startup
6. Auto-opens browser

Usage:
    python start.py
"""

import logging
import shutil
import sys
import threading
import time
import webbrowser


# =============================================================================
# STARTUP CHECKS
# =============================================================================

def check_python_version():
    """Verify Python 3.9+ is installed"""
    print("[1/5] Checking Python version...", end=" ")

    if sys.version_info < (3, 9):
        print("[ERROR]")
        print()
        print("=" * 60)
        print("ERROR: Python 3.9 or higher is required")
        print("=" * 60)
        print(f"You are using Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
        sys.exit(1)

    print(f"[OK] Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")


def check_dependencies():
    """Verify required packages are installed"""
    print("[2/5] Checking dependencies...", end=" ")

    missing = []
    required = {
        'flask': 'Flask',
        'flask_cors': 'Flask-CORS',
        'flask_login': 'Flask-Login',
        'bcrypt': 'bcrypt',
        'dotenv': 'python-dotenv',
        'openpyxl': 'openpyxl',
        'faker': 'Faker',
        'finance_tracker': 'finance-tracker',
    }

    for module, package in required.items():
        try:
            __import__(module)
        except ImportError:
            missing.append(package)

    if missing:
        print("[ERROR]")
        print()
        print("Missing packages:")
        for pkg in missing:
            print(f"  - {pkg}")
        print()
        print("To install everything, run:")
        print("  pip install -e .")
        sys.exit(1)

    print("[OK]")


def setup_database(engine):
    """Restore the latest backup on a fresh machine, then create/migrate the schema"""
    if not engine.db_path.exists():
        print("[3/5] Database not found...", end="")
        backups = engine.list_backups()
        if backups:
            print()
            print(f"      Found backup from {backups[0]['created_at']}")
            print("      Restoring your data...", end=" ")
            engine.db_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(backups[0]['path'], engine.db_path)
            print("[OK] Welcome back!")
        else:
            print()
            print("      Creating new database...", end=" ")
    else:
        print("[3/5] Database found...", end=" ")

    success, message = engine.initialize()
    if not success:
        print("[ERROR]")
        print(f"      {message}")
        sys.exit(1)
    print("[OK]")


def run_backup(engine):
    print("[4/5] Backing up your data...", end=" ")
    ran, message = engine.run_auto_backup()
    print(f"[OK] {message}" if ran else f"[SKIP] {message}")


def start_flask_server(db_path):
    """Launch the API server and auto-open the browser"""
    from finance_tracker import config
    from finance_tracker.api import create_app

    url = f"http://127.0.0.1:{config.PORT}/api/health"
    print("[5/5] Starting server...")
    print()
    print("=" * 60)
    print("Finance Tracker is running!")
    print("=" * 60)
    print()
    print(f"  Server: http://127.0.0.1:{config.PORT}")
    print("  Press Ctrl+C to stop the server")
    print()

    def open_browser():
        time.sleep(1.5)
        webbrowser.open(url)

    threading.Thread(target=open_browser, daemon=True).start()

    app = create_app({'DATABASE_PATH': str(db_path)})
    app.run(debug=False, port=config.PORT, use_reloader=False)


def main():
    """Main entry point"""
    print()
    print("=" * 60)
    print("Finance Tracker - Controle Financeiro Pessoal")
    print("=" * 60)
    print()

    try:
        check_python_version()
        check_dependencies()

        from finance_tracker.cli import setup_logging
        from finance_tracker.engine import FinanceEngine

        setup_logging('WARNING')
        engine = FinanceEngine()
        setup_database(engine)
        run_backup(engine)
        logging.getLogger().setLevel(logging.INFO)
        start_flask_server(engine.db_path)
    except KeyboardInterrupt:
        print()
        print("=" * 60)
        print("Server stopped.")
        print("=" * 60)


if __name__ == "__main__":
    main()
