"""
Finance Tracker - Command Line Interface

Setup, server and maintenance commands. The maintenance commands are meant
to be scheduled (cron, Task Scheduler), e.g.:

    0 3 * * *   finance-tracker auto-backup
    0 9 * * *   finance-tracker send-scheduled-report
    30 0 * * *  finance-tracker update-goals
    0 4 * * 0   finance-tracker clean-logs --days 90

License: MIT
"""

import argparse
import logging
import sys

from finance_tracker import APP_NAME, __version__, config
from finance_tracker.engine import LOG_RETENTION_DAYS, FinanceEngine
from finance_tracker.migration_runner import list_migrations, run_all_pending


def setup_logging(level=None):
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )


def _engine(args):
    return FinanceEngine(db_path=args.db)


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def cmd_init_db(args):
    engine = _engine(args)
    success, message = engine.initialize()
    print(f"[SETUP] {message}")
    if success:
        print(f"[SETUP] Database: {engine.db_path}")
    return 0 if success else 1


def cmd_migrate(args):
    engine = _engine(args)
    if args.list:
        for version, description, applied in list_migrations(engine.db_path):
            print(f"  {version:03d}  {'applied' if applied else 'pending':8}  {description}")
        return 0
    applied = run_all_pending(engine.db_path)
    if applied < 0:
        print("[MIGRATE] A migration failed. Check the log output.")
        return 1
    print(f"[MIGRATE] Applied {applied} migration(s)")
    return 0


def cmd_serve(args):
    from finance_tracker.api import create_app

    app = create_app({'DATABASE_PATH': args.db} if args.db else None)
    print("=" * 60)
    print(f"{APP_NAME} v{__version__} is running!")
    print("=" * 60)
    print(f"  Server: http://{args.host}:{args.port}")
    print("  Press Ctrl+C to stop the server")
    app.run(host=args.host, port=args.port, debug=config.DEBUG, use_reloader=False)
    return 0


def cmd_backup(args):
    success, message, info = _engine(args).create_backup()
    print(f"[BACKUP] {message}")
    if info:
        print(f"[BACKUP] {info['path']} ({info['size']} bytes)")
    return 0 if success else 1


def cmd_auto_backup(args):
    _, message = _engine(args).run_auto_backup(force=args.force)
    print(f"[BACKUP] {message}")
    return 0


def cmd_clean_logs(args):
    removed = _engine(args).clean_old_logs(args.days)
    print(f"[LOGS] Removed {removed} entries older than {args.days} days")
    return 0


def cmd_send_scheduled_report(args):
    _, message = _engine(args).send_scheduled_email_report()
    print(f"[EMAIL] {message}")
    return 0


def cmd_update_goals(args):
    updated = _engine(args).update_all_goals_progress()
    print(f"[GOALS] {updated} goals recalculated")
    return 0


def cmd_seed_demo(args):
    from finance_tracker.demo_data import generate_demo_data

    engine = _engine(args)
    success, message = engine.initialize()
    if not success:
        print(f"[DEMO] {message}")
        return 1
    info = generate_demo_data(engine, months=args.months)
    print(f"[DEMO] {info['transactions']} transactions, {info['installment_groups']} installment groups, "
          f"{info['goals']} goals, {info['investments']} investments ({info['date_range']})")
    return 0


def cmd_reset(args):
    success, message, details = _engine(args).reset_system(args.confirm)
    print(f"[SYSTEM] {message}")
    if details:
        print(f"[SYSTEM] Backup saved to {details['backup']['path']}")
    return 0 if success else 1


# =============================================================================
# ARGUMENT PARSER
# =============================================================================

def build_parser():
    parser = argparse.ArgumentParser(
        prog='finance-tracker',
        description=f"{APP_NAME} - setup, server and scheduled maintenance"
    )
    parser.add_argument('--db', help="SQLite database path (default: FINANCE_DB_PATH or package data/)")
    parser.add_argument('--log-level', help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init-db', help="Create the schema, apply migrations and seed defaults") \
        .set_defaults(func=cmd_init_db)

    migrate = subparsers.add_parser('migrate', help="Apply pending migrations")
    migrate.add_argument('--list', action='store_true', help="Show migrations and their status")
    migrate.set_defaults(func=cmd_migrate)

    serve = subparsers.add_parser('serve', help="Run the REST API server")
    serve.add_argument('--host', default='127.0.0.1')
    serve.add_argument('--port', type=int, default=config.PORT)
    serve.set_defaults(func=cmd_serve)

    subparsers.add_parser('backup', help="Back up the database now").set_defaults(func=cmd_backup)

    auto_backup = subparsers.add_parser('auto-backup', help="Back up when the configured interval has passed")
    auto_backup.add_argument('--force', action='store_true', help="Ignore the settings and back up now")
    auto_backup.set_defaults(func=cmd_auto_backup)

    clean_logs = subparsers.add_parser('clean-logs', help="Delete old log entries")
    clean_logs.add_argument('--days', type=int, default=LOG_RETENTION_DAYS)
    clean_logs.set_defaults(func=cmd_clean_logs)

    subparsers.add_parser('send-scheduled-report', help="Email the periodic report when it is due") \
        .set_defaults(func=cmd_send_scheduled_report)

    subparsers.add_parser('update-goals', help="Recalculate active goals from transactions") \
        .set_defaults(func=cmd_update_goals)

    seed = subparsers.add_parser('seed-demo', help="Fill the database with fake demo data")
    seed.add_argument('--months', type=int, default=4)
    seed.set_defaults(func=cmd_seed_demo)

    reset = subparsers.add_parser('reset', help="Erase all data (a backup is taken first)")
    reset.add_argument('--confirm', required=True, metavar='CODE', help="Must be DELETE_ALL_DATA")
    reset.set_defaults(func=cmd_reset)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level.upper() if args.log_level else None)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nStopped.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
