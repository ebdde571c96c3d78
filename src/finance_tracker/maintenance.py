"""
Finance Tracker - System Maintenance

Full data reset and table counts.

License: MIT
"""

RESET_CONFIRMATION_CODE = 'DELETE_ALL_DATA'

# Child tables first so foreign keys never block a delete.
DATA_TABLES = (
    'investment_transactions',
    'investments',
    'transactions',
    'categories',
    'goals',
    'logs',
)


class MaintenanceMixin:

    def count_system_data(self):
        """Row count per data table, plus settings."""
        return {table: self._count_rows(table) for table in DATA_TABLES + ('settings',)}

    def reset_system(self, confirmation_code):
        """
        Erase all data and start over with the default categories.

        A backup is taken first. The owner password survives the reset.

        Returns:
            tuple: (success bool, message str, details dict or None)
        """
        if confirmation_code != RESET_CONFIRMATION_CODE:
            self.log_warning('SYSTEM', 'reset_system', 'Reset attempted with wrong confirmation code')
            return False, f"Invalid confirmation code. Type {RESET_CONFIRMATION_CODE} to confirm.", None

        with self._lock:
            before = self.count_system_data()
            ok, message, backup = self.create_backup()
            if not ok:
                return False, f"Reset aborted, backup failed: {message}", None

            conn, cursor = self._get_db_connection()
            try:
                for table in DATA_TABLES:
                    cursor.execute(f"DELETE FROM {table}")
                cursor.execute("DELETE FROM settings WHERE key != 'password_hash'")
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('SYSTEM', 'reset_system', e)
                return False, f"An error occurred: {e}", None
            finally:
                cursor.close()
                conn.close()

            self.create_default_categories()
            self.invalidate_cache()

        self.log_warning('SYSTEM', 'reset_system', f"All data erased. Backup: {backup['name']}")
        return True, "System reset successfully.", {
            'backup': backup,
            'removed': before,
        }
