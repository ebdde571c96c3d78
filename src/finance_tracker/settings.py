"""
Finance Tracker - User Settings

User preferences stored in the settings key/value table. Stored values are
merged over DEFAULT_SETTINGS; keys the application uses internally are never
returned to clients.

License: MIT
"""

import calendar
import datetime
import uuid

from finance_tracker.utils import is_valid_email, sanitize_string

REPORT_FREQUENCIES = ('daily', 'weekly', 'monthly')
BACKUP_FREQUENCIES = ('daily', 'weekly', 'monthly')
INTERNAL_KEYS = ('password_hash', 'upload_folder')
INTERNAL_PREFIX = '_'

DEFAULT_SETTINGS = {
    'email': '',
    'email_reports_enabled': False,
    'email_reports_frequency': 'monthly',
    'email_reports_day': 1,  # day of month, or weekday 1=Monday..7=Sunday
    'email_reports_time': '09:00',
    'notifications_enabled': True,
    'reminders_days_before_due': 3,
    'dark_mode': False,
    'currency': 'BRL',
    'date_format': 'DD/MM/YYYY',
    'monthly_income': 0,
    'savings_goal': 0,
    'budget_alert_threshold': 80,
    'export_format': 'xlsx',
    'auto_backup_enabled': False,
    'auto_backup_frequency': 'weekly',
    'custom_categories': [],
    'last_backup_date': '',
    'last_report_sent_date': '',
    'timezone': 'America/Sao_Paulo',
}


def _parse_time(value):
    try:
        hour, minute = (int(part) for part in str(value).split(':', 1))
    except ValueError:
        return None
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return hour, minute
    return None


def compute_next_report_due(settings, now=None):
    """
    Next moment a scheduled email report is due, or None when reports are off.

    Returns:
        str: 'YYYY-MM-DD HH:MM' or None
    """
    if not settings.get('email_reports_enabled'):
        return None
    now = now or datetime.datetime.now()
    hour, minute = _parse_time(settings.get('email_reports_time')) or (9, 0)
    frequency = settings.get('email_reports_frequency') or 'monthly'
    day = int(settings.get('email_reports_day') or 1)

    if frequency == 'daily':
        due = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if due <= now:
            due += datetime.timedelta(days=1)
    elif frequency == 'weekly':
        due = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        due += datetime.timedelta(days=(day - 1 - now.weekday()) % 7)
        if due <= now:
            due += datetime.timedelta(days=7)
    else:
        year, month = now.year, now.month
        due = None
        while due is None or due <= now:
            if due is not None:
                year, month = (year + 1, 1) if month == 12 else (year, month + 1)
            due = datetime.datetime(year, month, min(day, calendar.monthrange(year, month)[1]), hour, minute)
    return due.strftime('%Y-%m-%d %H:%M')


class SettingsMixin:

    def get_settings(self):
        """Stored settings merged over the defaults, without internal keys."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT key FROM settings")
            keys = [row['key'] for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        settings = dict(DEFAULT_SETTINGS)
        for key in keys:
            if key in INTERNAL_KEYS or key.startswith(INTERNAL_PREFIX):
                continue
            settings[key] = self.get_setting(key)
        settings['next_report_due'] = compute_next_report_due(settings)
        return settings

    def validate_settings(self, values):
        errors = []
        if 'email' in values and values['email'] and not is_valid_email(values['email']):
            errors.append("Invalid email address.")
        if 'email_reports_frequency' in values and values['email_reports_frequency'] not in REPORT_FREQUENCIES:
            errors.append("Report frequency must be daily, weekly or monthly.")
        if 'auto_backup_frequency' in values and values['auto_backup_frequency'] not in BACKUP_FREQUENCIES:
            errors.append("Backup frequency must be daily, weekly or monthly.")
        if 'email_reports_time' in values and _parse_time(values['email_reports_time']) is None:
            errors.append("Report time must be HH:MM.")
        if 'email_reports_day' in values:
            frequency = values.get('email_reports_frequency') or self.get_setting(
                'email_reports_frequency', DEFAULT_SETTINGS['email_reports_frequency'])
            try:
                day = int(values['email_reports_day'])
            except (TypeError, ValueError):
                day = 0
            upper = 7 if frequency == 'weekly' else 31
            if not 1 <= day <= upper:
                errors.append(f"Report day must be between 1 and {upper}.")
        return not errors, errors

    def update_settings(self, values):
        """
        Store the known keys of `values`. Unknown and internal keys are ignored.

        Returns:
            tuple: (success bool, message str, settings dict or None)
        """
        if not isinstance(values, dict):
            return False, "Invalid settings.", None

        updates = {k: v for k, v in values.items() if k in DEFAULT_SETTINGS}
        valid, errors = self.validate_settings(updates)
        if not valid:
            return False, "; ".join(errors), None
        if 'email_reports_day' in updates:
            updates['email_reports_day'] = int(updates['email_reports_day'])
        if 'email' in updates:
            updates['email'] = sanitize_string(updates['email'], 254)

        conn, cursor = self._get_db_connection()
        try:
            for key, value in updates.items():
                self.set_setting(key, value, cursor=cursor)
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('SETTINGS', 'update_settings', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('SETTINGS', 'update_settings', f"Updated: {', '.join(sorted(updates)) or 'nothing'}")
        return True, "Settings updated successfully.", self.get_settings()

    # =============================================================================
    # CUSTOM CATEGORIES
    # =============================================================================

    def get_custom_categories(self):
        categories = self.get_setting('custom_categories', [])
        return categories if isinstance(categories, list) else []

    def add_custom_category(self, category):
        """
        Returns:
            tuple: (success bool, message str, categories list or None)
        """
        if not isinstance(category, dict) or not str(category.get('name') or '').strip():
            return False, "Category name is required.", None

        name = sanitize_string(category['name'], 100)
        categories = self.get_custom_categories()
        if any(c['name'].lower() == name.lower() for c in categories):
            return False, "Category already exists.", None

        categories.append({
            'id': uuid.uuid4().hex,
            'name': name,
            'icon': category.get('icon') or '📌',
            'color': category.get('color') or '#6366f1',
            'type': category.get('type') if category.get('type') in ('debit', 'credit') else 'debit',
            'created_at': self._now(),
        })
        self.set_setting('custom_categories', categories)
        self.log_info('SETTINGS', 'add_custom_category', f"Custom category added: {name}")
        return True, "Category added successfully.", categories

    def remove_custom_category(self, category_id):
        """
        Returns:
            tuple: (success bool, message str, categories list or None)
        """
        categories = self.get_custom_categories()
        remaining = [c for c in categories if c['id'] != category_id]
        if len(remaining) == len(categories):
            return False, "Category not found.", None
        self.set_setting('custom_categories', remaining)
        self.log_info('SETTINGS', 'remove_custom_category', f"Custom category removed: {category_id}")
        return True, "Category removed successfully.", remaining
