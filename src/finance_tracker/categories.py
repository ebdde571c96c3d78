"""
Finance Tracker - Categories

Debit (expense) and credit (income) categories. Categories are referenced by
name from transactions, so they are never deleted: deactivation hides them
from new entries while history keeps its labels.

License: MIT
"""

CATEGORY_KINDS = ('debit', 'credit')
MAX_CATEGORY_NAME = 100

DEFAULT_DEBIT_CATEGORIES = [
    'Alimentação', 'Transporte', 'Moradia', 'Saúde', 'Educação',
    'Lazer', 'Vestuário', 'Serviços', 'Outros Débitos',
]
DEFAULT_CREDIT_CATEGORIES = ['Salário', 'Freelance', 'Investimentos', 'Vendas', 'Outros Créditos']
INITIAL_BALANCE_CATEGORY = 'Saldo Inicial'


class CategoryMixin:

    @staticmethod
    def _row_to_category(row):
        if row is None:
            return None
        category = dict(row)
        category['is_active'] = bool(category['is_active'])
        return category

    @staticmethod
    def sanitize_category_data(data):
        return {
            'kind': str(data.get('kind') or '').strip().lower(),
            'name': str(data.get('name') or '').strip(),
        }

    def validate_category_data(self, data, exclude_id=None):
        """
        Validate a category payload.

        Returns:
            tuple: (is_valid bool, errors list)
        """
        if not isinstance(data, dict):
            return False, ["Invalid data."]

        errors = []
        kind = str(data.get('kind') or '').strip().lower()
        name = str(data.get('name') or '').strip()

        if kind not in CATEGORY_KINDS:
            errors.append('Kind must be "debit" or "credit".')
        if not name:
            errors.append("Name is required.")
        elif len(name) > MAX_CATEGORY_NAME:
            errors.append(f"Name must be at most {MAX_CATEGORY_NAME} characters.")

        if not errors and self._category_exists(name, kind, exclude_id):
            errors.append("A category with this name already exists.")
        return not errors, errors

    def _category_exists(self, name, kind, exclude_id=None):
        """Case-insensitive duplicate check within one kind."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT id, name FROM categories WHERE kind = ?", (kind,))
            target = name.strip().lower()
            for row in cursor.fetchall():
                if exclude_id is not None and int(row['id']) == int(exclude_id):
                    continue
                if row['name'].strip().lower() == target:
                    return True
            return False
        finally:
            cursor.close()
            conn.close()

    def create_category(self, data):
        """
        Create an active category.

        Returns:
            tuple: (success bool, message str, category dict or None)
        """
        valid, errors = self.validate_category_data(data)
        if not valid:
            return False, "; ".join(errors), None

        clean = self.sanitize_category_data(data)
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "INSERT INTO categories (kind, name, is_active) VALUES (?, ?, 1)",
                (clean['kind'], clean['name'])
            )
            new_id = cursor.lastrowid
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('CATEGORIES', 'create_category', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('CATEGORIES', 'create_category', f"Category created: {clean['name']} ({clean['kind']})")
        return True, "Category created successfully.", self.get_category(new_id)

    def get_category(self, category_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT id, kind, name, is_active FROM categories WHERE id = ?", (category_id,))
            return self._row_to_category(cursor.fetchone())
        finally:
            cursor.close()
            conn.close()

    def list_categories(self, kind=None, is_active=None):
        """List categories sorted by name, optionally filtered by kind and active flag."""
        query = "SELECT id, kind, name, is_active FROM categories WHERE 1=1"
        params = []
        if kind:
            query += " AND kind = ?"
            params.append(kind)
        if is_active is not None:
            query += " AND is_active = ?"
            params.append(self._to_bool_int(is_active))

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            categories = [self._row_to_category(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()
        categories.sort(key=lambda c: c['name'].lower())
        return categories

    def get_active_categories(self, kind=None):
        return self.list_categories(kind=kind, is_active=True)

    def update_category(self, category_id, data):
        """
        Update kind/name. is_active is only changed when the payload has it.

        Returns:
            tuple: (success bool, message str, category dict or None)
        """
        existing = self.get_category(category_id)
        if not existing:
            return False, "Category not found.", None

        merged = {
            'kind': data.get('kind') or existing['kind'],
            'name': data.get('name') or existing['name'],
        }
        valid, errors = self.validate_category_data(merged, exclude_id=category_id)
        if not valid:
            return False, "; ".join(errors), None

        clean = self.sanitize_category_data(merged)
        is_active = existing['is_active'] if data.get('is_active') is None else bool(data['is_active'])

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "UPDATE categories SET kind = ?, name = ?, is_active = ? WHERE id = ?",
                (clean['kind'], clean['name'], self._to_bool_int(is_active), category_id)
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('CATEGORIES', 'update_category', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('CATEGORIES', 'update_category', f"Category {category_id} updated")
        return True, "Category updated successfully.", self.get_category(category_id)

    def _set_category_active(self, category_id, active):
        if not self.get_category(category_id):
            return False, "Category not found."
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("UPDATE categories SET is_active = ? WHERE id = ?",
                           (self._to_bool_int(active), category_id))
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        action = 'activate_category' if active else 'deactivate_category'
        self.log_info('CATEGORIES', action, f"Category {category_id} {'activated' if active else 'deactivated'}")
        return True, f"Category {'activated' if active else 'deactivated'} successfully."

    def deactivate_category(self, category_id):
        return self._set_category_active(category_id, False)

    def activate_category(self, category_id):
        return self._set_category_active(category_id, True)

    def ensure_category(self, name, kind, cursor=None):
        """
        Return the category with this name/kind, creating it (active) when
        missing. Pass an open cursor to create it inside that transaction.
        """
        own_connection = cursor is None
        if own_connection:
            conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT id, kind, name, is_active FROM categories WHERE kind = ? AND lower(name) = lower(?)",
                (kind, name)
            )
            row = cursor.fetchone()
            if row:
                return self._row_to_category(row)
            cursor.execute("INSERT INTO categories (kind, name, is_active) VALUES (?, ?, 1)", (kind, name))
            created = {'id': cursor.lastrowid, 'kind': kind, 'name': name, 'is_active': True}
            if own_connection:
                conn.commit()
            return created
        finally:
            if own_connection:
                cursor.close()
                conn.close()

    def create_default_categories(self):
        """
        Insert the default debit/credit categories. Only runs on an empty
        categories table, so user edits are never undone.

        Returns:
            int: number of categories created
        """
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT COUNT(*) FROM categories")
            if cursor.fetchone()[0] > 0:
                return 0
            defaults = [('debit', name) for name in DEFAULT_DEBIT_CATEGORIES]
            defaults += [('credit', name) for name in DEFAULT_CREDIT_CATEGORIES + [INITIAL_BALANCE_CATEGORY]]
            cursor.executemany("INSERT INTO categories (kind, name, is_active) VALUES (?, ?, 1)", defaults)
            conn.commit()
            return len(defaults)
        finally:
            cursor.close()
            conn.close()
