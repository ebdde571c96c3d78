"""
Finance Tracker - Transactions & Installments

Single transactions and installment groups (parcelamento). An installment
purchase becomes N rows that share a parent_transaction_id; the total is split
in cents and the last installment absorbs the rounding remainder.

License: MIT
"""

import math
import uuid
from decimal import Decimal, ROUND_HALF_UP

from finance_tracker.categories import INITIAL_BALANCE_CATEGORY
from finance_tracker.utils import add_months, is_valid_date, is_valid_number, to_date, today_str

TRANSACTION_TYPES = ('debit', 'credit')
PAYMENT_METHODS = [
    'Dinheiro', 'Débito', 'Crédito à vista', 'Crédito parcelado',
    'PIX', 'Boleto', 'Transferência', 'Outros',
]
DEFAULT_PAYMENT_METHOD = 'Outros'
INSTALLMENT_PAYMENT_METHOD = 'Crédito parcelado'

MAX_TRANSACTIONS = 50000
MAX_INSTALLMENTS = 60
MAX_AMOUNT = Decimal('1000000000')
MAX_DESCRIPTION = 500
MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 50
INITIAL_BALANCE_DESCRIPTION = 'Saldo inicial do sistema'

TRANSACTION_COLUMNS = (
    "id, date, type, category, description, amount, created_at, updated_at, attachment_id, "
    "payment_method, installments, installment_number, parent_transaction_id, "
    "import_batch_id, import_hash, import_source, import_account"
)


class TransactionMixin:

    # =============================================================================
    # ROW CONVERSION & VALIDATION
    # =============================================================================

    def _row_to_transaction(self, row):
        if row is None:
            return None
        tx = dict(row)
        tx['amount'] = self._from_money_str(tx['amount'])
        tx['payment_method'] = tx.get('payment_method') or DEFAULT_PAYMENT_METHOD
        tx['installments'] = int(tx.get('installments') or 1)
        tx['installment_number'] = int(tx.get('installment_number') or 1)
        tx['parent_transaction_id'] = tx.get('parent_transaction_id') or ''
        tx['has_attachment'] = bool(tx.get('attachment_id'))
        tx['is_installment'] = bool(tx['parent_transaction_id'])
        return tx

    def _category_is_active(self, name, kind):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT 1 FROM categories WHERE name = ? AND kind = ? AND is_active = 1 LIMIT 1",
                (name, kind)
            )
            return cursor.fetchone() is not None
        finally:
            cursor.close()
            conn.close()

    def validate_transaction_data(self, data):
        """
        Validate a transaction payload.

        Returns:
            tuple: (is_valid bool, errors list)
        """
        if not isinstance(data, dict):
            return False, ["Invalid data."]

        errors = []
        date = str(data.get('date') or '').strip()
        tx_type = str(data.get('type') or '').strip().lower()
        category = str(data.get('category') or '').strip()
        description = str(data.get('description') or '').strip()
        amount = data.get('amount')

        if not date:
            errors.append("Date is required.")
        elif not is_valid_date(date):
            errors.append("Date must be a valid YYYY-MM-DD date.")

        if tx_type not in TRANSACTION_TYPES:
            errors.append('Type must be "debit" or "credit".')

        if not category:
            errors.append("Category is required.")
        elif tx_type in TRANSACTION_TYPES and not self._category_is_active(category, tx_type):
            errors.append("Category not found or inactive.")

        if not description:
            errors.append("Description is required.")
        elif len(description) > MAX_DESCRIPTION:
            errors.append(f"Description must be at most {MAX_DESCRIPTION} characters.")

        if amount is None or amount == '':
            errors.append("Amount is required.")
        elif not is_valid_number(amount):
            errors.append("Amount must be a valid number.")
        elif Decimal(str(amount)) <= 0:
            errors.append("Amount must be greater than zero.")
        elif Decimal(str(amount)) > MAX_AMOUNT:
            errors.append("Amount exceeds the maximum allowed.")

        installments = data.get('installments')
        if installments not in (None, ''):
            try:
                count = int(str(installments))
            except ValueError:
                errors.append("Installments must be a whole number.")
            else:
                if count < 1 or count > MAX_INSTALLMENTS:
                    errors.append(f"Installments must be between 1 and {MAX_INSTALLMENTS}.")

        payment_method = data.get('payment_method')
        if payment_method and payment_method not in PAYMENT_METHODS:
            errors.append("Invalid payment method.")

        return not errors, errors

    @staticmethod
    def sanitize_transaction_data(data):
        return {
            'date': str(data.get('date') or '').strip(),
            'type': str(data.get('type') or '').strip().lower(),
            'category': str(data.get('category') or '').strip(),
            'description': str(data.get('description') or '').strip()[:MAX_DESCRIPTION],
            'amount': Decimal(str(data.get('amount'))).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP),
        }

    def _insert_transaction(self, cursor, tx):
        cursor.execute(
            """INSERT INTO transactions (date, type, category, description, amount, created_at, updated_at,
                   attachment_id, payment_method, installments, installment_number, parent_transaction_id,
                   import_batch_id, import_hash, import_source, import_account)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (tx['date'], tx['type'], tx['category'], tx['description'], self._to_money_str(tx['amount']),
             tx['created_at'], tx['updated_at'], tx.get('attachment_id'),
             tx.get('payment_method') or DEFAULT_PAYMENT_METHOD,
             tx.get('installments', 1), tx.get('installment_number', 1), tx.get('parent_transaction_id'),
             tx.get('import_batch_id'), tx.get('import_hash'), tx.get('import_source'), tx.get('import_account'))
        )
        return cursor.lastrowid

    # =============================================================================
    # CREATE
    # =============================================================================

    def create_transaction(self, data):
        """
        Create a transaction. Payloads with installments > 1 are split into an
        installment group.

        Returns:
            tuple: (success bool, message str, payload dict or None)
        """
        valid, errors = self.validate_transaction_data(data)
        if not valid:
            self.log_warning('TRANSACTIONS', 'create_transaction', "Invalid data: " + "; ".join(errors))
            return False, "; ".join(errors), None

        if int(data.get('installments') or 1) > 1:
            return self.create_installment_transaction(data)

        clean = self.sanitize_transaction_data(data)
        now = self._now()
        clean.update({
            'created_at': now,
            'updated_at': now,
            'attachment_id': data.get('attachment_id') or None,
            'payment_method': data.get('payment_method') or DEFAULT_PAYMENT_METHOD,
        })

        with self._lock:
            conn, cursor = self._get_db_connection()
            try:
                cursor.execute("SELECT COUNT(*) FROM transactions")
                if cursor.fetchone()[0] >= MAX_TRANSACTIONS:
                    return False, f"Transaction limit reached ({MAX_TRANSACTIONS}).", None
                new_id = self._insert_transaction(cursor, clean)
                self._bump_data_version(cursor)
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('TRANSACTIONS', 'create_transaction', e)
                return False, f"An error occurred: {e}", None
            finally:
                cursor.close()
                conn.close()

        self.log_info('TRANSACTIONS', 'create_transaction', f"Transaction {new_id} created")
        return True, "Transaction created successfully.", self.get_transaction(new_id)

    @staticmethod
    def split_installments(total, count):
        """
        Split a total into `count` amounts in cents. Every installment gets
        floor(total/count); the last one takes the remainder.

        Returns:
            list: Decimal amounts that add up exactly to total
        """
        total_cents = int((Decimal(str(total)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        installment_cents = math.floor(total_cents / count)
        last_cents = total_cents - installment_cents * (count - 1)
        amounts = [Decimal(installment_cents) / 100] * (count - 1) + [Decimal(last_cents) / 100]
        return [amount.quantize(Decimal('0.01')) for amount in amounts]

    def create_installment_transaction(self, data):
        """
        Create an installment group: one row per month starting at data['date'].

        Returns:
            tuple: (success bool, message str, payload dict or None) where payload has
                   parent_id, installment_ids, total_amount, installment_amount, installments
        """
        valid, errors = self.validate_transaction_data(data)
        if not valid:
            return False, "; ".join(errors), None

        try:
            count = int(str(data.get('installments')))
        except ValueError:
            return False, "Installments must be a whole number.", None
        if count < 2 or count > MAX_INSTALLMENTS:
            return False, f"Installments must be between 2 and {MAX_INSTALLMENTS}.", None

        clean = self.sanitize_transaction_data(data)
        parent_id = uuid.uuid4().hex
        now = self._now()
        base_date = to_date(clean['date'])
        amounts = self.split_installments(clean['amount'], count)
        payment_method = data.get('payment_method') or INSTALLMENT_PAYMENT_METHOD

        rows = []
        for number in range(1, count + 1):
            rows.append({
                'date': add_months(base_date, number - 1).strftime('%Y-%m-%d'),
                'type': clean['type'],
                'category': clean['category'],
                'description': f"{clean['description']} ({number}/{count})",
                'amount': amounts[number - 1],
                'created_at': now,
                'updated_at': now,
                'payment_method': payment_method,
                'installments': count,
                'installment_number': number,
                'parent_transaction_id': parent_id,
            })

        with self._lock:
            conn, cursor = self._get_db_connection()
            try:
                cursor.execute("SELECT COUNT(*) FROM transactions")
                if cursor.fetchone()[0] + count > MAX_TRANSACTIONS:
                    return False, f"Transaction limit reached ({MAX_TRANSACTIONS}).", None
                installment_ids = [self._insert_transaction(cursor, row) for row in rows]
                self._bump_data_version(cursor)
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('TRANSACTIONS', 'create_installment_transaction', e)
                return False, f"An error occurred while creating installments: {e}", None
            finally:
                cursor.close()
                conn.close()

        self.log_info('TRANSACTIONS', 'create_installment_transaction',
                      f"{count} installments created (parent {parent_id})")
        return True, f"{count} installments created successfully.", {
            'parent_id': parent_id,
            'installment_ids': installment_ids,
            'total_amount': clean['amount'],
            'installment_amount': amounts[0],
            'installments': count,
        }

    # =============================================================================
    # READ
    # =============================================================================

    def get_transaction(self, transaction_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id = ?", (transaction_id,))
            return self._row_to_transaction(cursor.fetchone())
        finally:
            cursor.close()
            conn.close()

    def query_transactions(self, filters=None):
        """
        Filter transactions, newest first.

        Filters (all optional): start_date, end_date, type, category,
        payment_method, search, min_amount, max_amount.
        """
        filters = filters or {}
        query = f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE 1=1"
        params = []
        if filters.get('start_date'):
            query += " AND date >= ?"
            params.append(filters['start_date'])
        if filters.get('end_date'):
            query += " AND date <= ?"
            params.append(filters['end_date'])
        if filters.get('type') in TRANSACTION_TYPES:
            query += " AND type = ?"
            params.append(filters['type'])
        if filters.get('category'):
            query += " AND category = ?"
            params.append(filters['category'])
        if filters.get('payment_method'):
            query += " AND COALESCE(payment_method, 'Outros') = ?"
            params.append(filters['payment_method'])
        query += " ORDER BY date DESC, id DESC"

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            transactions = [self._row_to_transaction(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        # SQLite lower() only folds ASCII, so text search happens here
        search = str(filters.get('search') or '').strip().lower()
        if search:
            transactions = [t for t in transactions if search in (t['description'] or '').lower()]

        min_amount = filters.get('min_amount')
        if min_amount not in (None, '') and is_valid_number(min_amount):
            transactions = [t for t in transactions if t['amount'] >= Decimal(str(min_amount))]
        max_amount = filters.get('max_amount')
        if max_amount not in (None, '') and is_valid_number(max_amount):
            transactions = [t for t in transactions if t['amount'] <= Decimal(str(max_amount))]

        return transactions

    def list_transactions(self, filters=None, page=1, page_size=DEFAULT_PAGE_SIZE):
        """
        Paginated query_transactions.

        Returns:
            dict: items, count, total, page, page_size, total_pages
        """
        try:
            page = max(1, int(page or 1))
        except (TypeError, ValueError):
            page = 1
        try:
            page_size = int(page_size or DEFAULT_PAGE_SIZE)
        except (TypeError, ValueError):
            page_size = DEFAULT_PAGE_SIZE
        page_size = min(max(1, page_size), MAX_PAGE_SIZE)

        transactions = self.query_transactions(filters)
        total = len(transactions)
        start = (page - 1) * page_size
        items = transactions[start:start + page_size]
        return {
            'items': items,
            'count': len(items),
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': math.ceil(total / page_size) if total else 0,
        }

    def get_transactions_by_period(self, start_date, end_date):
        return self.query_transactions({'start_date': start_date, 'end_date': end_date})

    def get_transactions_by_type(self, tx_type):
        return self.query_transactions({'type': tx_type})

    def get_transactions_by_category(self, category):
        return self.query_transactions({'category': category})

    # =============================================================================
    # UPDATE / DELETE
    # =============================================================================

    def update_transaction(self, transaction_id, data):
        """
        Replace the editable fields of a transaction. created_at, installment
        and import fields are kept; attachment_id and payment_method only change
        when present in the payload.

        Returns:
            tuple: (success bool, message str, transaction dict or None)
        """
        existing = self.get_transaction(transaction_id)
        if not existing:
            self.log_warning('TRANSACTIONS', 'update_transaction', f"Transaction not found: ID {transaction_id}")
            return False, "Transaction not found.", None

        valid, errors = self.validate_transaction_data(data)
        if not valid:
            return False, "; ".join(errors), None

        clean = self.sanitize_transaction_data(data)
        attachment_id = data['attachment_id'] if 'attachment_id' in data else existing['attachment_id']
        payment_method = data['payment_method'] if data.get('payment_method') else existing['payment_method']

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """UPDATE transactions
                   SET date = ?, type = ?, category = ?, description = ?, amount = ?, updated_at = ?,
                       attachment_id = ?, payment_method = ?
                   WHERE id = ?""",
                (clean['date'], clean['type'], clean['category'], clean['description'],
                 self._to_money_str(clean['amount']), self._now(), attachment_id or None,
                 payment_method, transaction_id)
            )
            self._bump_data_version(cursor)
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('TRANSACTIONS', 'update_transaction', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('TRANSACTIONS', 'update_transaction', f"Transaction {transaction_id} updated")
        return True, "Transaction updated successfully.", self.get_transaction(transaction_id)

    def _set_attachment_id(self, transaction_id, attachment_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("UPDATE transactions SET attachment_id = ?, updated_at = ? WHERE id = ?",
                           (attachment_id, self._now(), transaction_id))
            self._bump_data_version(cursor)
            conn.commit()
        finally:
            cursor.close()
            conn.close()

    def delete_transaction(self, transaction_id):
        """
        Returns:
            tuple: (success bool, message str)
        """
        if not self.get_transaction(transaction_id):
            return False, "Transaction not found."

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            self._bump_data_version(cursor)
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('TRANSACTIONS', 'delete_transaction', e)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        self.log_info('TRANSACTIONS', 'delete_transaction', f"Transaction {transaction_id} deleted")
        return True, "Transaction deleted successfully."

    # =============================================================================
    # INSTALLMENT GROUPS
    # =============================================================================

    def get_installment_group(self, parent_id):
        """All installments of a group, ordered by installment number."""
        if not parent_id:
            return []
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE parent_transaction_id = ? "
                "ORDER BY installment_number",
                (str(parent_id),)
            )
            return [self._row_to_transaction(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def delete_installment_group(self, parent_id):
        """
        Returns:
            tuple: (success bool, message str, deleted_count int)
        """
        if not parent_id:
            return False, "Invalid parent ID.", 0

        with self._lock:
            conn, cursor = self._get_db_connection()
            try:
                cursor.execute("DELETE FROM transactions WHERE parent_transaction_id = ?", (str(parent_id),))
                deleted = cursor.rowcount
                if deleted == 0:
                    conn.rollback()
                    return False, "Installment group not found.", 0
                self._bump_data_version(cursor)
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('TRANSACTIONS', 'delete_installment_group', e)
                return False, f"An error occurred: {e}", 0
            finally:
                cursor.close()
                conn.close()

        self.log_info('TRANSACTIONS', 'delete_installment_group', f"{deleted} installments deleted (parent {parent_id})")
        return True, f"{deleted} installments deleted successfully.", deleted

    # =============================================================================
    # INITIAL BALANCE
    # =============================================================================

    def _find_initial_balance_row(self, cursor):
        cursor.execute(
            f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE category = ? ORDER BY id LIMIT 1",
            (INITIAL_BALANCE_CATEGORY,)
        )
        return cursor.fetchone()

    def set_initial_balance(self, amount, date=None):
        """
        Create or update the 'Saldo Inicial' credit. An existing initial balance
        keeps its date; only the amount changes.

        Returns:
            tuple: (success bool, message str, transaction dict or None)
        """
        if not is_valid_number(amount) or Decimal(str(amount)) <= 0:
            return False, "Invalid initial balance amount.", None
        if date and not is_valid_date(date):
            return False, "Date must be a valid YYYY-MM-DD date.", None

        value = Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        now = self._now()
        conn, cursor = self._get_db_connection()
        try:
            self.ensure_category(INITIAL_BALANCE_CATEGORY, 'credit', cursor=cursor)
            existing = self._find_initial_balance_row(cursor)
            if existing:
                tx_id = existing['id']
                cursor.execute(
                    "UPDATE transactions SET amount = ?, type = 'credit', description = ?, updated_at = ? WHERE id = ?",
                    (self._to_money_str(value), INITIAL_BALANCE_DESCRIPTION, now, tx_id)
                )
                message = "Initial balance updated successfully."
            else:
                tx_id = self._insert_transaction(cursor, {
                    'date': date or today_str(),
                    'type': 'credit',
                    'category': INITIAL_BALANCE_CATEGORY,
                    'description': INITIAL_BALANCE_DESCRIPTION,
                    'amount': value,
                    'created_at': now,
                    'updated_at': now,
                })
                message = "Initial balance created successfully."
            self._bump_data_version(cursor)
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('TRANSACTIONS', 'set_initial_balance', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('TRANSACTIONS', 'set_initial_balance', f"Initial balance set to {value}")
        return True, message, self.get_transaction(tx_id)

    def get_initial_balance(self):
        conn, cursor = self._get_db_connection()
        try:
            return self._row_to_transaction(self._find_initial_balance_row(cursor))
        finally:
            cursor.close()
            conn.close()
