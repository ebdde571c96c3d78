"""
Finance Tracker - Goals

Savings goals, spending limits and category budgets. Progress is either set
by hand or recomputed from the transactions inside each goal's period.

License: MIT
"""

from decimal import Decimal

from finance_tracker.reports import ZERO
from finance_tracker.utils import is_valid_date, is_valid_number, sanitize_string, to_date, today_str

GOAL_TYPES = ('savings', 'spending-limit', 'category-budget')
GOAL_STATUSES = ('active', 'completed', 'cancelled')


def calculate_progress(current, target):
    """Percent of target reached, one decimal, capped at 100."""
    if not target or Decimal(str(target)) <= 0:
        return 0.0
    return min(round(float(Decimal(str(current)) / Decimal(str(target)) * 100), 1), 100.0)


class GoalMixin:

    def _row_to_goal(self, row):
        goal = dict(row)
        goal['target_amount'] = self._from_money_str(goal['target_amount'])
        goal['current_amount'] = self._from_money_str(goal['current_amount'])
        goal['category'] = goal['category'] or ''
        goal['progress'] = calculate_progress(goal['current_amount'], goal['target_amount'])
        goal['remaining'] = max(goal['target_amount'] - goal['current_amount'], ZERO)
        return goal

    def get_goals(self, status=None):
        query = "SELECT * FROM goals"
        params = []
        if status in GOAL_STATUSES:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY end_date, id"

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            return [self._row_to_goal(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def get_goal(self, goal_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM goals WHERE id = ?", (goal_id,))
            row = cursor.fetchone()
            return self._row_to_goal(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def create_goal(self, data):
        """
        Returns:
            tuple: (success bool, message str, goal dict or None)
        """
        if not isinstance(data, dict) or not str(data.get('name') or '').strip():
            return False, "Goal name is required.", None
        target = data.get('target_amount')
        if not is_valid_number(target) or Decimal(str(target)) <= 0:
            return False, "Target amount must be greater than zero.", None

        goal_type = data.get('type') or 'savings'
        if goal_type not in GOAL_TYPES:
            return False, "Invalid goal type.", None
        category = sanitize_string(data.get('category') or '', 100)
        if goal_type == 'category-budget' and not category:
            return False, "A category budget needs a category.", None

        start_date = data.get('start_date') or today_str()
        end_date = data.get('end_date')
        if not end_date:
            return False, "End date is required.", None
        if not is_valid_date(start_date) or not is_valid_date(end_date):
            return False, "Dates must be valid YYYY-MM-DD dates.", None
        if to_date(end_date) < to_date(start_date):
            return False, "End date must be on or after the start date.", None

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """INSERT INTO goals (name, target_amount, current_amount, category, type,
                       start_date, end_date, status, created_at)
                   VALUES (?, ?, '0.00', ?, ?, ?, ?, 'active', ?)""",
                (sanitize_string(data['name'], 200), self._to_money_str(Decimal(str(target))),
                 category or None, goal_type, start_date, end_date, self._now())
            )
            goal_id = cursor.lastrowid
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('GOALS', 'create_goal', e)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('GOALS', 'create_goal', f"Goal {goal_id} created")
        return True, "Goal created successfully.", self.get_goal(goal_id)

    def update_goal_progress(self, goal_id, amount):
        """
        Set the current amount. A goal reaching 100% is marked completed.

        Returns:
            tuple: (success bool, message str, goal dict or None)
        """
        if not is_valid_number(amount) or Decimal(str(amount)) < 0:
            return False, "Amount must be zero or greater.", None
        goal = self.get_goal(goal_id)
        if not goal:
            return False, "Goal not found.", None

        amount = Decimal(str(amount))
        status = 'completed' if calculate_progress(amount, goal['target_amount']) >= 100 else goal['status']

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("UPDATE goals SET current_amount = ?, status = ? WHERE id = ?",
                           (self._to_money_str(amount), status, goal_id))
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        return True, "Progress updated successfully.", self.get_goal(goal_id)

    def delete_goal(self, goal_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM goals WHERE id = ?", (goal_id,))
            deleted = cursor.rowcount
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        if not deleted:
            return False, "Goal not found."
        self.log_info('GOALS', 'delete_goal', f"Goal {goal_id} deleted")
        return True, "Goal deleted successfully."

    def update_all_goals_progress(self):
        """
        Recompute every active goal from the transactions in its own period.

        Returns:
            int: number of goals updated
        """
        updated = 0
        for goal in self.get_goals(status='active'):
            transactions = self.query_transactions({'start_date': goal['start_date'], 'end_date': goal['end_date']})
            if goal['type'] == 'savings':
                balance = sum((t['amount'] if t['type'] == 'credit' else -t['amount'] for t in transactions), ZERO)
                current = max(balance, ZERO)
            elif goal['type'] == 'spending-limit':
                current = sum((t['amount'] for t in transactions if t['type'] == 'debit'), ZERO)
            else:
                current = sum((t['amount'] for t in transactions
                               if t['type'] == 'debit' and t['category'] == goal['category']), ZERO)
            ok, _, _ = self.update_goal_progress(goal['id'], current)
            if ok:
                updated += 1
        self.log_info('GOALS', 'update_all_goals_progress', f"{updated} goals recalculated")
        return updated
