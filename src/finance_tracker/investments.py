"""
Finance Tracker - Investment Portfolio

Assets (ticker, type, broker, manually updated price) and their buy / sell /
dividend / fee entries. The portfolio is rebuilt on demand by replaying the
entries in date order with weighted-average-cost accounting.

License: MIT
"""

from decimal import Decimal, InvalidOperation

from finance_tracker.utils import is_valid_date, is_valid_number, sanitize_string, today_str

INVESTMENT_TX_TYPES = ('buy', 'sell', 'dividend', 'fee')
DEFAULT_ASSET_TYPE = 'Ação'
DEFAULT_CURRENCY = 'BRL'
QUANTITY_PLACES = Decimal('0.00000001')
MONEY_PLACES = Decimal('0.01')
ZERO = Decimal('0')


def _dec(value):
    if value is None or value == '':
        return ZERO
    return Decimal(str(value))


class InvestmentMixin:

    # =============================================================================
    # ASSETS
    # =============================================================================

    @staticmethod
    def _row_to_investment(row):
        if row is None:
            return None
        investment = dict(row)
        investment['latest_price'] = _dec(investment['latest_price'])
        investment['is_active'] = bool(investment['is_active'])
        return investment

    def get_investment(self, investment_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM investments WHERE id = ?", (investment_id,))
            return self._row_to_investment(cursor.fetchone())
        finally:
            cursor.close()
            conn.close()

    def list_investments(self, include_inactive=False):
        query = "SELECT * FROM investments"
        if not include_inactive:
            query += " WHERE is_active = 1"
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query)
            investments = [self._row_to_investment(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()
        investments.sort(key=lambda a: (a['symbol'] or a['name']).lower())
        return investments

    def upsert_investment(self, data):
        """
        Create an asset, or update it when data has an id.

        Returns:
            tuple: (success bool, message str, investment dict or None)
        """
        if not isinstance(data, dict):
            return False, "Invalid data.", None

        symbol = sanitize_string(data.get('symbol') or '', 20).upper()
        name = sanitize_string(data.get('name') or '', 200)
        if not symbol and not name:
            return False, "Provide at least the ticker or the asset name.", None
        price = data.get('latest_price')
        if price not in (None, '') and (not is_valid_number(price) or Decimal(str(price)) < 0):
            return False, "Price must be zero or greater.", None

        now = self._now()
        fields = {
            'symbol': symbol,
            'name': name,
            'asset_type': sanitize_string(data.get('asset_type') or '', 50) or DEFAULT_ASSET_TYPE,
            'broker': sanitize_string(data.get('broker') or '', 100),
            'currency': (sanitize_string(data.get('currency') or '', 3) or DEFAULT_CURRENCY).upper(),
            'notes': sanitize_string(data.get('notes') or '', 1000),
        }

        investment_id = data.get('id')
        conn, cursor = self._get_db_connection()
        try:
            if investment_id:
                cursor.execute("SELECT * FROM investments WHERE id = ?", (investment_id,))
                existing = cursor.fetchone()
                if not existing:
                    return False, "Investment not found.", None
                fields['symbol'] = fields['symbol'] or existing['symbol']
                fields['name'] = fields['name'] or existing['name']
                latest_price = existing['latest_price']
                last_price_at = existing['last_price_at']
                if price not in (None, ''):
                    latest_price, last_price_at = str(Decimal(str(price))), now
                is_active = existing['is_active'] if data.get('is_active') is None else self._to_bool_int(data['is_active'])
                cursor.execute(
                    """UPDATE investments SET symbol = ?, name = ?, asset_type = ?, broker = ?, currency = ?,
                           latest_price = ?, last_price_at = ?, is_active = ?, notes = ?, updated_at = ?
                       WHERE id = ?""",
                    (fields['symbol'], fields['name'], fields['asset_type'], fields['broker'], fields['currency'],
                     latest_price, last_price_at, is_active, fields['notes'], now, investment_id)
                )
                message = "Investment updated."
            else:
                has_price = price not in (None, '')
                cursor.execute(
                    """INSERT INTO investments (symbol, name, asset_type, broker, currency, latest_price,
                           last_price_at, is_active, notes, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)""",
                    (fields['symbol'], fields['name'], fields['asset_type'], fields['broker'], fields['currency'],
                     str(Decimal(str(price))) if has_price else '0', now if has_price else None,
                     fields['notes'], now, now)
                )
                investment_id = cursor.lastrowid
                message = "Investment created."
            self._bump_data_version(cursor, 'investments')
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('INVESTMENTS', 'upsert_investment', e)
            return False, f"Error saving investment: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('INVESTMENTS', 'upsert_investment', f"{message} ID {investment_id}")
        return True, message, self.get_investment(investment_id)

    def delete_investment(self, investment_id):
        """Soft delete: the asset disappears from lists, its history stays."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("UPDATE investments SET is_active = 0, updated_at = ? WHERE id = ?",
                           (self._now(), investment_id))
            if not cursor.rowcount:
                return False, "Investment not found."
            self._bump_data_version(cursor, 'investments')
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        self.log_info('INVESTMENTS', 'delete_investment', f"Investment {investment_id} removed")
        return True, "Investment removed."

    def update_investment_price(self, investment_id, price, at=None):
        if not is_valid_number(price) or Decimal(str(price)) < 0:
            return False, "Price must be zero or greater.", None
        conn, cursor = self._get_db_connection()
        try:
            now = self._now()
            cursor.execute("UPDATE investments SET latest_price = ?, last_price_at = ?, updated_at = ? WHERE id = ?",
                           (str(Decimal(str(price))), at or now, now, investment_id))
            if not cursor.rowcount:
                return False, "Investment not found.", None
            self._bump_data_version(cursor, 'investments')
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        return True, "Price updated.", self.get_investment(investment_id)

    # =============================================================================
    # INVESTMENT TRANSACTIONS
    # =============================================================================

    @staticmethod
    def _row_to_investment_tx(row):
        tx = dict(row)
        tx['quantity'] = _dec(tx['quantity']) if tx['quantity'] not in (None, '') else None
        tx['price'] = _dec(tx['price']) if tx['price'] not in (None, '') else None
        tx['amount'] = _dec(tx['amount'])
        return tx

    def add_investment_transaction(self, data):
        """
        buy/sell need quantity > 0 and price >= 0 (amount = quantity * price);
        dividend/fee need amount > 0.

        Returns:
            tuple: (success bool, message str, transaction dict or None)
        """
        if not isinstance(data, dict):
            return False, "Invalid data.", None
        investment = self.get_investment(data.get('investment_id'))
        if not investment:
            return False, "Investment not found.", None

        tx_type = str(data.get('type') or '').lower()
        if tx_type not in INVESTMENT_TX_TYPES:
            return False, "Type must be buy, sell, dividend or fee.", None
        date = data.get('date') or today_str()
        if not is_valid_date(date):
            return False, "Date must be a valid YYYY-MM-DD date.", None

        quantity = price = None
        if tx_type in ('buy', 'sell'):
            if not is_valid_number(data.get('quantity')) or Decimal(str(data['quantity'])) <= 0:
                return False, "Quantity must be greater than zero.", None
            if not is_valid_number(data.get('price')) or Decimal(str(data['price'])) < 0:
                return False, "Price must be zero or greater.", None
            quantity, price = Decimal(str(data['quantity'])), Decimal(str(data['price']))
        elif not is_valid_number(data.get('amount')) or Decimal(str(data['amount'])) <= 0:
            return False, "Amount must be greater than zero.", None

        try:
            if quantity is not None:
                amount = (quantity * price).quantize(MONEY_PLACES)
            else:
                amount = Decimal(str(data['amount'])).quantize(MONEY_PLACES)
        except InvalidOperation:
            return False, "Amount is too large.", None

        now = self._now()
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                """INSERT INTO investment_transactions (investment_id, date, type, quantity, price, amount,
                       notes, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (investment['id'], date, tx_type,
                 str(quantity) if quantity is not None else None,
                 str(price) if price is not None else None,
                 str(amount), sanitize_string(data.get('notes') or '', 500), now, now)
            )
            tx_id = cursor.lastrowid
            self._bump_data_version(cursor, 'investments')
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.log_error('INVESTMENTS', 'add_investment_transaction', e)
            return False, f"Error saving entry: {e}", None
        finally:
            cursor.close()
            conn.close()

        self.log_info('INVESTMENTS', 'add_investment_transaction', f"{tx_type} entry {tx_id} for investment {investment['id']}")
        return True, "Entry created.", self.get_investment_transaction(tx_id)

    def get_investment_transaction(self, tx_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM investment_transactions WHERE id = ?", (tx_id,))
            row = cursor.fetchone()
            return self._row_to_investment_tx(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def list_investment_transactions(self, investment_id=None, date_from=None, date_to=None, limit=50):
        try:
            limit = int(limit or 50)
        except (TypeError, ValueError):
            limit = 50
        limit = min(max(limit, 1), 200)

        query = """SELECT t.*, i.symbol, i.name FROM investment_transactions t
                   JOIN investments i ON i.id = t.investment_id WHERE 1=1"""
        params = []
        if investment_id:
            query += " AND t.investment_id = ?"
            params.append(investment_id)
        if date_from:
            query += " AND t.date >= ?"
            params.append(date_from)
        if date_to:
            query += " AND t.date <= ?"
            params.append(date_to)
        query += " ORDER BY t.date DESC, t.id DESC LIMIT ?"
        params.append(limit)

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            return [self._row_to_investment_tx(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def delete_investment_transaction(self, tx_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM investment_transactions WHERE id = ?", (tx_id,))
            if not cursor.rowcount:
                return False, "Entry not found."
            self._bump_data_version(cursor, 'investments')
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        self.log_info('INVESTMENTS', 'delete_investment_transaction', f"Entry {tx_id} deleted")
        return True, "Entry deleted."

    # =============================================================================
    # PORTFOLIO
    # =============================================================================

    def get_portfolio(self):
        """
        Replay every entry (date, then id) over the active assets.

        Returns:
            dict: positions (sorted by current_value desc) and totals
        """
        state = {}
        for asset in self.list_investments():
            state[asset['id']] = {
                'investment_id': asset['id'],
                'symbol': asset['symbol'],
                'name': asset['name'],
                'asset_type': asset['asset_type'],
                'currency': asset['currency'],
                'latest_price': asset['latest_price'],
                'quantity': ZERO,
                'avg_cost': ZERO,
                'realized_pnl': ZERO,
                'dividends': ZERO,
                'fees': ZERO,
            }

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM investment_transactions ORDER BY date, id")
            entries = [self._row_to_investment_tx(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

        for tx in entries:
            s = state.get(tx['investment_id'])
            if s is None:
                continue
            if tx['type'] == 'buy':
                quantity = tx['quantity'] or ZERO
                new_quantity = s['quantity'] + quantity
                new_cost = s['avg_cost'] * s['quantity'] + quantity * (tx['price'] or ZERO)
                s['quantity'] = new_quantity
                s['avg_cost'] = new_cost / new_quantity if new_quantity > 0 else ZERO
            elif tx['type'] == 'sell':
                sold = min(tx['quantity'] or ZERO, s['quantity'])
                s['realized_pnl'] += ((tx['price'] or ZERO) - s['avg_cost']) * sold
                s['quantity'] = max(ZERO, s['quantity'] - sold)
                if s['quantity'] == 0:
                    s['avg_cost'] = ZERO
            elif tx['type'] == 'dividend':
                s['dividends'] += tx['amount']
            elif tx['type'] == 'fee':
                s['fees'] += tx['amount']

        positions = []
        for s in state.values():
            current_value = s['quantity'] * s['latest_price']
            cost_basis = s['quantity'] * s['avg_cost']
            unrealized = current_value - cost_basis
            positions.append({
                'investment_id': s['investment_id'],
                'symbol': s['symbol'],
                'name': s['name'],
                'asset_type': s['asset_type'],
                'currency': s['currency'],
                'latest_price': s['latest_price'],
                'quantity': s['quantity'].quantize(QUANTITY_PLACES),
                'avg_cost': s['avg_cost'].quantize(QUANTITY_PLACES),
                'cost_basis': cost_basis.quantize(MONEY_PLACES),
                'current_value': current_value.quantize(MONEY_PLACES),
                'unrealized_pnl': unrealized.quantize(MONEY_PLACES),
                'realized_pnl': s['realized_pnl'].quantize(MONEY_PLACES),
                'dividends': s['dividends'].quantize(MONEY_PLACES),
                'fees': s['fees'].quantize(MONEY_PLACES),
                'total_pnl': (unrealized + s['realized_pnl'] + s['dividends'] - s['fees']).quantize(MONEY_PLACES),
            })
        positions.sort(key=lambda p: p['current_value'], reverse=True)

        totals = {}
        for field in ('cost_basis', 'current_value', 'unrealized_pnl', 'realized_pnl', 'dividends', 'fees', 'total_pnl'):
            totals[field] = sum((p[field] for p in positions), Decimal('0.00'))
        return {'positions': positions, 'totals': totals}

    def get_portfolio_bundle(self, force=False):
        """Portfolio, assets and the 20 latest entries, cached per investments data version."""
        if force:
            self._cache.pop('investments_bundle', None)
        version = self.get_data_version('investments')
        return self._cached('investments_bundle', version, lambda: {
            'portfolio': self.get_portfolio(),
            'investments': self.list_investments(),
            'recent_transactions': self.list_investment_transactions(limit=20),
        })
