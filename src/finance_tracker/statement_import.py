"""
Finance Tracker - Bank Statement Import (CSV)

Three-step flow used by the import wizard:

1. analyze_statement_csv  - detect delimiter/header and suggest a column mapping
2. preview_statement_import - parse every row with the chosen mapping and flag issues
3. commit_statement_import  - insert the valid rows as one import batch

Each imported row carries an import_hash (sha256 of date|type|amount|
description|account|source) so the same statement can be imported twice
without duplicating transactions. A whole batch can be rolled back with
undo_statement_import.

License: MIT
"""

import csv
import datetime
import hashlib
import io
import re
import secrets
from decimal import Decimal, InvalidOperation

from finance_tracker.transactions import DEFAULT_PAYMENT_METHOD, PAYMENT_METHODS
from finance_tracker.utils import is_valid_date, remove_accents

MAX_CSV_BYTES = 2 * 1024 * 1024
MAX_ROWS = 5000
PREVIEW_ROWS = 200
MAX_OVERRIDES = 500
ANALYZE_LINES = 60
SAMPLE_ROWS = 5

REVIEW_CATEGORY = 'A revisar'
DELIMITERS = (',', ';', '\t')

MAPPING_PATTERNS = {
    'date_col': ('data', 'date', 'dt'),
    'description_col': ('descricao', 'descr', 'historico', 'hist', 'lanc', 'description', 'memo'),
    'amount_col': ('valor', 'amount', 'value', 'vl'),
    'debit_col': ('debito', 'saida', 'despesa'),
    'credit_col': ('credito', 'entrada', 'receita'),
    'type_col': ('tipo', 'type'),
    'category_col': ('categoria', 'category'),
    'payment_method_col': ('pagamento', 'payment', 'forma'),
}

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
DMY_DATE_RE = re.compile(r'^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$')
AMOUNT_CHARS_RE = re.compile(r'[^\d,.\-()]')
LETTERS_RE = re.compile(r'[A-Za-zÀ-ÿ]')


class StatementImportError(ValueError):
    pass


# =============================================================================
# PARSING HELPERS
# =============================================================================

def normalize_csv(text):
    """Strip the BOM and normalize line endings. Raises StatementImportError when too big."""
    text = str(text or '')
    if text.startswith('\ufeff'):
        text = text[1:]
    if len(text.encode('utf-8')) > MAX_CSV_BYTES:
        raise StatementImportError(f"File too large (limit {MAX_CSV_BYTES // (1024 * 1024)}MB).")
    return text.replace('\r\n', '\n').replace('\r', '\n')


def detect_delimiter(text):
    first_line = text.split('\n', 1)[0]
    best, best_count = ',', -1
    for delimiter in DELIMITERS:
        count = first_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def read_rows(text, delimiter):
    """csv rows with fully blank lines removed."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return [row for row in reader if any(cell.strip() for cell in row)]


def guess_header(rows):
    """A header row has letters and is followed by a row with digits."""
    if len(rows) < 2:
        return True
    has_letters = any(LETTERS_RE.search(cell) for cell in rows[0])
    next_has_digits = any(re.search(r'\d', cell) for cell in rows[1])
    return has_letters and next_has_digits


def normalize_header(header):
    return remove_accents(str(header or '').strip().lower())


def suggest_mapping(headers):
    """Column index per field (or -1) by substring match on normalized headers."""
    normalized = [normalize_header(h) for h in headers]
    mapping = {}
    for field, patterns in MAPPING_PATTERNS.items():
        mapping[field] = next(
            (i for i, header in enumerate(normalized) if any(p in header for p in patterns)), -1)
    return mapping


def parse_amount(value):
    """
    '1.234,56' -> Decimal('1234.56'), '(10,00)' -> Decimal('-10.00').
    Returns None when the value is not a number.
    """
    raw = str(value if value is not None else '').strip()
    if not raw:
        return None
    s = AMOUNT_CHARS_RE.sub('', raw)
    negative = False
    if s.startswith('(') and s.endswith(')'):
        negative = True
        s = s[1:-1]
    if ',' in s and '.' in s:
        s = s.replace('.', '').replace(',', '.')
    elif ',' in s:
        s = s.replace(',', '.', 1)
    try:
        number = Decimal(s)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return -abs(number) if negative else number


def parse_date(value):
    """ISO, d/m/y, d-m-y or d.m.y (two-digit years pivot at 70) to YYYY-MM-DD, or ''."""
    v = str(value or '').strip()
    if not v:
        return ''
    if ISO_DATE_RE.match(v):
        return v if is_valid_date(v) else ''
    match = DMY_DATE_RE.match(v)
    if match:
        day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        if len(match.group(3)) == 2:
            year += 1900 if year >= 70 else 2000
        iso = f"{year:04d}-{month:02d}-{day:02d}"
        return iso if is_valid_date(iso) else ''
    for fmt in ('%Y/%m/%d', '%Y.%m.%d', '%d %b %Y'):
        try:
            return datetime.datetime.strptime(v, fmt).strftime('%Y-%m-%d')
        except ValueError:
            continue
    return ''


def parse_type_keyword(value):
    t = normalize_header(value)
    if not t:
        return None
    if t in ('d', '-') or any(k in t for k in ('deb', 'saida', 'desp')):
        return 'debit'
    if t in ('c', '+') or any(k in t for k in ('cred', 'entrada', 'rece')):
        return 'credit'
    return None


def _column(row, index):
    if index is None or index == '':
        return ''
    try:
        i = int(index)
    except (TypeError, ValueError):
        return ''
    if i < 0 or i >= len(row):
        return ''
    return row[i]


def _has_column(index):
    try:
        return index is not None and index != '' and int(index) >= 0
    except (TypeError, ValueError):
        return False


def parse_row(row, row_number, mapping):
    """Turn one CSV row into an import item with its list of issues."""
    amount = tx_type = None

    if _has_column(mapping.get('amount_col')):
        parsed = parse_amount(_column(row, mapping['amount_col']))
        if parsed is not None:
            tx_type = 'debit' if parsed < 0 else 'credit'
            amount = abs(parsed)
    else:
        debit = parse_amount(_column(row, mapping.get('debit_col')))
        credit = parse_amount(_column(row, mapping.get('credit_col')))
        if debit:
            tx_type, amount = 'debit', abs(debit)
        elif credit:
            tx_type, amount = 'credit', abs(credit)

    if not tx_type:
        tx_type = parse_type_keyword(_column(row, mapping.get('type_col')))

    date = parse_date(_column(row, mapping.get('date_col')))
    description = str(_column(row, mapping.get('description_col'))).strip()

    issues = []
    if not date:
        issues.append('Data inválida')
    if not description:
        issues.append('Descrição vazia')
    if amount is None or amount <= 0:
        issues.append('Valor inválido')
    if not tx_type:
        issues.append('Tipo não identificado')

    return {
        'row_number': row_number,
        'date': date,
        'type': tx_type or '',
        'description': description,
        'amount': amount.quantize(Decimal('0.01')) if amount is not None else Decimal('0.00'),
        'category': str(_column(row, mapping.get('category_col'))).strip(),
        'payment_method': str(_column(row, mapping.get('payment_method_col'))).strip(),
        'valid': not issues,
        'issues': issues,
    }


def parse_statement(content, options=None):
    """
    Parse the whole CSV with the mapping in options.

    Returns:
        dict: delimiter, has_header, total_rows, invalid_rows, items
    """
    options = options or {}
    text = normalize_csv(content)
    if not text.strip():
        raise StatementImportError("Empty CSV.")

    delimiter = options.get('delimiter') or detect_delimiter(text)
    has_header = options['has_header'] if isinstance(options.get('has_header'), bool) else True
    mapping = options.get('mapping') or {}

    rows = read_rows(text, delimiter)
    data_rows = rows[1:] if has_header else rows
    if len(data_rows) > MAX_ROWS:
        raise StatementImportError(f"Too many rows ({len(data_rows)}). Limit: {MAX_ROWS}.")

    items = [parse_row(row, number, mapping) for number, row in enumerate(data_rows, start=1)]
    return {
        'delimiter': delimiter,
        'has_header': has_header,
        'total_rows': len(data_rows),
        'invalid_rows': sum(1 for item in items if not item['valid']),
        'items': items,
    }


def apply_override(item, override, default_payment_method):
    """Apply the user's edits for one row and revalidate it."""
    out = dict(item)
    if override:
        for field in ('date', 'description'):
            if isinstance(override.get(field), str):
                out[field] = override[field].strip()
        if isinstance(override.get('type'), str):
            out['type'] = parse_type_keyword(override['type']) or override['type'].strip()
        if override.get('amount') not in (None, ''):
            amount = parse_amount(override['amount'])
            if amount is not None and amount > 0:
                out['amount'] = amount.quantize(Decimal('0.01'))
        for field in ('category', 'payment_method'):
            if isinstance(override.get(field), str):
                out[field] = override[field].strip()

    if not out['payment_method'] or out['payment_method'] not in PAYMENT_METHODS:
        out['payment_method'] = default_payment_method

    issues = []
    if not out['date'] or not is_valid_date(out['date']):
        issues.append('Data inválida')
    if out['type'] not in ('debit', 'credit'):
        issues.append('Tipo inválido')
    if not out['description']:
        issues.append('Descrição vazia')
    if not out['amount'] or out['amount'] <= 0:
        issues.append('Valor inválido')
    out['valid'] = not issues
    out['issues'] = issues
    return out


def compute_import_hash(item, source='', account=''):
    payload = '|'.join([
        item['date'],
        item['type'],
        f"{Decimal(item['amount']):.2f}",
        (item['description'] or '').strip().lower(),
        (account or '').strip().lower(),
        (source or '').strip().lower(),
    ])
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def create_batch_id():
    return f"IMP-{datetime.datetime.now().strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3)}"


class StatementImportMixin:

    def analyze_statement_csv(self, content, options=None):
        """
        Returns:
            tuple: (analysis dict or None, message str)
        """
        try:
            text = normalize_csv(content)
        except StatementImportError as e:
            return None, str(e)

        delimiter = (options or {}).get('delimiter') or detect_delimiter(text)
        all_lines = text.split('\n')
        rows = read_rows('\n'.join(all_lines[:ANALYZE_LINES]), delimiter)
        if not rows:
            return None, "Empty or invalid CSV."

        has_header = guess_header(rows)
        headers = [h.strip() for h in rows[0]] if has_header else [f"Coluna {i + 1}" for i in range(len(rows[0]))]
        start = 1 if has_header else 0
        return {
            'delimiter': delimiter,
            'has_header': has_header,
            'headers': headers,
            'suggested_mapping': suggest_mapping(headers),
            'sample_rows': rows[start:start + SAMPLE_ROWS],
            'total_lines': len([line for line in all_lines if line.strip()]),
        }, "OK"

    def preview_statement_import(self, content, options=None):
        try:
            parsed = parse_statement(content, options)
        except StatementImportError as e:
            return None, str(e)
        return {
            'delimiter': parsed['delimiter'],
            'has_header': parsed['has_header'],
            'total_rows': parsed['total_rows'],
            'invalid_rows': parsed['invalid_rows'],
            'valid_rows': parsed['total_rows'] - parsed['invalid_rows'],
            'preview_rows': parsed['items'][:PREVIEW_ROWS],
        }, "OK"

    def _existing_import_hashes(self, cursor):
        cursor.execute("SELECT import_hash FROM transactions WHERE import_hash IS NOT NULL AND import_hash != ''")
        return {row['import_hash'] for row in cursor.fetchall()}

    def commit_statement_import(self, content, options=None):
        """
        Insert the valid, non-duplicate rows as one batch.

        Options: delimiter, has_header, mapping, source, account,
        defaults {debit_category, credit_category, payment_method},
        overrides {row_number: {date, type, description, amount, category,
        payment_method, enabled}}.

        Returns:
            tuple: (success bool, message str, result dict or None) where result has
                   batch_id, created, skipped_invalid, skipped_duplicates, errors
        """
        options = options or {}
        try:
            parsed = parse_statement(content, options)
        except StatementImportError as e:
            return False, str(e), None

        overrides = {str(k): v for k, v in (options.get('overrides') or {}).items()}
        if len(overrides) > MAX_OVERRIDES:
            return False, f"Too many edits ({len(overrides)}). Limit: {MAX_OVERRIDES}.", None

        source = str(options.get('source') or '').strip()
        account = str(options.get('account') or '').strip()
        defaults = options.get('defaults') or {}
        default_categories = {
            'debit': str(defaults.get('debit_category') or REVIEW_CATEGORY).strip(),
            'credit': str(defaults.get('credit_category') or REVIEW_CATEGORY).strip(),
        }
        default_payment_method = str(defaults.get('payment_method') or DEFAULT_PAYMENT_METHOD).strip()
        batch_id = create_batch_id()

        skipped_invalid = skipped_duplicates = 0
        errors = []
        created = 0

        with self._lock:
            conn, cursor = self._get_db_connection()
            try:
                for kind, name in default_categories.items():
                    if name.lower() == REVIEW_CATEGORY.lower():
                        self.ensure_category(REVIEW_CATEGORY, kind, cursor=cursor)

                cursor.execute("SELECT kind, name FROM categories WHERE is_active = 1")
                active_categories = {(row['kind'], row['name']) for row in cursor.fetchall()}
                existing_hashes = self._existing_import_hashes(cursor)
                seen_in_batch = set()
                now = self._now()

                for item in parsed['items']:
                    override = overrides.get(str(item['row_number']))
                    if override and 'enabled' in override and not override['enabled']:
                        continue

                    resolved = apply_override(item, override, default_payment_method)
                    if not resolved['valid']:
                        skipped_invalid += 1
                        errors.append({'row_number': item['row_number'], 'issues': resolved['issues']})
                        continue

                    category = resolved['category'] or default_categories[resolved['type']]
                    if (resolved['type'], category) not in active_categories:
                        skipped_invalid += 1
                        errors.append({'row_number': item['row_number'],
                                       'issues': [f"Categoria inválida: {category}"]})
                        continue
                    resolved['category'] = category

                    import_hash = compute_import_hash(resolved, source, account)
                    if import_hash in seen_in_batch or import_hash in existing_hashes:
                        skipped_duplicates += 1
                        continue
                    seen_in_batch.add(import_hash)

                    self._insert_transaction(cursor, {
                        'date': resolved['date'],
                        'type': resolved['type'],
                        'category': category,
                        'description': resolved['description'],
                        'amount': resolved['amount'],
                        'created_at': now,
                        'updated_at': now,
                        'payment_method': resolved['payment_method'],
                        'import_batch_id': batch_id,
                        'import_hash': import_hash,
                        'import_source': source or None,
                        'import_account': account or None,
                    })
                    created += 1

                if created:
                    self._bump_data_version(cursor)
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('STATEMENT_IMPORT', 'commit_statement_import', e)
                return False, f"Error importing statement: {e}", None
            finally:
                cursor.close()
                conn.close()

        result = {
            'batch_id': batch_id,
            'created': created,
            'skipped_invalid': skipped_invalid,
            'skipped_duplicates': skipped_duplicates,
            'errors': errors,
        }
        if not created:
            return False, "No valid rows to import (check categories, duplicates and the CSV format).", result

        self.log_info('STATEMENT_IMPORT', 'commit_statement_import',
                      f"Import batch {batch_id}: created={created}, invalid={skipped_invalid}, "
                      f"dup={skipped_duplicates}")
        return True, "Import completed.", result

    def list_import_batches(self):
        """One entry per import batch, newest first."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT import_batch_id AS batch_id, MIN(import_source) AS source, MIN(import_account) AS account,
                       COUNT(*) AS count, MIN(date) AS first_date, MAX(date) AS last_date,
                       MIN(created_at) AS imported_at
                FROM transactions
                WHERE import_batch_id IS NOT NULL AND import_batch_id != ''
                GROUP BY import_batch_id
                ORDER BY imported_at DESC, batch_id DESC
            """)
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def undo_statement_import(self, batch_id):
        """
        Delete every transaction created by one import batch.

        Returns:
            tuple: (success bool, message str, deleted_count int)
        """
        if not batch_id:
            return False, "Batch ID is required.", 0

        with self._lock:
            conn, cursor = self._get_db_connection()
            try:
                cursor.execute("DELETE FROM transactions WHERE import_batch_id = ?", (batch_id,))
                deleted = cursor.rowcount
                if not deleted:
                    conn.rollback()
                    return False, "Import batch not found.", 0
                self._bump_data_version(cursor)
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.log_error('STATEMENT_IMPORT', 'undo_statement_import', e)
                return False, f"An error occurred: {e}", 0
            finally:
                cursor.close()
                conn.close()

        self.log_info('STATEMENT_IMPORT', 'undo_statement_import', f"Batch {batch_id} undone ({deleted} rows)")
        return True, f"{deleted} imported transactions removed.", deleted
