"""
Finance Tracker - Export & Backup

CSV / JSON / Excel exports of filtered transactions, plus SQLite backups
taken with the online backup API (safe while the app is running).

License: MIT
"""

import csv
import datetime
import io
import json
import sqlite3
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from finance_tracker.utils import format_date_br, today_str

EXPORT_HEADERS = ['Data', 'Descrição', 'Categoria', 'Tipo', 'Valor', 'Forma de Pagamento', 'Parcela', 'Observações']
BACKUP_PREFIX = 'backup_'
BACKUP_KEEP = 10
BACKUP_INTERVAL_DAYS = {'daily': 1, 'weekly': 7, 'monthly': 30}

BOLD = Font(bold=True)
HEADER_FONT = Font(bold=True, color='FFFFFF')
HEADER_FILL = PatternFill('solid', fgColor='6366F1')


def _type_label(tx_type):
    return 'Entrada' if tx_type == 'credit' else 'Saída'


def _installment_label(tx):
    return f"{tx['installment_number']}/{tx['installments']}" if tx['is_installment'] else ''


class ExportMixin:

    # =============================================================================
    # EXPORTS
    # =============================================================================

    def export_to_csv(self, filters=None):
        """
        Returns:
            tuple: (success bool, message str, payload dict) with csv, filename, count
        """
        transactions = self.query_transactions(filters or {})

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator='\n')
        writer.writerow(EXPORT_HEADERS)
        for t in transactions:
            writer.writerow([
                format_date_br(t['date']),
                t['description'],
                t['category'],
                _type_label(t['type']),
                f"{t['amount']:.2f}".replace('.', ','),
                t['payment_method'],
                _installment_label(t),
                '',
            ])

        self.log_info('EXPORT', 'export_to_csv', f"{len(transactions)} transactions exported")
        return True, "CSV generated successfully.", {
            'csv': buffer.getvalue(),
            'filename': f"transacoes_{today_str()}.csv",
            'count': len(transactions),
        }

    def export_to_json(self, filters=None):
        transactions = self.query_transactions(filters or {})
        document = {
            'export_date': self._now(),
            'filters': filters or {},
            'count': len(transactions),
            'transactions': transactions,
        }
        return True, "JSON generated successfully.", {
            'json': json.dumps(document, ensure_ascii=False, indent=2, default=str),
            'filename': f"transacoes_{today_str()}.json",
            'count': len(transactions),
        }

    def export_to_excel(self, filters=None):
        """
        Build an .xlsx workbook with a styled header and a totals row.

        Returns:
            tuple: (success bool, message str, payload dict) with content (bytes), filename, count
        """
        transactions = self.query_transactions(filters or {})

        wb = Workbook()
        ws = wb.active
        ws.title = 'Transações'
        ws.append(EXPORT_HEADERS)
        for c in range(1, len(EXPORT_HEADERS) + 1):
            cell = ws.cell(row=1, column=c)
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL

        for t in transactions:
            ws.append([
                datetime.date.fromisoformat(t['date']),
                t['description'],
                t['category'],
                _type_label(t['type']),
                float(t['amount']),
                t['payment_method'],
                _installment_label(t),
                '',
            ])

        credits = sum((t['amount'] for t in transactions if t['type'] == 'credit'), Decimal('0.00'))
        debits = sum((t['amount'] for t in transactions if t['type'] == 'debit'), Decimal('0.00'))
        ws.append([])
        for label, value in (('Total Entradas', credits), ('Total Saídas', debits), ('Saldo', credits - debits)):
            ws.append(['', label, '', '', float(value)])
            r = ws.max_row
            ws.cell(row=r, column=2).font = BOLD
            ws.cell(row=r, column=5).font = BOLD

        for r in range(2, ws.max_row + 1):
            ws.cell(row=r, column=1).number_format = 'DD/MM/YYYY'
            ws.cell(row=r, column=5).number_format = '"R$" #,##0.00'
        for column, width in zip('ABCDEFGH', (12, 45, 22, 10, 14, 20, 9, 20)):
            ws.column_dimensions[column].width = width

        buffer = io.BytesIO()
        wb.save(buffer)
        self.log_info('EXPORT', 'export_to_excel', f"{len(transactions)} transactions exported")
        return True, "Excel generated successfully.", {
            'content': buffer.getvalue(),
            'filename': f"transacoes_{today_str()}.xlsx",
            'count': len(transactions),
        }

    # =============================================================================
    # BACKUPS
    # =============================================================================

    def create_backup(self):
        """
        Copy the database to backup_dir/backup_YYYY-MM-DD_HH-MM-SS.db.

        Returns:
            tuple: (success bool, message str, backup dict or None)
        """
        if not self.db_path.exists():
            return False, "No database to back up.", None

        with self._lock:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            name = f"{BACKUP_PREFIX}{datetime.datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.db"
            target = self.backup_dir / name
            source = sqlite3.connect(str(self.db_path))
            destination = sqlite3.connect(str(target))
            try:
                source.backup(destination)
            except sqlite3.Error as e:
                self.log_error('EXPORT', 'create_backup', e)
                return False, f"Error creating backup: {e}", None
            finally:
                destination.close()
                source.close()

        self.set_setting('last_backup_date', self._now())
        self.log_info('EXPORT', 'create_backup', f"Backup created: {name}")
        return True, "Backup created successfully.", self._describe_backup(target)

    @staticmethod
    def _describe_backup(path):
        stat = path.stat()
        return {
            'name': path.name,
            'path': str(path),
            'size': stat.st_size,
            'created_at': datetime.datetime.fromtimestamp(stat.st_mtime).strftime('%Y-%m-%d %H:%M:%S'),
        }

    def list_backups(self):
        """Backups in backup_dir, newest first (names sort chronologically)."""
        if not self.backup_dir.exists():
            return []
        files = sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.db"), key=lambda p: p.name, reverse=True)
        return [self._describe_backup(p) for p in files]

    def clean_old_backups(self, keep=BACKUP_KEEP):
        """Delete all but the `keep` most recent backups. Returns the number removed."""
        removed = 0
        for backup in self.list_backups()[keep:]:
            (self.backup_dir / backup['name']).unlink()
            removed += 1
        return removed

    def run_auto_backup(self, force=False):
        """
        Back up when automatic backups are enabled and the configured interval
        has passed since the last one. Keeps the 10 most recent files.

        Returns:
            tuple: (ran bool, message str)
        """
        if not force:
            if not self.get_setting('auto_backup_enabled', False):
                return False, "Automatic backups are disabled."
            interval = BACKUP_INTERVAL_DAYS.get(self.get_setting('auto_backup_frequency', 'weekly'), 7)
            last = str(self.get_setting('last_backup_date', '') or '')[:10]
            if last:
                elapsed = (datetime.date.today() - datetime.date.fromisoformat(last)).days
                if elapsed < interval:
                    return False, "No backup due yet."

        ok, message, _ = self.create_backup()
        if not ok:
            return False, message
        removed = self.clean_old_backups()
        if removed:
            self.log_info('EXPORT', 'run_auto_backup', f"{removed} old backups removed")
        return True, message
