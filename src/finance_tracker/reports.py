"""
Finance Tracker - Reports

Period, monthly, annual and category reports plus the installment
(parcelamento) reports: group breakdown, future projection and income
commitment analysis.

Every report returns (data, message); data is None when the request is invalid.

License: MIT
"""

import re
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal

from finance_tracker.utils import (
    MONTH_NAMES, add_months, is_valid_date, is_valid_number, month_bounds, month_key, percentage, to_date, today,
)

MAX_REPORT_DAYS = 3650
INSTALLMENT_SUFFIX_RE = re.compile(r'\s*\(\d+/\d+\)$')
ZERO = Decimal('0.00')


def whole_percent(part, whole):
    """Share of whole as an integer percentage, halves rounded up."""
    return int((part / whole * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def get_commitment_status(percent):
    """Classify the share of income already committed to installments."""
    if percent <= 30:
        return 'Saudável'
    if percent <= 50:
        return 'Atenção'
    if percent <= 70:
        return 'Alerta'
    return 'Crítico'


def validate_date_range(start_date, end_date, allow_future=False):
    """
    Returns:
        tuple: (is_valid bool, message str)
    """
    if not start_date or not isinstance(start_date, str):
        return False, "Start date is required."
    if not end_date or not isinstance(end_date, str):
        return False, "End date is required."
    if not is_valid_date(start_date):
        return False, "Start date must be a valid YYYY-MM-DD date."
    if not is_valid_date(end_date):
        return False, "End date must be a valid YYYY-MM-DD date."

    start, end = to_date(start_date), to_date(end_date)
    if start > end:
        return False, "Start date must be before or equal to the end date."
    if not allow_future:
        if start > today():
            return False, "Start date cannot be in the future."
        if end > today():
            return False, "End date cannot be in the future."
    if (end - start).days > MAX_REPORT_DAYS:
        return False, f"Maximum allowed period is {MAX_REPORT_DAYS} days (10 years)."
    return True, "OK"


def summarize(transactions):
    credits = sum((t['amount'] for t in transactions if t['type'] == 'credit'), ZERO)
    debits = sum((t['amount'] for t in transactions if t['type'] == 'debit'), ZERO)
    return {
        'total_credits': credits,
        'total_debits': debits,
        'balance': credits - debits,
        'transaction_count': len(transactions),
    }


def group_by_category(transactions):
    groups = OrderedDict()
    for t in transactions:
        entry = groups.setdefault(t['category'], {'category': t['category'], 'type': t['type'], 'total': ZERO, 'count': 0})
        entry['total'] += t['amount']
        entry['count'] += 1
    return sorted(groups.values(), key=lambda c: c['total'], reverse=True)


class ReportMixin:

    def generate_report_by_period(self, start_date, end_date, allow_future=False):
        valid, message = validate_date_range(start_date, end_date, allow_future)
        if not valid:
            return None, message

        transactions = self.query_transactions({'start_date': start_date, 'end_date': end_date})
        return {
            'period': {'start_date': start_date, 'end_date': end_date},
            'summary': summarize(transactions),
            'by_category': group_by_category(transactions),
            'transactions': transactions,
        }, "Report generated successfully."

    def generate_monthly_report(self, year, month):
        """Report for a whole calendar month (the current month is allowed)."""
        try:
            year, month = int(year), int(month)
        except (TypeError, ValueError):
            return None, "Invalid year or month."
        if not 1 <= month <= 12:
            return None, "Invalid year or month."

        start_date, end_date = month_bounds(year, month)
        report, message = self.generate_report_by_period(start_date, end_date, allow_future=True)
        if report is not None:
            report['year'] = year
            report['month'] = month
            report['month_name'] = MONTH_NAMES[month - 1]
        return report, message

    def generate_annual_report(self, year):
        try:
            year = int(year)
        except (TypeError, ValueError):
            return None, "Invalid year."
        if year < 2000 or year > 2100:
            return None, "Invalid year."

        report, message = self.generate_report_by_period(f"{year}-01-01", f"{year}-12-31", allow_future=True)
        if report is None:
            return None, message

        by_month = [{
            'month': month,
            'month_name': MONTH_NAMES[month - 1],
            'total_credits': ZERO,
            'total_debits': ZERO,
            'balance': ZERO,
            'transaction_count': 0,
        } for month in range(1, 13)]
        for t in report['transactions']:
            entry = by_month[int(t['date'][5:7]) - 1]
            if t['type'] == 'credit':
                entry['total_credits'] += t['amount']
            else:
                entry['total_debits'] += t['amount']
            entry['transaction_count'] += 1
        for entry in by_month:
            entry['balance'] = entry['total_credits'] - entry['total_debits']

        return {
            'year': year,
            'summary': report['summary'],
            'by_month': by_month,
            'by_category': report['by_category'],
        }, "Annual report generated successfully."

    def generate_category_report(self, category, start_date=None, end_date=None):
        if not category or not str(category).strip():
            return None, "Category is required."
        if start_date and end_date:
            valid, message = validate_date_range(start_date, end_date)
            if not valid:
                return None, message

        filters = {'category': category, 'start_date': start_date, 'end_date': end_date}
        transactions = self.query_transactions(filters)
        amounts = [t['amount'] for t in transactions]
        total = sum(amounts, ZERO)
        return {
            'category': category,
            'period': {'start_date': start_date or 'início', 'end_date': end_date or 'hoje'},
            'statistics': {
                'total': total,
                'average': (total / len(amounts)).quantize(Decimal('0.01')) if amounts else ZERO,
                'min': min(amounts) if amounts else ZERO,
                'max': max(amounts) if amounts else ZERO,
                'count': len(amounts),
            },
            'transactions': transactions,
        }, "Category report generated successfully."

    def get_top_categories(self, tx_type='debit', start_date=None, end_date=None, limit=5):
        try:
            limit = int(limit or 5)
        except (TypeError, ValueError):
            limit = 5
        limit = min(max(limit, 1), 20)

        transactions = self.query_transactions({'type': tx_type, 'start_date': start_date, 'end_date': end_date})
        categories = group_by_category(transactions)
        grand_total = sum((c['total'] for c in categories), ZERO)
        for entry in categories:
            entry['percentage'] = percentage(entry['total'], grand_total)
        return categories[:limit], "Top categories loaded."

    def get_balance_evolution(self, start_date=None, end_date=None):
        transactions = self.query_transactions({'start_date': start_date, 'end_date': end_date})
        transactions.sort(key=lambda t: (t['date'], t['id']))

        balance = ZERO
        evolution = []
        for t in transactions:
            balance += t['amount'] if t['type'] == 'credit' else -t['amount']
            evolution.append({'date': t['date'], 'amount': t['amount'], 'type': t['type'], 'balance': balance})
        return {
            'period': {'start_date': start_date, 'end_date': end_date},
            'final_balance': balance,
            'evolution': evolution,
        }, "Balance evolution calculated."

    def compare_periods(self, period1_start, period1_end, period2_start, period2_end):
        period1, message1 = self.generate_report_by_period(period1_start, period1_end)
        period2, message2 = self.generate_report_by_period(period2_start, period2_end)
        if period1 is None or period2 is None:
            return None, message1 if period1 is None else message2

        s1, s2 = period1['summary'], period2['summary']
        credits_diff = s2['total_credits'] - s1['total_credits']
        debits_diff = s2['total_debits'] - s1['total_debits']
        return {
            'period1': {'dates': {'start': period1_start, 'end': period1_end}, 'summary': s1},
            'period2': {'dates': {'start': period2_start, 'end': period2_end}, 'summary': s2},
            'comparison': {
                'credits_diff': credits_diff,
                'credits_percent': percentage(credits_diff, s1['total_credits'], 2) if s1['total_credits'] > 0 else 0,
                'debits_diff': debits_diff,
                'debits_percent': percentage(debits_diff, s1['total_debits'], 2) if s1['total_debits'] > 0 else 0,
                'balance_diff': s2['balance'] - s1['balance'],
            },
        }, "Comparison completed."

    # =============================================================================
    # INSTALLMENT REPORTS
    # =============================================================================

    def generate_installment_report(self, start_date=None, end_date=None):
        """
        Break down installment groups in a period (default: current year).

        Installments dated today or earlier count as paid, later ones as remaining.
        """
        if not start_date or not end_date:
            year = today().year
            start_date, end_date = f"{year}-01-01", f"{year}-12-31"
        else:
            valid, message = validate_date_range(start_date, end_date, allow_future=True)
            if not valid:
                return None, message

        transactions = self.query_transactions({'start_date': start_date, 'end_date': end_date})
        installments = [t for t in transactions if t['parent_transaction_id']]
        today_iso = today().strftime('%Y-%m-%d')

        groups = OrderedDict()
        for t in installments:
            group = groups.setdefault(t['parent_transaction_id'], {
                'parent_id': t['parent_transaction_id'],
                'description': INSTALLMENT_SUFFIX_RE.sub('', t['description']),
                'category': t['category'],
                'payment_method': t['payment_method'],
                'total_installments': t['installments'],
                'total_amount': ZERO,
                'paid_amount': ZERO,
                'remaining_amount': ZERO,
                'installments': [],
            })
            group['total_amount'] += t['amount']
            if t['date'] <= today_iso:
                group['paid_amount'] += t['amount']
            else:
                group['remaining_amount'] += t['amount']
            group['installments'].append({
                'id': t['id'], 'date': t['date'], 'amount': t['amount'],
                'installment_number': t['installment_number'],
            })
        for group in groups.values():
            group['installments'].sort(key=lambda i: i['date'])

        total_amount = sum((t['amount'] for t in installments), ZERO)
        group_list = list(groups.values())
        summary = {
            'total_groups': len(group_list),
            'total_installments': len(installments),
            'total_amount': total_amount,
            'paid_amount': sum((g['paid_amount'] for g in group_list), ZERO),
            'remaining_amount': sum((g['remaining_amount'] for g in group_list), ZERO),
            'average_installments': round(sum(t['installments'] for t in installments) / len(installments), 1)
            if installments else 0,
            'average_amount': (total_amount / len(group_list)).quantize(Decimal('0.01')) if group_list else ZERO,
        }

        return {
            'period': {'start_date': start_date, 'end_date': end_date},
            'summary': summary,
            'by_payment_method': self._group_installments(installments, 'payment_method'),
            'by_category': self._group_installments(installments, 'category'),
            'groups': group_list,
        }, "Installment report generated successfully." if installments else "No installment transactions in the period."

    @staticmethod
    def _group_installments(installments, field):
        grouped = OrderedDict()
        for t in installments:
            key = t[field] or 'Outros'
            entry = grouped.setdefault(key, {field: key, 'amount': ZERO, 'count': 0, 'parents': set()})
            entry['amount'] += t['amount']
            entry['count'] += 1
            entry['parents'].add(t['parent_transaction_id'])
        result = []
        for entry in grouped.values():
            entry['groups'] = len(entry.pop('parents'))
            result.append(entry)
        return sorted(result, key=lambda e: e['amount'], reverse=True)

    def get_installment_projection(self, months=6):
        """Debit installments due from today through the next `months` months, per month."""
        try:
            months = int(months or 6)
        except (TypeError, ValueError):
            months = 6
        if months < 1:
            months = 6
        months = min(months, 24)

        start = today()
        end = add_months(start, months)
        transactions = self.query_transactions({
            'start_date': start.strftime('%Y-%m-%d'),
            'end_date': end.strftime('%Y-%m-%d'),
            'type': 'debit',
        })

        by_month = OrderedDict()
        first_of_month = start.replace(day=1)
        for offset in range(months):
            month_date = add_months(first_of_month, offset)
            by_month[month_key(month_date)] = {
                'month': month_date.month,
                'year': month_date.year,
                'month_name': MONTH_NAMES[month_date.month - 1],
                'total_amount': ZERO,
                'installment_count': 0,
                'by_payment_method': {},
                'by_category': {},
            }

        for t in transactions:
            if not t['parent_transaction_id']:
                continue
            bucket = by_month.get(t['date'][:7])
            if bucket is None:
                continue
            bucket['total_amount'] += t['amount']
            bucket['installment_count'] += 1
            method = t['payment_method'] or 'Outros'
            bucket['by_payment_method'][method] = bucket['by_payment_method'].get(method, ZERO) + t['amount']
            bucket['by_category'][t['category']] = bucket['by_category'].get(t['category'], ZERO) + t['amount']

        projection = []
        for bucket in by_month.values():
            bucket['by_payment_method'] = [{'payment_method': k, 'amount': v} for k, v in bucket['by_payment_method'].items()]
            bucket['by_category'] = [{'category': k, 'amount': v} for k, v in bucket['by_category'].items()]
            projection.append(bucket)

        total = sum((m['total_amount'] for m in projection), ZERO)
        return {
            'months': months,
            'total_projected': total,
            'average_monthly': (total / months).quantize(Decimal('0.01')),
            'projection': projection,
        }, "Projection generated successfully."

    def analyze_installment_commitment(self, monthly_income):
        """How much of a monthly income the next 12 months of installments take."""
        if not is_valid_number(monthly_income) or Decimal(str(monthly_income)) <= 0:
            return None, "Monthly income must be greater than zero."
        income = Decimal(str(monthly_income))

        projection, _ = self.get_installment_projection(12)
        months = projection['projection']

        by_month = []
        for month in months:
            commitment = whole_percent(month['total_amount'], income)
            by_month.append({
                'month': month['month'],
                'year': month['year'],
                'month_name': month['month_name'],
                'installment_amount': month['total_amount'],
                'commitment': commitment,
                'status': get_commitment_status(commitment),
            })

        highest = max(months, key=lambda m: m['total_amount'])
        lowest = min(months, key=lambda m: m['total_amount'])
        average_commitment = whole_percent(projection['average_monthly'], income)
        return {
            'monthly_income': income,
            'average_monthly_installments': projection['average_monthly'],
            'average_commitment': average_commitment,
            'peak_commitment': max(m['commitment'] for m in by_month),
            'commitment_status': get_commitment_status(average_commitment),
            'highest_month': {'month': highest['month'], 'year': highest['year'],
                              'month_name': highest['month_name'], 'amount': highest['total_amount']},
            'lowest_month': {'month': lowest['month'], 'year': lowest['year'],
                             'month_name': lowest['month_name'], 'amount': lowest['total_amount']},
            'commitment_by_month': by_month,
            'total_committed': projection['total_projected'],
        }, "Commitment analysis generated successfully."

    def generate_installment_report_by_payment_method(self, payment_method, start_date=None, end_date=None):
        if not payment_method:
            return None, "Payment method is required."
        report, message = self.generate_installment_report(start_date, end_date)
        if report is None:
            return None, message

        groups = [g for g in report['groups'] if g['payment_method'] == payment_method]
        total = sum((g['total_amount'] for g in groups), ZERO)
        return {
            'payment_method': payment_method,
            'period': report['period'],
            'summary': {
                'total_groups': len(groups),
                'total_installments': sum(len(g['installments']) for g in groups),
                'total_amount': total,
                'average_amount': (total / len(groups)).quantize(Decimal('0.01')) if groups else ZERO,
            },
            'groups': groups,
        }, "Payment method report generated successfully."
