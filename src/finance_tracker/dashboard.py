"""
Finance Tracker - Dashboard

KPIs, recent activity, the six-month evolution chart, automatic insights and
installment widgets. get_dashboard_bundle() computes everything from a single
transaction query and caches the result per data version.

License: MIT
"""

import calendar
import time
from collections import OrderedDict
from decimal import Decimal

from finance_tracker.reports import INSTALLMENT_SUFFIX_RE, ZERO, whole_percent
from finance_tracker.utils import MONTH_SHORT_NAMES, add_months, format_currency, month_bounds, today

BUNDLE_CACHE_SECONDS = 120
IMPORTANCE_ORDER = {'high': 1, 'medium': 2, 'low': 3}


def _totals(transactions):
    credits = sum((t['amount'] for t in transactions if t['type'] == 'credit'), ZERO)
    debits = sum((t['amount'] for t in transactions if t['type'] == 'debit'), ZERO)
    return credits, debits


def _trend(change):
    if change > 0:
        return 'up'
    if change < 0:
        return 'down'
    return 'stable'


def _change_percent(current, previous, absolute=False):
    base = abs(previous) if absolute else previous
    if (absolute and previous == 0) or (not absolute and previous <= 0):
        return 0.0
    return round(float((current - previous) / base * 100), 1)


class DashboardMixin:

    # =============================================================================
    # KPIs
    # =============================================================================

    def get_main_kpis(self, transactions=None):
        """
        Totals, current vs previous month, trends and derived metrics.

        Args:
            transactions (list): Preloaded transactions (all of them); queried when None
        """
        if transactions is None:
            transactions = self.query_transactions()

        now = today()
        month_start = now.replace(day=1).strftime('%Y-%m-%d')
        month_end = now.strftime('%Y-%m-%d')
        previous = add_months(now.replace(day=1), -1)
        prev_start, prev_end = month_bounds(previous.year, previous.month)

        current = [t for t in transactions if month_start <= t['date'] <= month_end]
        prior = [t for t in transactions if prev_start <= t['date'] <= prev_end]

        total_credits, total_debits = _totals(transactions)
        month_credits, month_debits = _totals(current)
        prev_credits, prev_debits = _totals(prior)

        installment_debits = [t for t in transactions if t['type'] == 'debit' and t['is_installment']]

        kpis = {
            'total': {
                'credits': total_credits,
                'debits': total_debits,
                'balance': total_credits - total_debits,
                'transaction_count': len(transactions),
                'installment_debits': sum((t['amount'] for t in installment_debits), ZERO),
            },
            'current_month': {
                'credits': month_credits,
                'debits': month_debits,
                'balance': month_credits - month_debits,
                'transaction_count': len(current),
                'month': now.month,
                'year': now.year,
                'installment_debits': sum(
                    (t['amount'] for t in installment_debits if month_start <= t['date'] <= month_end), ZERO),
                'days_elapsed': now.day,
                'days_in_month': calendar.monthrange(now.year, now.month)[1],
            },
            'previous_month': {
                'credits': prev_credits,
                'debits': prev_debits,
                'balance': prev_credits - prev_debits,
                'transaction_count': len(prior),
                'month': previous.month,
                'year': previous.year,
            },
        }

        curr, prev = kpis['current_month'], kpis['previous_month']
        trends = {}
        for field in ('credits', 'debits', 'balance'):
            change = curr[field] - prev[field]
            trends[f'{field}_change'] = change
            trends[f'{field}_change_percent'] = _change_percent(curr[field], prev[field], absolute=field == 'balance')
            trends[f'{field}_trend'] = _trend(change)
        kpis['trends'] = trends

        kpis['professional'] = self._professional_metrics(curr, trends)
        return kpis

    @staticmethod
    def _professional_metrics(curr, trends):
        savings_rate = round(float(curr['balance'] / curr['credits'] * 100), 1) if curr['credits'] > 0 else 0.0
        avg_daily = (curr['debits'] / curr['days_elapsed']).quantize(Decimal('0.01')) if curr['days_elapsed'] else ZERO
        days_remaining = curr['days_in_month'] - curr['days_elapsed']
        projected_debits = curr['debits'] + avg_daily * days_remaining

        health = 50
        if curr['balance'] > 0:
            health += 20
        if savings_rate > 10:
            health += 15
        if savings_rate > 20:
            health += 15
        if trends['balance_trend'] == 'up':
            health += 10
        if trends['debits_trend'] == 'down':
            health += 10
        if curr['balance'] < 0:
            health -= 30
        if trends['balance_trend'] == 'down':
            health -= 10

        return {
            'savings_rate': savings_rate,
            'avg_daily_expense': avg_daily,
            'burn_rate': avg_daily,
            'projected_debits': projected_debits,
            'projected_balance': curr['credits'] - projected_debits,
            'financial_health': max(0, min(100, health)),
        }

    # =============================================================================
    # WIDGETS
    # =============================================================================

    def get_recent_transactions(self, limit=10, transactions=None):
        try:
            limit = int(limit or 10)
        except (TypeError, ValueError):
            limit = 10
        if limit < 1:
            limit = 10
        limit = min(limit, 50)
        if transactions is None:
            transactions = self.query_transactions()
        return transactions[:limit]

    def get_monthly_evolution_chart(self, months=6, transactions=None):
        """Credits/debits/balance for the last `months` months, oldest first."""
        try:
            months = min(max(int(months or 6), 1), 24)
        except (TypeError, ValueError):
            months = 6
        if transactions is None:
            transactions = self.query_transactions()
        first_of_month = today().replace(day=1)

        chart = []
        for offset in range(months - 1, -1, -1):
            month_date = add_months(first_of_month, -offset)
            start, end = month_bounds(month_date.year, month_date.month)
            credits, debits = _totals([t for t in transactions if start <= t['date'] <= end])
            chart.append({
                'month': f"{MONTH_SHORT_NAMES[month_date.month - 1]}/{month_date.year}",
                'year': month_date.year,
                'month_number': month_date.month,
                'credits': credits,
                'debits': debits,
                'balance': credits - debits,
            })
        return chart

    def get_upcoming_installments(self, months=3, transactions=None):
        """Debit installment groups with parcels due between today and `months` ahead."""
        try:
            months = int(months or 3)
        except (TypeError, ValueError):
            months = 3
        if months < 1:
            months = 3
        months = min(months, 12)

        start = today()
        start_str = start.strftime('%Y-%m-%d')
        end_str = add_months(start, months).strftime('%Y-%m-%d')
        if transactions is None:
            transactions = self.query_transactions({'start_date': start_str, 'end_date': end_str, 'type': 'debit'})

        groups = OrderedDict()
        for t in transactions:
            if t['type'] != 'debit' or not t['is_installment'] or not start_str <= t['date'] <= end_str:
                continue
            group = groups.setdefault(t['parent_transaction_id'], {
                'parent_id': t['parent_transaction_id'],
                'description': INSTALLMENT_SUFFIX_RE.sub('', t['description']),
                'category': t['category'],
                'payment_method': t['payment_method'],
                'installments': t['installments'],
                'total_amount': ZERO,
                'next_installments': [],
            })
            group['total_amount'] += t['amount']
            group['next_installments'].append({
                'id': t['id'], 'date': t['date'], 'amount': t['amount'],
                'installment_number': t['installment_number'],
            })

        result = list(groups.values())
        for group in result:
            group['next_installments'].sort(key=lambda i: i['date'])
        result.sort(key=lambda g: g['next_installments'][0]['date'])
        return result

    def get_payment_method_distribution(self, start_date=None, end_date=None):
        """Debits per payment method (default: current month to date)."""
        if not start_date or not end_date:
            now = today()
            start_date = now.replace(day=1).strftime('%Y-%m-%d')
            end_date = now.strftime('%Y-%m-%d')

        distribution = OrderedDict()
        for t in self.query_transactions({'start_date': start_date, 'end_date': end_date, 'type': 'debit'}):
            entry = distribution.setdefault(t['payment_method'], {
                'payment_method': t['payment_method'], 'amount': ZERO, 'count': 0, 'percentage': 0,
            })
            entry['amount'] += t['amount']
            entry['count'] += 1

        total = sum((e['amount'] for e in distribution.values()), ZERO)
        for entry in distribution.values():
            entry['percentage'] = whole_percent(entry['amount'], total) if total > 0 else 0
        return sorted(distribution.values(), key=lambda e: e['amount'], reverse=True)

    def get_installment_stats(self):
        installments = [t for t in self.query_transactions() if t['is_installment']]
        if not installments:
            return {
                'total_installment_groups': 0,
                'total_installments': 0,
                'total_installment_amount': ZERO,
                'average_installments': 0,
                'most_used_payment_method': 'Nenhum',
                'active_groups': 0,
                'remaining_amount': ZERO,
                'next_month_commitment': ZERO,
            }

        today_iso = today().strftime('%Y-%m-%d')
        next_month = add_months(today().replace(day=1), 1)
        next_start, next_end = month_bounds(next_month.year, next_month.month)
        future = [t for t in installments if t['date'] > today_iso]

        method_counts = {}
        for t in installments:
            method_counts[t['payment_method']] = method_counts.get(t['payment_method'], 0) + 1

        return {
            'total_installment_groups': len({t['parent_transaction_id'] for t in installments}),
            'total_installments': len(installments),
            'total_installment_amount': sum((t['amount'] for t in installments), ZERO),
            'average_installments': round(sum(t['installments'] for t in installments) / len(installments), 1),
            'most_used_payment_method': max(method_counts, key=method_counts.get),
            'active_groups': len({t['parent_transaction_id'] for t in future}),
            'remaining_amount': sum((t['amount'] for t in future), ZERO),
            'next_month_commitment': sum(
                (t['amount'] for t in installments
                 if t['type'] == 'debit' and next_start <= t['date'] <= next_end), ZERO),
        }

    # =============================================================================
    # INSIGHTS
    # =============================================================================

    def get_financial_insights(self, kpis=None, upcoming=None):
        """Rule-based tips about the current month, most important first."""
        if kpis is None:
            kpis = self.get_main_kpis()
        if upcoming is None:
            upcoming = self.get_upcoming_installments(1)

        curr = kpis['current_month']
        trends = kpis['trends']
        prof = kpis['professional']
        insights = []

        def add(kind, title, message, importance):
            insights.append({'type': kind, 'title': title, 'message': message, 'importance': importance})

        if curr['balance'] > 0:
            add('success', 'Saldo Positivo',
                f"Parabéns! Você economizou {format_currency(curr['balance'])} este mês.", 'high')
        elif curr['balance'] < 0:
            add('warning', 'Atenção ao Saldo',
                f"Suas despesas superaram as receitas em {format_currency(abs(curr['balance']))} este mês.", 'high')

        debits_percent = trends['debits_change_percent']
        if debits_percent > 20:
            add('alert', 'Gastos em Alta',
                f"Seus gastos aumentaram {abs(debits_percent):.1f}% comparado ao mês anterior.", 'high')
        elif debits_percent < -10:
            add('success', 'Redução de Gastos',
                f"Excelente! Você reduziu seus gastos em {abs(debits_percent):.1f}% este mês.", 'medium')

        savings_rate = prof['savings_rate']
        if savings_rate > 20:
            add('success', 'Excelente Poupança',
                f"Sua taxa de poupança está em {savings_rate:.1f}%, acima da recomendação de 20%.", 'medium')
        elif savings_rate > 0:
            add('info', 'Meta de Poupança',
                f"Sua taxa de poupança é {savings_rate:.1f}%. Tente alcançar 20% para melhor segurança financeira.",
                'low')
        else:
            add('warning', 'Sem Poupança',
                "Você não conseguiu poupar este mês. Revise seus gastos para criar uma reserva.", 'high')

        if curr['days_elapsed'] >= 5:
            if prof['projected_balance'] < 0 < curr['balance']:
                add('warning', 'Projeção de Déficit',
                    "Com base no ritmo atual de gastos, você pode terminar o mês com saldo negativo de "
                    f"{format_currency(abs(prof['projected_balance']))}.", 'high')
            elif prof['projected_balance'] > curr['balance'] * Decimal('0.8'):
                add('success', 'Projeção Positiva',
                    f"Mantendo este ritmo, você pode economizar {format_currency(prof['projected_balance'])} "
                    "até o fim do mês.", 'medium')

        burn_rate = prof['burn_rate']
        if burn_rate > 0:
            days_left = int(curr['balance'] // burn_rate) if curr['balance'] > 0 else 0
            if 0 < days_left < 10:
                add('alert', 'Velocidade de Gasto Alta',
                    f"Com seu gasto diário médio de {format_currency(burn_rate)}, seu saldo atual duraria "
                    f"apenas {days_left} dias.", 'high')
            else:
                add('info', 'Gasto Diário', f"Seu gasto médio diário é de {format_currency(burn_rate)}.", 'low')

        credits_percent = trends['credits_change_percent']
        if credits_percent > 15:
            add('success', 'Receitas em Alta',
                f"Suas receitas aumentaram {credits_percent:.1f}% em relação ao mês anterior.", 'medium')
        elif credits_percent < -15:
            add('warning', 'Queda nas Receitas',
                f"Suas receitas caíram {abs(credits_percent):.1f}% comparado ao mês anterior.", 'high')

        health = prof['financial_health']
        if health >= 80:
            add('success', 'Saúde Financeira Excelente',
                f"Sua saúde financeira está em {health}/100. Continue assim!", 'medium')
        elif health >= 60:
            add('info', 'Saúde Financeira Boa',
                f"Sua saúde financeira está em {health}/100. Há espaço para melhorias.", 'low')
        elif health < 40:
            add('alert', 'Atenção: Saúde Financeira Baixa',
                f"Sua saúde financeira está em {health}/100. É importante revisar seus gastos.", 'high')

        if upcoming:
            total_upcoming = sum((g['total_amount'] for g in upcoming), ZERO)
            add('info', 'Parcelas no Próximo Mês',
                f"Você tem {len(upcoming)} grupo(s) de parcelas totalizando {format_currency(total_upcoming)} "
                "vencendo no próximo mês.", 'medium')

        # sort is stable, so rules keep their order within one importance level
        insights.sort(key=lambda i: IMPORTANCE_ORDER[i['importance']])
        return insights

    # =============================================================================
    # BUNDLES
    # =============================================================================

    def _cached(self, name, version, builder, ttl=BUNDLE_CACHE_SECONDS):
        """One slot per bundle name; a different version replaces the slot."""
        entry = self._cache.get(name)
        if entry and entry[0] == version and time.monotonic() - entry[1] < ttl:
            return entry[2]
        value = builder()
        self._cache[name] = (version, time.monotonic(), value)
        return value

    def invalidate_cache(self):
        self._cache.clear()

    def get_dashboard_bundle(self, force=False):
        """
        Everything the dashboard page needs in one call. The cached bundle is
        tagged with the transactions data version and today's date, so any
        write or a new day produces a fresh bundle.
        """
        if force:
            self._cache.pop('dashboard_bundle', None)
        version = f"v{self.get_data_version('transactions')}_{today().isoformat()}"
        return self._cached('dashboard_bundle', version, self._build_dashboard_bundle)

    def _build_dashboard_bundle(self):
        transactions = self.query_transactions()
        now = today()
        month_start = now.replace(day=1).strftime('%Y-%m-%d')
        month_end = now.strftime('%Y-%m-%d')

        kpis = self.get_main_kpis(transactions)
        upcoming = self.get_upcoming_installments(1, transactions)
        return {
            'kpis': kpis,
            'recent_transactions': self.get_recent_transactions(10, transactions),
            'top_categories_month': self._top_categories(
                [t for t in transactions if month_start <= t['date'] <= month_end], 5),
            'top_categories_all': self._top_categories(transactions, 10),
            'evolution_chart': self.get_monthly_evolution_chart(6, transactions),
            'insights': self.get_financial_insights(kpis, upcoming),
            'payment_methods': self.get_payment_method_distribution(),
            'upcoming_installments': upcoming,
        }

    @staticmethod
    def _top_categories(transactions, limit):
        by_category = OrderedDict()
        for t in transactions:
            name = t['category'] or 'Sem categoria'
            entry = by_category.setdefault(name, {'category': name, 'type': t['type'], 'total': ZERO, 'count': 0})
            entry['total'] += t['amount']
            entry['count'] += 1
        return sorted(by_category.values(), key=lambda c: c['total'], reverse=True)[:limit]

    def get_initial_bundle(self):
        """Public config, settings, categories and the dashboard for the first page load."""
        return {
            'config': self.get_public_config(),
            'settings': self.get_settings(),
            'categories': self.list_categories(is_active=True),
            'dashboard': self.get_dashboard_bundle(),
        }
