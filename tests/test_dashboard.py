from decimal import Decimal

from finance_tracker.utils import add_months, today


def _month_start(offset=0):
    return add_months(today().replace(day=1), offset)


def _kpis(balance, credits, debits_percent=0.0, credits_percent=0.0, savings_rate=0.0,
          burn_rate=Decimal('0.00'), projected_balance=Decimal('0.00'), health=50, days_elapsed=3):
    return {
        'current_month': {'balance': Decimal(balance), 'credits': Decimal(credits), 'days_elapsed': days_elapsed},
        'trends': {'debits_change_percent': debits_percent, 'credits_change_percent': credits_percent},
        'professional': {
            'savings_rate': savings_rate,
            'burn_rate': burn_rate,
            'projected_balance': projected_balance,
            'financial_health': health,
        },
    }


def test_main_kpis_compare_current_and_previous_month(engine, add_tx):
    this_month = _month_start().isoformat()
    add_tx(this_month, 'credit', 'Salário', '1000.00')
    add_tx(this_month, 'debit', 'Alimentação', '400.00')
    add_tx(_month_start(-1).isoformat(), 'debit', 'Alimentação', '200.00')

    kpis = engine.get_main_kpis()
    assert kpis['total']['balance'] == Decimal('400.00')
    assert kpis['total']['transaction_count'] == 3
    assert kpis['current_month']['balance'] == Decimal('600.00')
    assert kpis['previous_month']['debits'] == Decimal('200.00')
    assert kpis['trends']['debits_change'] == Decimal('200.00')
    assert kpis['trends']['debits_change_percent'] == 100.0
    assert kpis['trends']['debits_trend'] == 'up'
    assert kpis['professional']['savings_rate'] == 60.0
    assert 0 <= kpis['professional']['financial_health'] <= 100


def test_kpis_on_empty_database(engine):
    kpis = engine.get_main_kpis()
    assert kpis['total']['balance'] == Decimal('0.00')
    assert kpis['trends']['balance_trend'] == 'stable'
    assert kpis['professional']['savings_rate'] == 0.0


def test_insights_for_a_bad_month_are_all_high_importance(engine):
    insights = engine.get_financial_insights(
        _kpis('-100.00', '500.00', debits_percent=25.0, health=30), upcoming=[])
    assert [i['title'] for i in insights] == [
        'Atenção ao Saldo',
        'Gastos em Alta',
        'Sem Poupança',
        'Atenção: Saúde Financeira Baixa',
    ]
    assert all(i['importance'] == 'high' for i in insights)


def test_insights_sorted_by_importance(engine):
    upcoming = [{'total_amount': Decimal('150.00')}]
    insights = engine.get_financial_insights(
        _kpis('900.00', '3000.00', credits_percent=20.0, savings_rate=30.0, health=85),
        upcoming=upcoming,
    )
    titles = [i['title'] for i in insights]
    assert titles[0] == 'Saldo Positivo'
    assert 'Excelente Poupança' in titles
    assert 'Receitas em Alta' in titles
    assert 'Parcelas no Próximo Mês' in titles
    order = [i['importance'] for i in insights]
    assert order == sorted(order, key={'high': 1, 'medium': 2, 'low': 3}.get)


def test_short_runway_insight(engine):
    insights = engine.get_financial_insights(
        _kpis('100.00', '1000.00', savings_rate=10.0, burn_rate=Decimal('20.00')), upcoming=[])
    runway = [i for i in insights if i['title'] == 'Velocidade de Gasto Alta']
    assert len(runway) == 1
    assert 'apenas 5 dias' in runway[0]['message']


def test_monthly_evolution_chart(engine, add_tx):
    add_tx(_month_start().isoformat(), 'credit', 'Salário', '100.00')
    chart = engine.get_monthly_evolution_chart(3)
    assert len(chart) == 3
    assert chart[-1]['month_number'] == today().month
    assert chart[-1]['balance'] == Decimal('100.00')
    assert chart[0]['credits'] == Decimal('0.00')
    assert len(engine.get_monthly_evolution_chart('abc')) == 6
    assert len(engine.get_monthly_evolution_chart(100)) == 24


def test_recent_transactions_limit(engine, add_tx):
    for day in range(1, 4):
        add_tx(f"2025-03-0{day}", 'debit', 'Lazer', '10.00')
    recent = engine.get_recent_transactions(2)
    assert [t['date'] for t in recent] == ['2025-03-03', '2025-03-02']
    assert len(engine.get_recent_transactions(0)) == 3


def test_upcoming_installments(engine):
    start = _month_start(1).isoformat()
    ok, _, payload = engine.create_installment_transaction({
        'date': start, 'type': 'debit', 'category': 'Moradia',
        'description': 'Geladeira', 'amount': '300.00', 'installments': 3,
    })
    assert ok
    upcoming = engine.get_upcoming_installments(3)
    assert len(upcoming) == 1
    group = upcoming[0]
    assert group['parent_id'] == payload['parent_id']
    assert group['description'] == 'Geladeira'
    assert group['total_amount'] == Decimal('300.00')
    assert [i['installment_number'] for i in group['next_installments']] == [1, 2, 3]


def test_payment_method_distribution(engine, add_tx):
    day = _month_start().isoformat()
    add_tx(day, 'debit', 'Alimentação', '75.00', payment_method='PIX')
    add_tx(day, 'debit', 'Alimentação', '25.00', payment_method='Dinheiro')
    add_tx(day, 'credit', 'Salário', '999.00', payment_method='PIX')
    distribution = engine.get_payment_method_distribution()
    assert [(d['payment_method'], d['percentage']) for d in distribution] == [('PIX', 75), ('Dinheiro', 25)]


def test_installment_stats(engine):
    assert engine.get_installment_stats()['most_used_payment_method'] == 'Nenhum'

    engine.create_installment_transaction({
        'date': _month_start(1).isoformat(), 'type': 'debit', 'category': 'Lazer',
        'description': 'Viagem', 'amount': '500.00', 'installments': 5,
    })
    stats = engine.get_installment_stats()
    assert stats['total_installment_groups'] == 1
    assert stats['total_installments'] == 5
    assert stats['active_groups'] == 1
    assert stats['remaining_amount'] == Decimal('500.00')
    assert stats['next_month_commitment'] == Decimal('100.00')
    assert stats['most_used_payment_method'] == 'Crédito parcelado'


def test_dashboard_bundle_is_cached_per_data_version(engine, add_tx):
    first = engine.get_dashboard_bundle()
    assert engine.get_dashboard_bundle() is first
    assert set(first) >= {'kpis', 'recent_transactions', 'evolution_chart', 'insights', 'upcoming_installments'}

    add_tx(_month_start().isoformat(), 'debit', 'Lazer', '10.00')
    second = engine.get_dashboard_bundle()
    assert second is not first
    assert second['kpis']['total']['transaction_count'] == 1
    assert engine.get_dashboard_bundle(force=True) is not second


def test_dashboard_bundle_cache_keeps_one_entry(engine, add_tx):
    for _ in range(5):
        add_tx(_month_start().isoformat(), 'debit', 'Lazer', '10.00')
        engine.get_dashboard_bundle()
    assert list(engine._cache) == ['dashboard_bundle']
    assert engine.get_dashboard_bundle()['kpis']['total']['transaction_count'] == 5


def test_initial_bundle(engine):
    bundle = engine.get_initial_bundle()
    assert bundle['config']['app_name']
    assert any(c['name'] == 'Salário' for c in bundle['categories'])
    assert 'kpis' in bundle['dashboard']
