import datetime
from decimal import Decimal

from finance_tracker.reports import get_commitment_status, validate_date_range, whole_percent
from finance_tracker.utils import add_months, today


def _seed_period(add_tx):
    add_tx("2025-01-05", "credit", "Salário", "5000.00", "Salário")
    add_tx("2025-01-10", "debit", "Alimentação", "300.00", "Mercado")
    add_tx("2025-01-15", "debit", "Alimentação", "200.00", "Feira")
    add_tx("2025-01-20", "debit", "Transporte", "100.00", "Uber")
    add_tx("2025-02-03", "debit", "Lazer", "80.00", "Cinema")


def test_validate_date_range():
    assert validate_date_range("2025-01-01", "2025-01-31") == (True, "OK")
    assert not validate_date_range(None, "2025-01-31")[0]
    assert not validate_date_range("2025-02-01", "2025-01-31")[0]
    assert not validate_date_range("2000-01-01", "2025-01-31")[0]

    tomorrow = (today() + datetime.timedelta(days=1)).isoformat()
    ok, message = validate_date_range("2025-01-01", tomorrow)
    assert not ok
    assert "future" in message
    assert validate_date_range("2025-01-01", tomorrow, allow_future=True)[0]


def test_commitment_status_thresholds():
    assert get_commitment_status(30) == "Saudável"
    assert get_commitment_status(31) == "Atenção"
    assert get_commitment_status(50) == "Atenção"
    assert get_commitment_status(70) == "Alerta"
    assert get_commitment_status(71) == "Crítico"


def test_report_by_period(engine, add_tx):
    _seed_period(add_tx)
    report, message = engine.generate_report_by_period("2025-01-01", "2025-01-31")
    assert report is not None, message
    assert report['summary'] == {
        'total_credits': Decimal("5000.00"),
        'total_debits': Decimal("600.00"),
        'balance': Decimal("4400.00"),
        'transaction_count': 4,
    }
    assert [c['category'] for c in report['by_category']] == ["Salário", "Alimentação", "Transporte"]
    assert report['by_category'][1]['count'] == 2
    assert report['transactions'][0]['date'] == "2025-01-20"


def test_report_by_period_invalid_range(engine):
    report, message = engine.generate_report_by_period("2025-01-31", "2025-01-01")
    assert report is None
    assert "before or equal" in message


def test_monthly_report(engine, add_tx):
    _seed_period(add_tx)
    report, _ = engine.generate_monthly_report(2025, 2)
    assert report['month_name'] == "Fevereiro"
    assert report['summary']['total_debits'] == Decimal("80.00")
    assert engine.generate_monthly_report(2025, 13)[0] is None


def test_annual_report(engine, add_tx):
    _seed_period(add_tx)
    report, _ = engine.generate_annual_report("2025")
    assert len(report['by_month']) == 12
    january = report['by_month'][0]
    assert january['month_name'] == "Janeiro"
    assert january['balance'] == Decimal("4400.00")
    assert january['transaction_count'] == 4
    assert report['by_month'][5]['transaction_count'] == 0
    assert engine.generate_annual_report(1999)[0] is None


def test_category_report(engine, add_tx):
    _seed_period(add_tx)
    report, _ = engine.generate_category_report("Alimentação")
    stats = report['statistics']
    assert stats['total'] == Decimal("500.00")
    assert stats['average'] == Decimal("250.00")
    assert stats['min'] == Decimal("200.00")
    assert stats['max'] == Decimal("300.00")
    assert report['period'] == {'start_date': 'início', 'end_date': 'hoje'}
    assert engine.generate_category_report("")[0] is None


def test_top_categories_with_percentages(engine, add_tx):
    _seed_period(add_tx)
    top, _ = engine.get_top_categories('debit', limit=2)
    assert [c['category'] for c in top] == ["Alimentação", "Transporte"]
    assert top[0]['percentage'] == round(500 / 680 * 100, 1)


def test_balance_evolution_is_running_total(engine, add_tx):
    _seed_period(add_tx)
    evolution, _ = engine.get_balance_evolution("2025-01-01", "2025-01-31")
    assert [e['balance'] for e in evolution['evolution']] == [
        Decimal("5000.00"), Decimal("4700.00"), Decimal("4500.00"), Decimal("4400.00"),
    ]
    assert evolution['final_balance'] == Decimal("4400.00")


def test_compare_periods(engine, add_tx):
    _seed_period(add_tx)
    result, _ = engine.compare_periods("2025-01-01", "2025-01-31", "2025-02-01", "2025-02-28")
    comparison = result['comparison']
    assert comparison['debits_diff'] == Decimal("-520.00")
    assert comparison['debits_percent'] == round(-520 / 600 * 100, 2)
    assert comparison['credits_diff'] == Decimal("-5000.00")
    assert comparison['balance_diff'] == Decimal("-4480.00")


def test_compare_periods_zero_base_gives_zero_percent(engine, add_tx):
    add_tx("2025-02-03", "debit", "Lazer", "80.00")
    result, _ = engine.compare_periods("2025-01-01", "2025-01-31", "2025-02-01", "2025-02-28")
    assert result['comparison']['debits_percent'] == 0


def test_installment_report_groups_and_paid_split(engine):
    start = today() - datetime.timedelta(days=40)
    ok, _, payload = engine.create_installment_transaction({
        'date': start.isoformat(), 'type': 'debit', 'category': 'Educação',
        'description': 'Curso', 'amount': '300.00', 'installments': 3,
    })
    assert ok
    first_day = start.isoformat()
    last_day = add_months(start, 3).isoformat()
    report, _ = engine.generate_installment_report(first_day, last_day)

    assert report['summary']['total_groups'] == 1
    assert report['summary']['total_amount'] == Decimal("300.00")
    assert report['summary']['paid_amount'] + report['summary']['remaining_amount'] == Decimal("300.00")
    assert report['summary']['paid_amount'] >= Decimal("100.00")
    assert report['summary']['average_installments'] == 3
    group = report['groups'][0]
    assert group['description'] == "Curso"
    assert group['parent_id'] == payload['parent_id']
    assert report['by_payment_method'][0]['payment_method'] == "Crédito parcelado"
    assert report['by_payment_method'][0]['groups'] == 1
    assert report['by_category'][0]['category'] == "Educação"


def test_installment_report_by_payment_method(engine):
    base = add_months(today(), 1).replace(day=1).isoformat()
    engine.create_installment_transaction({
        'date': base, 'type': 'debit', 'category': 'Educação', 'description': 'Curso',
        'amount': 200, 'installments': 2, 'payment_method': 'Boleto',
    })
    engine.create_installment_transaction({
        'date': base, 'type': 'debit', 'category': 'Moradia', 'description': 'Sofá',
        'amount': 600, 'installments': 3,
    })
    report, _ = engine.generate_installment_report_by_payment_method(
        'Boleto', base, add_months(today(), 6).isoformat())
    assert report['summary']['total_groups'] == 1
    assert report['summary']['total_amount'] == Decimal("200.00")
    assert engine.generate_installment_report_by_payment_method('')[0] is None


def test_projection_and_commitment(engine):
    first = add_months(today(), 1).replace(day=15)
    engine.create_installment_transaction({
        'date': first.isoformat(), 'type': 'debit', 'category': 'Educação',
        'description': 'Notebook', 'amount': '1200.00', 'installments': 3,
    })

    projection, _ = engine.get_installment_projection(6)
    assert len(projection['projection']) == 6
    amounts = [m['total_amount'] for m in projection['projection']]
    assert amounts[0] == Decimal("0.00")
    assert amounts[1:4] == [Decimal("400.00")] * 3
    assert projection['total_projected'] == Decimal("1200.00")
    assert projection['average_monthly'] == Decimal("200.00")
    assert engine.get_installment_projection(100)[0]['months'] == 24

    analysis, _ = engine.analyze_installment_commitment(1000)
    assert analysis['peak_commitment'] == 40
    assert analysis['average_commitment'] == 10
    assert analysis['commitment_status'] == "Saudável"
    assert analysis['highest_month']['amount'] == Decimal("400.00")
    assert engine.analyze_installment_commitment(0)[0] is None


def test_whole_percent_rounds_halves_up():
    assert whole_percent(Decimal("305.00"), Decimal("1000")) == 31
    assert whole_percent(Decimal("325.00"), Decimal("1000")) == 33
    assert whole_percent(Decimal("304.99"), Decimal("1000")) == 30


def test_commitment_at_half_percent_moves_status(engine):
    first = add_months(today(), 1).replace(day=10)
    engine.create_installment_transaction({
        'date': first.isoformat(), 'type': 'debit', 'category': 'Moradia',
        'description': 'Geladeira', 'amount': '610.00', 'installments': 2,
    })

    analysis, _ = engine.analyze_installment_commitment(1000)
    by_month = [(m['installment_amount'], m['commitment'], m['status']) for m in analysis['commitment_by_month']]
    assert by_month[1] == (Decimal("305.00"), 31, "Atenção")
    assert by_month[2] == (Decimal("305.00"), 31, "Atenção")
    assert analysis['peak_commitment'] == 31
