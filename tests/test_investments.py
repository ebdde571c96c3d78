from decimal import Decimal


def _asset(engine, **overrides):
    data = {'symbol': 'petr4', 'name': 'Petrobras PN', 'broker': 'XP'}
    data.update(overrides)
    ok, message, investment = engine.upsert_investment(data)
    assert ok, message
    return investment


def _entry(engine, investment_id, tx_type, date, **fields):
    ok, message, tx = engine.add_investment_transaction(
        dict(investment_id=investment_id, type=tx_type, date=date, **fields))
    assert ok, message
    return tx


def test_create_and_update_investment(engine):
    investment = _asset(engine)
    assert investment['symbol'] == 'PETR4'
    assert investment['asset_type'] == 'Ação'
    assert investment['currency'] == 'BRL'
    assert investment['latest_price'] == Decimal('0')
    assert investment['last_price_at'] is None

    ok, message, updated = engine.upsert_investment({'id': investment['id'], 'latest_price': '38.15'})
    assert (ok, message) == (True, "Investment updated.")
    assert updated['symbol'] == 'PETR4'
    assert updated['name'] == 'Petrobras PN'
    assert updated['latest_price'] == Decimal('38.15')
    assert updated['last_price_at']


def test_upsert_validation(engine):
    assert engine.upsert_investment({})[1] == "Provide at least the ticker or the asset name."
    assert engine.upsert_investment({'symbol': 'X', 'latest_price': -1})[1] == "Price must be zero or greater."
    assert engine.upsert_investment({'id': 999, 'symbol': 'X'})[1] == "Investment not found."


def test_list_and_soft_delete(engine):
    _asset(engine, symbol='VALE3', name='Vale')
    itsa = _asset(engine, symbol='itsa4', name='Itaúsa')
    _asset(engine, symbol='', name='Tesouro Selic', asset_type='Renda Fixa')
    assert [i['symbol'] or i['name'] for i in engine.list_investments()] == ['ITSA4', 'Tesouro Selic', 'VALE3']

    assert engine.delete_investment(itsa['id']) == (True, "Investment removed.")
    assert len(engine.list_investments()) == 2
    assert len(engine.list_investments(include_inactive=True)) == 3
    assert engine.delete_investment(999) == (False, "Investment not found.")


def test_update_price(engine):
    investment = _asset(engine)
    ok, _, updated = engine.update_investment_price(investment['id'], 40, at='2025-05-01 18:00:00')
    assert ok
    assert updated['latest_price'] == Decimal('40')
    assert updated['last_price_at'] == '2025-05-01 18:00:00'
    assert engine.update_investment_price(investment['id'], 'abc')[1] == "Price must be zero or greater."
    assert engine.update_investment_price(999, 1)[1] == "Investment not found."


def test_investment_entries(engine):
    investment = _asset(engine)
    buy = _entry(engine, investment['id'], 'buy', '2025-01-10', quantity='0.5', price='33.333')
    assert buy['amount'] == Decimal('16.67')
    assert buy['quantity'] == Decimal('0.5')
    assert buy['price'] == Decimal('33.333')

    dividend = _entry(engine, investment['id'], 'dividend', '2025-02-10', amount='1.234')
    assert dividend['amount'] == Decimal('1.23')
    assert dividend['quantity'] is None

    listed = engine.list_investment_transactions(investment['id'])
    assert [t['type'] for t in listed] == ['dividend', 'buy']
    assert listed[0]['symbol'] == 'PETR4'
    assert len(engine.list_investment_transactions(date_from='2025-02-01')) == 1

    assert engine.delete_investment_transaction(buy['id']) == (True, "Entry deleted.")
    assert engine.delete_investment_transaction(buy['id']) == (False, "Entry not found.")


def test_investment_entry_validation(engine):
    investment = _asset(engine)
    add = engine.add_investment_transaction
    assert add({'investment_id': 999, 'type': 'buy'})[1] == "Investment not found."
    assert add({'investment_id': investment['id'], 'type': 'swap'})[1] == "Type must be buy, sell, dividend or fee."
    assert add({'investment_id': investment['id'], 'type': 'buy', 'date': '2025-13-01'})[1] == \
        "Date must be a valid YYYY-MM-DD date."
    assert add({'investment_id': investment['id'], 'type': 'buy', 'quantity': 0, 'price': 1})[1] == \
        "Quantity must be greater than zero."
    assert add({'investment_id': investment['id'], 'type': 'sell', 'quantity': 1, 'price': -1})[1] == \
        "Price must be zero or greater."
    assert add({'investment_id': investment['id'], 'type': 'fee', 'amount': 0})[1] == \
        "Amount must be greater than zero."


def test_oversized_entry_is_rejected(engine):
    investment = _asset(engine)
    add = engine.add_investment_transaction
    assert add({'investment_id': investment['id'], 'type': 'buy', 'quantity': '1e20', 'price': '1e20'}) == \
        (False, "Amount is too large.", None)
    assert add({'investment_id': investment['id'], 'type': 'dividend', 'amount': '1e30'}) == \
        (False, "Amount is too large.", None)
    assert engine.list_investment_transactions() == []


def test_portfolio_weighted_average_cost(engine):
    investment = _asset(engine, latest_price='35')
    _entry(engine, investment['id'], 'buy', '2025-01-10', quantity=10, price=20)
    _entry(engine, investment['id'], 'sell', '2025-03-10', quantity=5, price=40)
    _entry(engine, investment['id'], 'buy', '2025-02-10', quantity=10, price=30)
    _entry(engine, investment['id'], 'dividend', '2025-04-10', amount='12.34')
    _entry(engine, investment['id'], 'fee', '2025-04-11', amount='4.90')

    portfolio = engine.get_portfolio()
    position = portfolio['positions'][0]
    assert position['quantity'] == Decimal('15')
    assert position['avg_cost'] == Decimal('25')
    assert position['cost_basis'] == Decimal('375.00')
    assert position['current_value'] == Decimal('525.00')
    assert position['unrealized_pnl'] == Decimal('150.00')
    assert position['realized_pnl'] == Decimal('75.00')
    assert position['total_pnl'] == Decimal('232.44')
    assert portfolio['totals']['total_pnl'] == Decimal('232.44')


def test_selling_everything_resets_cost(engine):
    investment = _asset(engine, latest_price='10')
    _entry(engine, investment['id'], 'buy', '2025-01-10', quantity=3, price=10)
    _entry(engine, investment['id'], 'sell', '2025-01-11', quantity=5, price=12)
    position = engine.get_portfolio()['positions'][0]
    assert position['quantity'] == 0
    assert position['avg_cost'] == 0
    assert position['realized_pnl'] == Decimal('6.00')


def test_portfolio_skips_inactive_assets(engine):
    investment = _asset(engine, latest_price='10')
    _entry(engine, investment['id'], 'buy', '2025-01-10', quantity=1, price=10)
    engine.delete_investment(investment['id'])
    assert engine.get_portfolio() == {'positions': [], 'totals': {
        field: Decimal('0.00') for field in
        ('cost_basis', 'current_value', 'unrealized_pnl', 'realized_pnl', 'dividends', 'fees', 'total_pnl')
    }}


def test_portfolio_bundle_cache(engine):
    investment = _asset(engine)
    first = engine.get_portfolio_bundle()
    assert engine.get_portfolio_bundle() is first
    _entry(engine, investment['id'], 'buy', '2025-01-10', quantity=1, price=10)
    second = engine.get_portfolio_bundle()
    assert second is not first
    assert len(second['recent_transactions']) == 1

    _entry(engine, investment['id'], 'buy', '2025-01-11', quantity=1, price=10)
    engine.get_portfolio_bundle()
    engine.get_dashboard_bundle()
    assert sorted(engine._cache) == ['dashboard_bundle', 'investments_bundle']
