from finance_tracker.maintenance import RESET_CONFIRMATION_CODE


def test_count_system_data(engine, add_tx):
    add_tx('2025-01-10', 'debit', 'Lazer', '10.00')
    counts = engine.count_system_data()
    assert counts['transactions'] == 1
    assert counts['categories'] > 0
    assert set(counts) == {'investment_transactions', 'investments', 'transactions',
                           'categories', 'goals', 'logs', 'settings'}


def test_reset_requires_confirmation_code(engine, add_tx):
    add_tx('2025-01-10', 'debit', 'Lazer', '10.00')
    ok, message, details = engine.reset_system('delete')
    assert not ok
    assert message == "Invalid confirmation code. Type DELETE_ALL_DATA to confirm."
    assert details is None
    assert len(engine.query_transactions()) == 1


def test_reset_erases_data_after_backup(engine, add_tx):
    add_tx('2025-01-10', 'debit', 'Lazer', '10.00')
    engine.create_category({'name': 'Pets', 'kind': 'debit'})
    engine.create_goal({'name': 'Viagem', 'target_amount': 100, 'end_date': '2025-12-31'})
    engine.update_settings({'email': 'me@example.com'})
    engine.change_password('admin123', 'nova-senha-1')

    ok, message, details = engine.reset_system(RESET_CONFIRMATION_CODE)
    assert (ok, message) == (True, "System reset successfully.")
    assert details['removed']['transactions'] == 1
    assert details['backup']['name'] in [b['name'] for b in engine.list_backups()]

    assert engine.query_transactions() == []
    assert engine.get_goals() == []
    assert engine.get_settings()['email'] == ''
    names = [c['name'] for c in engine.list_categories()]
    assert 'Pets' not in names
    assert 'Alimentação' in names
    assert engine.login('nova-senha-1')[0]
    assert engine.get_logs(level='WARN')[0]['action'] == 'reset_system'
