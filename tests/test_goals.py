from decimal import Decimal

from finance_tracker.goals import calculate_progress


def _goal(engine, **overrides):
    data = {'name': 'Reserva', 'target_amount': '1000.00', 'type': 'savings',
            'start_date': '2025-01-01', 'end_date': '2025-12-31'}
    data.update(overrides)
    ok, message, goal = engine.create_goal(data)
    assert ok, message
    return goal


def test_calculate_progress():
    assert calculate_progress(250, 1000) == 25.0
    assert calculate_progress(1500, 1000) == 100.0
    assert calculate_progress(10, 0) == 0.0


def test_create_goal(engine):
    goal = _goal(engine)
    assert goal['status'] == 'active'
    assert goal['current_amount'] == Decimal('0.00')
    assert goal['remaining'] == Decimal('1000.00')
    assert goal['progress'] == 0.0


def test_create_goal_validation(engine):
    assert engine.create_goal({'target_amount': 10, 'end_date': '2025-12-31'})[1] == "Goal name is required."
    assert engine.create_goal({'name': 'X', 'target_amount': 0, 'end_date': '2025-12-31'})[1] == \
        "Target amount must be greater than zero."
    assert engine.create_goal({'name': 'X', 'target_amount': 10, 'type': 'wish', 'end_date': '2025-12-31'})[1] == \
        "Invalid goal type."
    assert engine.create_goal({'name': 'X', 'target_amount': 10, 'type': 'category-budget',
                               'end_date': '2025-12-31'})[1] == "A category budget needs a category."
    assert engine.create_goal({'name': 'X', 'target_amount': 10})[1] == "End date is required."
    assert engine.create_goal({'name': 'X', 'target_amount': 10, 'start_date': '2025-06-01',
                               'end_date': '2025-05-01'})[1] == "End date must be on or after the start date."


def test_manual_progress_completes_goal(engine):
    goal = _goal(engine)
    ok, _, updated = engine.update_goal_progress(goal['id'], '400')
    assert ok
    assert updated['progress'] == 40.0
    assert updated['status'] == 'active'

    _, _, updated = engine.update_goal_progress(goal['id'], 1000)
    assert updated['status'] == 'completed'
    assert updated['remaining'] == Decimal('0.00')

    assert engine.update_goal_progress(goal['id'], -1)[1] == "Amount must be zero or greater."
    assert engine.update_goal_progress(9999, 1)[1] == "Goal not found."


def test_get_goals_by_status(engine):
    first = _goal(engine, name='A', end_date='2025-06-30')
    _goal(engine, name='B')
    engine.update_goal_progress(first['id'], 1000)
    assert [g['name'] for g in engine.get_goals()] == ['A', 'B']
    assert [g['name'] for g in engine.get_goals('active')] == ['B']


def test_delete_goal(engine):
    goal = _goal(engine)
    assert engine.delete_goal(goal['id']) == (True, "Goal deleted successfully.")
    assert engine.delete_goal(goal['id']) == (False, "Goal not found.")
    assert engine.get_goal(goal['id']) is None


def test_recalculate_goals_from_transactions(engine, add_tx):
    add_tx('2025-02-01', 'credit', 'Salário', '3000.00')
    add_tx('2025-02-05', 'debit', 'Alimentação', '400.00')
    add_tx('2025-02-06', 'debit', 'Lazer', '100.00')
    add_tx('2024-12-20', 'debit', 'Alimentação', '999.00')

    savings = _goal(engine, name='Poupança', target_amount='5000')
    limit = _goal(engine, name='Limite', type='spending-limit', target_amount='1000')
    budget = _goal(engine, name='Mercado', type='category-budget', category='Alimentação', target_amount='800')

    assert engine.update_all_goals_progress() == 3
    assert engine.get_goal(savings['id'])['current_amount'] == Decimal('2500.00')
    assert engine.get_goal(limit['id'])['current_amount'] == Decimal('500.00')
    assert engine.get_goal(budget['id'])['current_amount'] == Decimal('400.00')
    assert engine.get_goal(budget['id'])['progress'] == 50.0


def test_savings_goal_never_negative(engine, add_tx):
    add_tx('2025-03-01', 'debit', 'Lazer', '50.00')
    goal = _goal(engine)
    engine.update_all_goals_progress()
    assert engine.get_goal(goal['id'])['current_amount'] == Decimal('0.00')
