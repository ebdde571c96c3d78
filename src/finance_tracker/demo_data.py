"""
Finance Tracker - Demo Data Generator

Generates realistic fake financial data for local exploration.
Creates a persona with a few months of salary, bills and day-to-day spending,
a couple of installment purchases, two goals and a small portfolio.
"""

import logging
import random
from datetime import timedelta

from faker import Faker

from finance_tracker.utils import add_months, today

logger = logging.getLogger(__name__)

fake = Faker('pt_BR')

MONTHLY_BILLS = [
    {"description": "Aluguel", "amount": 1800, "day": 5, "category": "Moradia", "payment_method": "Boleto"},
    {"description": "Conta de luz", "amount": 160, "day": 12, "category": "Moradia", "payment_method": "Débito"},
    {"description": "Internet", "amount": 99.90, "day": 10, "category": "Serviços", "payment_method": "Débito"},
    {"description": "Academia", "amount": 119.90, "day": 3, "category": "Saúde", "payment_method": "Crédito à vista"},
    {"description": "Streaming", "amount": 39.90, "day": 8, "category": "Lazer", "payment_method": "Crédito à vista"},
]

EXPENSE_TEMPLATES = [
    {"category": "Alimentação", "descriptions": ["Supermercado", "Feira", "Padaria", "Açougue"], "min": 30, "max": 320, "frequency": 4},
    {"category": "Alimentação", "descriptions": ["Restaurante", "Lanchonete", "iFood", "Cafeteria"], "min": 18, "max": 120, "frequency": 3},
    {"category": "Transporte", "descriptions": ["Posto de gasolina", "Uber", "Estacionamento", "Metrô"], "min": 8, "max": 250, "frequency": 4},
    {"category": "Lazer", "descriptions": ["Cinema", "Show", "Bar", "Parque"], "min": 25, "max": 180, "frequency": 12},
    {"category": "Saúde", "descriptions": ["Farmácia", "Consulta", "Exame"], "min": 20, "max": 300, "frequency": 20},
    {"category": "Vestuário", "descriptions": ["Loja de roupas", "Calçados"], "min": 60, "max": 350, "frequency": 25},
]

PAYMENT_CHOICES = ["PIX", "Débito", "Crédito à vista", "Dinheiro"]

INSTALLMENT_PURCHASES = [
    {"description": "Notebook", "amount": 4800, "installments": 10, "category": "Educação"},
    {"description": "Geladeira", "amount": 3200, "installments": 8, "category": "Moradia"},
    {"description": "Curso online", "amount": 900, "installments": 6, "category": "Educação"},
]

DEMO_ASSETS = [
    {"symbol": "PETR4", "name": "Petrobras PN", "asset_type": "Ação", "price": (30, 40)},
    {"symbol": "ITSA4", "name": "Itaúsa PN", "asset_type": "Ação", "price": (9, 12)},
    {"symbol": "HGLG11", "name": "CSHG Logística", "asset_type": "FII", "price": (150, 170)},
]


def _create(engine, data):
    ok, message, _ = engine.create_transaction(data)
    if not ok:
        logger.warning("[DEMO] Skipped '%s': %s", data.get('description'), message)
    return ok


def generate_demo_data(engine, months=4):
    """
    Fill the database with `months` months of history ending today.

    Args:
        engine: initialized FinanceEngine
        months (int): history length (1-24)

    Returns:
        dict: counts of what was generated
    """
    months = min(max(int(months), 1), 24)
    current_date = today()
    start_date = add_months(current_date, -months)

    logger.info("[DEMO] Generating demo data from %s to %s", start_date, current_date)

    salary = random.choice([4500, 6200, 8300])
    engine.set_initial_balance(random.randint(1000, 5000), start_date.isoformat())

    counts = {'transactions': 0, 'installment_groups': 0, 'goals': 0, 'investments': 0}

    # ===== SALARY AND BILLS =====

    for i in range(months + 1):
        month_start = add_months(start_date.replace(day=1), i)
        payday = month_start.replace(day=5)
        if start_date <= payday <= current_date:
            counts['transactions'] += _create(engine, {
                'date': payday.isoformat(), 'type': 'credit', 'category': 'Salário',
                'description': f"Salário - {fake.company()}", 'amount': salary,
                'payment_method': 'Transferência',
            })
        for bill in MONTHLY_BILLS:
            due = month_start.replace(day=bill['day'])
            if start_date <= due <= current_date:
                counts['transactions'] += _create(engine, {
                    'date': due.isoformat(), 'type': 'debit', 'category': bill['category'],
                    'description': bill['description'], 'amount': bill['amount'],
                    'payment_method': bill['payment_method'],
                })

    # ===== DAY-TO-DAY EXPENSES =====

    day = start_date
    while day <= current_date:
        for template in EXPENSE_TEMPLATES:
            if random.random() < (1.0 / template['frequency']):
                counts['transactions'] += _create(engine, {
                    'date': day.isoformat(), 'type': 'debit', 'category': template['category'],
                    'description': random.choice(template['descriptions']),
                    'amount': round(random.uniform(template['min'], template['max']), 2),
                    'payment_method': random.choice(PAYMENT_CHOICES),
                })
        if random.random() < 0.03:
            counts['transactions'] += _create(engine, {
                'date': day.isoformat(), 'type': 'credit', 'category': 'Freelance',
                'description': f"Projeto {fake.bs()}"[:100], 'amount': random.randint(300, 2500),
                'payment_method': 'PIX',
            })
        day += timedelta(days=1)

    # ===== INSTALLMENT PURCHASES =====

    for purchase in random.sample(INSTALLMENT_PURCHASES, 2):
        bought_on = start_date + timedelta(days=random.randint(0, max((current_date - start_date).days, 1)))
        ok, _, _ = engine.create_installment_transaction({
            'date': bought_on.isoformat(), 'type': 'debit', 'category': purchase['category'],
            'description': purchase['description'], 'amount': purchase['amount'],
            'installments': purchase['installments'],
        })
        counts['installment_groups'] += ok

    # ===== GOALS =====

    for goal in (
        {'name': 'Reserva de emergência', 'type': 'savings', 'target_amount': salary * 6},
        {'name': 'Limite de gastos do mês', 'type': 'spending-limit', 'target_amount': salary * 0.7,
         'start_date': current_date.replace(day=1).isoformat()},
    ):
        goal.setdefault('start_date', start_date.isoformat())
        goal['end_date'] = add_months(current_date, 6).isoformat()
        ok, _, _ = engine.create_goal(goal)
        counts['goals'] += ok
    engine.update_all_goals_progress()

    # ===== INVESTMENTS =====

    for asset in DEMO_ASSETS:
        low, high = asset['price']
        ok, _, investment = engine.upsert_investment({
            'symbol': asset['symbol'], 'name': asset['name'], 'asset_type': asset['asset_type'],
            'broker': 'Corretora Demo', 'latest_price': round(random.uniform(low, high), 2),
        })
        if not ok:
            continue
        counts['investments'] += 1
        for _ in range(random.randint(1, 3)):
            engine.add_investment_transaction({
                'investment_id': investment['id'], 'type': 'buy',
                'date': (start_date + timedelta(days=random.randint(0, 30))).isoformat(),
                'quantity': random.randint(5, 50), 'price': round(random.uniform(low, high), 2),
            })
        engine.add_investment_transaction({
            'investment_id': investment['id'], 'type': 'dividend',
            'date': (current_date - timedelta(days=random.randint(1, 20))).isoformat(),
            'amount': round(random.uniform(10, 120), 2),
        })

    logger.info("[DEMO] Generated %s", counts)
    return {
        **counts,
        'date_range': f"{start_date} to {current_date}",
        'persona': f"Profissional CLT (salário R$ {salary})",
    }
