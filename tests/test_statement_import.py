from decimal import Decimal

import pytest

from finance_tracker.statement_import import (
    REVIEW_CATEGORY,
    StatementImportError,
    apply_override,
    compute_import_hash,
    detect_delimiter,
    guess_header,
    normalize_csv,
    parse_amount,
    parse_date,
    parse_row,
    parse_type_keyword,
    suggest_mapping,
)

BANK_CSV = (
    "\ufeffData;Descrição;Valor\r\n"
    "05/03/2025;Padaria;-12,50\r\n"
    "06/03/2025;Salário;3.500,00\r\n"
    "07/03/2025;Mercado;-1.234,56\r\n"
    "\r\n"
    "xx/03/2025;Linha quebrada;10,00\r\n"
)
MAPPING = {'date_col': 0, 'description_col': 1, 'amount_col': 2}


@pytest.mark.parametrize('raw, expected', [
    ('1.234,56', Decimal('1234.56')),
    ('-12,50', Decimal('-12.50')),
    ('R$ 10,00', Decimal('10.00')),
    ('(10,00)', Decimal('-10.00')),
    ('1234.5', Decimal('1234.5')),
    ('abc', None),
    ('', None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize('raw, expected', [
    ('2025-03-05', '2025-03-05'),
    ('05/03/2025', '2025-03-05'),
    ('5-3-25', '2025-03-05'),
    ('05.03.99', '1999-03-05'),
    ('2025/03/05', '2025-03-05'),
    ('31/02/2025', ''),
    ('ontem', ''),
])
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


def test_parse_type_keyword():
    assert parse_type_keyword('Débito') == 'debit'
    assert parse_type_keyword('D') == 'debit'
    assert parse_type_keyword('Crédito') == 'credit'
    assert parse_type_keyword('Receita') == 'credit'
    assert parse_type_keyword('???') is None


def test_csv_helpers():
    text = normalize_csv(BANK_CSV)
    assert text.startswith('Data;')
    assert '\r' not in text
    assert detect_delimiter(text) == ';'
    assert guess_header([['Data', 'Valor'], ['05/03/2025', '10']])
    assert not guess_header([['05/03/2025', '10'], ['06/03/2025', '11']])
    assert suggest_mapping(['Data', 'Histórico', 'Débito', 'Crédito']) == {
        'date_col': 0, 'description_col': 1, 'amount_col': -1, 'debit_col': 2,
        'credit_col': 3, 'type_col': -1, 'category_col': -1, 'payment_method_col': -1,
    }
    with pytest.raises(StatementImportError):
        normalize_csv('x' * (2 * 1024 * 1024 + 1))


def test_import_hash_ignores_case_and_spacing():
    item = {'date': '2025-03-05', 'type': 'debit', 'amount': Decimal('12.5'), 'description': ' Padaria '}
    same = {'date': '2025-03-05', 'type': 'debit', 'amount': '12.50', 'description': 'padaria'}
    assert compute_import_hash(item, 'Banco X') == compute_import_hash(same, 'banco x')
    assert compute_import_hash(item, 'Banco X') != compute_import_hash(item, 'Banco Y')


def test_analyze(engine):
    analysis, message = engine.analyze_statement_csv(BANK_CSV)
    assert message == "OK"
    assert analysis['delimiter'] == ';'
    assert analysis['has_header']
    assert analysis['headers'] == ['Data', 'Descrição', 'Valor']
    assert analysis['suggested_mapping']['amount_col'] == 2
    assert len(analysis['sample_rows']) == 4
    assert engine.analyze_statement_csv('')[1] == "Empty or invalid CSV."


def test_preview_flags_invalid_rows(engine):
    preview, _ = engine.preview_statement_import(BANK_CSV, {'mapping': MAPPING})
    assert preview['total_rows'] == 4
    assert preview['invalid_rows'] == 1
    rows = preview['preview_rows']
    assert rows[0]['type'] == 'debit'
    assert rows[0]['amount'] == Decimal('12.50')
    assert rows[1]['type'] == 'credit'
    assert rows[3]['issues'] == ['Data inválida']


def test_debit_and_credit_columns_with_type_keyword(engine):
    csv_text = ("Data,Historico,Debito,Credito,Tipo\n01/04/2025,Estorno,,50,Débito\n02/04/2025,Aluguel,900,,\n"
                "03/04/2025,Pix recebido,,,Crédito\n")
    preview, _ = engine.preview_statement_import(csv_text, {
        'mapping': {'date_col': 0, 'description_col': 1, 'debit_col': 2, 'credit_col': 3, 'type_col': 4},
    })
    first, second, third = preview['preview_rows']
    assert (first['type'], first['amount']) == ('credit', Decimal('50.00'))
    assert (second['type'], second['amount']) == ('debit', Decimal('900.00'))
    assert third['type'] == 'credit'
    assert third['issues'] == ['Valor inválido']


def test_type_keyword_only_fills_a_missing_type():
    columns = {'date_col': 0, 'description_col': 1, 'debit_col': 2, 'credit_col': 3, 'type_col': 4}
    row = parse_row(['01/02/2025', 'Mercado', '50,00', '', 'Crédito'], 2, columns)
    assert row['type'] == 'debit'

    signed = {'date_col': 0, 'description_col': 1, 'amount_col': 2, 'type_col': 3}
    assert parse_row(['01/02/2025', 'Salário', '100,00', 'Débito'], 3, signed)['type'] == 'credit'
    assert parse_row(['01/02/2025', 'Padaria', '-8,00', 'Crédito'], 4, signed)['type'] == 'debit'

    no_amount = parse_row(['01/02/2025', 'Ajuste', '', 'Débito'], 5, signed)
    assert no_amount['type'] == 'debit'
    assert not no_amount['valid']


def test_override_type_is_normalized():
    item = {'date': '2025-02-01', 'type': '', 'description': 'Mercado', 'amount': Decimal('50.00'),
            'category': '', 'payment_method': 'PIX'}
    assert apply_override(item, {'type': ' Debit '}, 'PIX')['type'] == 'debit'
    assert apply_override(item, {'type': 'Crédito'}, 'PIX')['type'] == 'credit'
    rejected = apply_override(item, {'type': 'transfer'}, 'PIX')
    assert not rejected['valid']
    assert rejected['issues'] == ['Tipo inválido']


def test_commit_uses_review_category_and_skips_duplicates(engine):
    ok, message, result = engine.commit_statement_import(BANK_CSV, {'mapping': MAPPING, 'source': 'Banco X'})
    assert ok, message
    assert result['created'] == 3
    assert result['skipped_invalid'] == 1
    assert result['errors'][0]['row_number'] == 4
    assert result['batch_id'].startswith('IMP-')

    imported = engine.query_transactions({'start_date': '2025-03-01', 'end_date': '2025-03-31'})
    assert {t['category'] for t in imported} == {REVIEW_CATEGORY}
    assert any(c['name'] == REVIEW_CATEGORY for c in engine.list_categories(kind='credit'))

    ok, message, again = engine.commit_statement_import(BANK_CSV, {'mapping': MAPPING, 'source': 'Banco X'})
    assert not ok
    assert again['skipped_duplicates'] == 3
    assert len(engine.query_transactions()) == 3


def test_commit_with_defaults_and_overrides(engine):
    ok, _, result = engine.commit_statement_import(BANK_CSV, {
        'mapping': MAPPING,
        'defaults': {'debit_category': 'Alimentação', 'credit_category': 'Salário', 'payment_method': 'PIX'},
        'overrides': {
            '2': {'enabled': False},
            '3': {'description': 'Supermercado', 'payment_method': 'Débito'},
            4: {'date': '2025-03-08'},
        },
    })
    assert ok
    assert result['created'] == 3
    by_description = {t['description']: t for t in engine.query_transactions()}
    assert set(by_description) == {'Padaria', 'Supermercado', 'Linha quebrada'}
    assert by_description['Padaria']['category'] == 'Alimentação'
    assert by_description['Padaria']['payment_method'] == 'PIX'
    assert by_description['Supermercado']['payment_method'] == 'Débito'
    assert by_description['Linha quebrada']['type'] == 'credit'


def test_commit_rejects_unknown_category(engine):
    csv_text = "Data,Descricao,Valor,Categoria\n01/04/2025,Presente,-30,Inexistente\n"
    ok, message, result = engine.commit_statement_import(csv_text, {
        'mapping': {'date_col': 0, 'description_col': 1, 'amount_col': 2, 'category_col': 3},
    })
    assert not ok
    assert message.startswith("No valid rows to import")
    assert result['errors'][0]['issues'] == ["Categoria inválida: Inexistente"]


def test_list_and_undo_batches(engine):
    _, _, result = engine.commit_statement_import(BANK_CSV, {'mapping': MAPPING, 'account': 'Conta 1'})
    batches = engine.list_import_batches()
    assert len(batches) == 1
    assert batches[0]['batch_id'] == result['batch_id']
    assert batches[0]['count'] == 3
    assert batches[0]['account'] == 'Conta 1'
    assert batches[0]['first_date'] == '2025-03-05'

    assert engine.undo_statement_import(result['batch_id']) == (True, "3 imported transactions removed.", 3)
    assert engine.query_transactions() == []
    assert engine.undo_statement_import(result['batch_id']) == (False, "Import batch not found.", 0)
    assert engine.undo_statement_import('')[1] == "Batch ID is required."
