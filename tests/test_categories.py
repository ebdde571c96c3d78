def test_default_categories_are_seeded(engine):
    debit = [c['name'] for c in engine.list_categories(kind='debit')]
    credit = [c['name'] for c in engine.list_categories(kind='credit')]
    assert "Alimentação" in debit
    assert "Outros Débitos" in debit
    assert "Salário" in credit
    assert "Saldo Inicial" in credit
    assert debit == sorted(debit, key=str.lower)


def test_create_default_categories_is_idempotent(engine):
    before = len(engine.list_categories())
    assert engine.create_default_categories() == 0
    assert len(engine.list_categories()) == before


def test_create_category_trims_and_activates(engine):
    ok, message, category = engine.create_category({'kind': 'DEBIT', 'name': '  Pets  '})
    assert ok, message
    assert category['name'] == "Pets"
    assert category['kind'] == "debit"
    assert category['is_active'] is True


def test_duplicate_names_are_rejected_case_insensitively_per_kind(engine):
    ok, message, _ = engine.create_category({'kind': 'debit', 'name': 'alimentação'})
    assert not ok
    assert "already exists" in message

    # the same name is fine for the other kind
    ok, _, _ = engine.create_category({'kind': 'credit', 'name': 'Alimentação'})
    assert ok


def test_validate_category_data(engine):
    valid, errors = engine.validate_category_data({'kind': 'other', 'name': ''})
    assert not valid
    assert len(errors) == 2
    valid, errors = engine.validate_category_data({'kind': 'debit', 'name': 'x' * 101})
    assert not valid


def test_update_category_keeps_is_active_unless_given(engine):
    _, _, category = engine.create_category({'kind': 'debit', 'name': 'Pets'})
    engine.deactivate_category(category['id'])

    ok, _, updated = engine.update_category(category['id'], {'name': 'Animais'})
    assert ok
    assert updated['name'] == "Animais"
    assert updated['is_active'] is False

    ok, _, updated = engine.update_category(category['id'], {'is_active': True})
    assert ok
    assert updated['is_active'] is True


def test_update_category_can_keep_its_own_name(engine):
    _, _, category = engine.create_category({'kind': 'debit', 'name': 'Pets'})
    ok, message, _ = engine.update_category(category['id'], {'name': 'PETS'})
    assert ok, message


def test_update_missing_category(engine):
    ok, message, _ = engine.update_category(9999, {'name': 'X'})
    assert not ok
    assert message == "Category not found."


def test_deactivate_and_activate(engine):
    _, _, category = engine.create_category({'kind': 'credit', 'name': 'Bônus'})
    assert engine.deactivate_category(category['id'])[0]
    active = [c['name'] for c in engine.get_active_categories('credit')]
    assert "Bônus" not in active
    inactive = [c['name'] for c in engine.list_categories(kind='credit', is_active=False)]
    assert inactive == ["Bônus"]

    assert engine.activate_category(category['id'])[0]
    assert "Bônus" in [c['name'] for c in engine.get_active_categories('credit')]
    assert not engine.activate_category(9999)[0]


def test_ensure_category_returns_existing_or_creates(engine):
    existing = engine.ensure_category("alimentação", "debit")
    assert existing['name'] == "Alimentação"
    created = engine.ensure_category("A revisar", "debit")
    assert created['is_active'] is True
    assert engine.ensure_category("A revisar", "debit")['id'] == created['id']
