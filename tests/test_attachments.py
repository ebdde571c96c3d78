import base64


def _file(content=b'%PDF-1.4 recibo', name='recibo.pdf', mime_type='application/pdf'):
    return {'name': name, 'mime_type': mime_type, 'data': base64.b64encode(content).decode('ascii')}


def test_upload_and_download(engine, add_tx):
    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00', 'Farmácia')
    ok, message, info = engine.upload_transaction_file(tx['id'], _file())
    assert ok, message
    assert info['attachment_id'].startswith(f"TX-{tx['id']}-")
    assert info['attachment_id'].endswith('.pdf')
    assert (engine.upload_dir / info['attachment_id']).read_bytes() == b'%PDF-1.4 recibo'
    assert engine.get_transaction(tx['id'])['has_attachment']

    stored, _ = engine.get_transaction_file(tx['id'])
    assert stored['mime_type'] == 'application/pdf'
    assert base64.b64decode(stored['data']) == b'%PDF-1.4 recibo'


def test_upload_accepts_data_url(engine, add_tx):
    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00')
    data = 'data:image/png;base64,' + base64.b64encode(b'png-bytes').decode('ascii')
    ok, _, info = engine.upload_transaction_file(tx['id'], {'name': 'nota.PNG', 'mime_type': 'image/png', 'data': data})
    assert ok
    assert info['size'] == len(b'png-bytes')


def test_upload_replaces_previous_file(engine, add_tx):
    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00')
    _, _, first = engine.upload_transaction_file(tx['id'], _file(b'first'))
    _, _, second = engine.upload_transaction_file(tx['id'], _file(b'second', name='novo.txt', mime_type='text/plain'))
    assert not (engine.upload_dir / first['attachment_id']).exists()
    assert engine.get_transaction(tx['id'])['attachment_id'] == second['attachment_id']


def test_upload_rejections(engine, add_tx):
    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00')
    assert engine.upload_transaction_file(9999, _file())[1] == "Transaction not found."
    assert engine.upload_transaction_file(tx['id'], {'name': 'x.pdf'})[1] == "Invalid file data."
    assert engine.upload_transaction_file(tx['id'], _file(name='x.exe', mime_type='application/x-msdownload'))[1] == \
        "File type not allowed. Allowed: images, PDF, TXT, Excel and Word."
    assert engine.upload_transaction_file(tx['id'], _file(name='x.exe'))[1] == "File extension not allowed."
    bad = {'name': 'x.pdf', 'mime_type': 'application/pdf', 'data': '***not base64***'}
    assert engine.upload_transaction_file(tx['id'], bad)[1] == "File content is not valid base64."
    assert engine.get_logs(level='WARN')


def test_remove_file(engine, add_tx):
    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00')
    assert engine.remove_transaction_file(tx['id']) == (False, "Transaction has no attachment.")
    _, _, info = engine.upload_transaction_file(tx['id'], _file())
    assert engine.remove_transaction_file(tx['id']) == (True, "File removed successfully.")
    assert not (engine.upload_dir / info['attachment_id']).exists()
    assert engine.get_transaction_file(tx['id']) == (None, "Transaction has no attachment.")


def test_custom_upload_folder(engine, add_tx, tmp_path):
    folder = tmp_path / 'comprovantes'
    assert engine.set_upload_folder(str(folder)) == (True, "Upload folder configured successfully.")
    assert engine.get_upload_folder() == folder
    assert 'upload_folder' not in engine.get_settings()
    assert engine.set_upload_folder('  ') == (False, "Invalid folder path.")

    tx = add_tx('2025-01-10', 'debit', 'Saúde', '80.00')
    _, _, info = engine.upload_transaction_file(tx['id'], _file())
    assert (folder / info['attachment_id']).exists()
