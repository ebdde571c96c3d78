import pytest

from finance_tracker.api import create_app
from finance_tracker.engine import FinanceEngine


class FakeMailer:
    """Collects messages instead of talking to an SMTP server."""

    def __init__(self):
        self.sent = []

    def is_configured(self):
        return True

    def send(self, to_email, subject, text, html_body=None):
        self.sent.append({'to': to_email, 'subject': subject, 'text': text, 'html': html_body})


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def engine(tmp_path, mailer):
    eng = FinanceEngine(
        tmp_path / "finance.db",
        mailer=mailer,
        backup_dir=tmp_path / "backups",
        upload_dir=tmp_path / "uploads",
    )
    ok, message = eng.initialize()
    assert ok, message
    return eng


@pytest.fixture
def add_tx(engine):
    """Create a transaction, failing the test if the engine rejects it."""

    def _add(date, tx_type, category, amount, description="Lançamento", **extra):
        data = {'date': date, 'type': tx_type, 'category': category,
                'description': description, 'amount': amount}
        data.update(extra)
        ok, message, tx = engine.create_transaction(data)
        assert ok, message
        return tx

    return _add


@pytest.fixture
def app(engine):
    return create_app({'ENGINE': engine, 'TESTING': True})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post('/api/login', json={'password': 'admin123'})
    assert response.status_code == 200
    return client
