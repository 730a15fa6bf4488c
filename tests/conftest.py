import pytest
from fastapi.testclient import TestClient

from backend.app import config
from backend.app.api import get_settings
from backend.app.main import app


@pytest.fixture
def settings_factory(tmp_path):
    def make_settings(provider=None, mail=None) -> config.Settings:
        return config.Settings(
            provider=provider or config.ProviderConfig(),
            mail=mail or config.MailConfig(),
            upload_dir=tmp_path / "uploads",
        )
    return make_settings


@pytest.fixture
def settings(settings_factory):
    return settings_factory()


@pytest.fixture
def client(settings):
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def pdf_bytes():
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Quarterly planning meeting")
    data = doc.tobytes()
    doc.close()
    return data


class FakeSMTP:
    """Stands in for smtplib.SMTP / SMTP_SSL and records what happens."""

    instances = []
    fail_with = None
    extensions = {"starttls"}

    def __init__(self, host, port, timeout=None, context=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in_as = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name in self.extensions

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in_as = user

    def send_message(self, message):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(message)


class FakeSMTPSSL(FakeSMTP):
    pass


@pytest.fixture
def fake_smtp(monkeypatch):
    from backend.app import mailer

    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", FakeSMTPSSL)
    return FakeSMTP
