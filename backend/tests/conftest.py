import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine
from starlette.websockets import WebSocketState

import helpdesk.models  # noqa: F401
from helpdesk.core.config import settings
from helpdesk.core.crypto import decrypt_message
from helpdesk.core.passwords import hash_password
from helpdesk.db import session as session_mod
from helpdesk.db.session import get_session
from helpdesk.main import app
from helpdesk.models.directory import Company, Department, TargetSystem
from helpdesk.models.user import User
from helpdesk.services.realtime import get_ws_manager

PASSWORD = "secret"
PASSWORD_HASH = hash_password(PASSWORD)


class DummyCelery:
    def __init__(self):
        self.sent = []

    def send_task(self, name, args=None, kwargs=None, **options):
        self.sent.append((name, list(args or [])))
        return None

    def emails_to(self, address):
        return [a for name, a in self.sent if name == "send_email" and a[0] == address]


class RecordingSocket:
    """Stands in for a browser connection and keeps the decrypted frames it is sent."""

    def __init__(self, passphrase):
        self.passphrase = passphrase
        self.client_state = WebSocketState.CONNECTED
        self.frames = []

    async def send_text(self, data):
        self.frames.append(json.loads(decrypt_message(data, self.passphrase)))

    @property
    def types(self):
        return [f["type"] for f in self.frames]


@pytest.fixture()
def engine():
    # SQLite in-memory, one shared connection so every session sees the same tables
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def celery(monkeypatch):
    import helpdesk.services.notifications as notifications_mod

    dummy = DummyCelery()
    monkeypatch.setattr(notifications_mod, "celery_app", dummy)
    return dummy


@pytest.fixture()
def mail_enabled(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(settings, "smtp_from", "helpdesk@acme.test")


@pytest.fixture()
def client(engine, celery, monkeypatch, tmp_path):
    def override_get_session():
        with Session(engine) as s:
            yield s

    # Override dependency and engine reference
    app.dependency_overrides[get_session] = override_get_session
    monkeypatch.setattr(session_mod, "engine", engine, raising=False)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "log_json", False)

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def _user(uid, first, last, department_id, role="employee", email=None, password_hash=PASSWORD_HASH):
    return User(
        id=uid,
        username=uid,
        first_name=first,
        last_name=last,
        email=email,
        department_id=department_id,
        role=role,
        password_hash=password_hash,
    )


@pytest.fixture()
def org(engine):
    """Acme with IT and HR departments, a department without company, and one user per role."""
    with Session(engine) as s:
        acme = Company(name="Acme")
        s.add(acme)
        s.commit()
        s.refresh(acme)

        it = Department(name="IT", company_id=acme.id)
        hr = Department(name="HR", company_id=acme.id)
        lab = Department(name="Lab", company_id=None)
        s.add_all([it, hr, lab])
        s.commit()
        for d in (it, hr, lab):
            s.refresh(d)

        email_sys = TargetSystem(name="Email", department_id=it.id)
        vpn_sys = TargetSystem(name="VPN", department_id=it.id)
        payroll_sys = TargetSystem(name="Payroll", department_id=hr.id)
        s.add_all([email_sys, vpn_sys, payroll_sys])
        s.add_all(
            [
                _user("su", "Sam", "Super", None, role="super_admin", email="su@acme.test"),
                _user("itadmin", "Ivy", "Admin", it.id, role="admin", email="itadmin@acme.test"),
                _user("hradmin", "Hal", "Admin", hr.id, role="admin", email="hradmin@acme.test"),
                _user("alice", "Alice", "Ng", it.id, email="alice@acme.test"),
                _user("bob", "Bob", "Stone", it.id, email="bob@acme.test"),
                _user("hank", "Hank", "Ruiz", hr.id, email="hank@acme.test"),
                _user("labrat", "Lee", "Lab", lab.id),
            ]
        )
        s.commit()
        for t in (email_sys, vpn_sys, payroll_sys):
            s.refresh(t)

        return SimpleNamespace(
            company_id=acme.id,
            it_id=it.id,
            hr_id=hr.id,
            lab_id=lab.id,
            email_sys=email_sys.id,
            vpn_sys=vpn_sys.id,
            payroll_sys=payroll_sys.id,
        )


def login(client, user_id, password=PASSWORD):
    r = client.post("/api/auth/login", json={"employee_id": user_id, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["user"]


def create_ticket(client, **overrides):
    body = {"subject": "Mail down", "description": "Outlook cannot connect", "priority": "high"}
    body.update(overrides)
    r = client.post("/api/tickets", json=body)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture()
def hub():
    """Attach recording connections to the live hub; they are removed after the test."""
    mgr = get_ws_manager()
    client_ids = []

    def attach(user_id, ticket_id=None):
        ws = RecordingSocket(mgr.passphrase)
        client_ids.append(mgr.connect(ws, user_id, ticket_id))
        return ws

    yield attach
    for client_id in client_ids:
        mgr.disconnect(client_id)
