"""
Cobros CRM - Test fixtures

MongoDB is replaced by mongomock-motor BEFORE any service is imported
(services bind `db` at import time with `from config import db`).
"""

import os

os.environ["APP_TIMEZONE"] = "America/Costa_Rica"
os.environ["APP_LOCALE"] = "es-CR"
os.environ["REMINDER_SEND_TIME"] = "09:00"
os.environ["BOT_WEBHOOK_URL"] = ""
os.environ["MONGO_TRANSACTIONS"] = "false"

import pytest
import httpx
from datetime import date
from mongomock_motor import AsyncMongoMockClient

import config

config.client = AsyncMongoMockClient()
config.db = config.client[config.DB_NAME]

from config import hash_password
from models import ClientCreate, ContractCreate, PaymentCreate
from services.contract_lifecycle import create_client, create_contract
from services.due_dates import scheduled_for_due_date
from services.reminder_scheduler import new_reminder_doc

COLLECTIONS = [
    "clients", "contracts", "reminders", "payments", "conciliations",
    "settings", "event_log", "users", "sessions",
]

TEST_USER = {
    "id": "user-reviewer-1",
    "email": "reviewer@cobros.test",
    "name": "Reviewer",
    "role": "reviewer",
    "is_active": True,
}


@pytest.fixture(autouse=True)
async def clean_db():
    for name in COLLECTIONS:
        await config.db[name].delete_many({})
    await config.ensure_indexes()
    yield


@pytest.fixture
def db():
    return config.db


@pytest.fixture
def user():
    return dict(TEST_USER)


# ==================== FACTORIES ====================

@pytest.fixture
def make_client():
    async def _make(name="Ana Solano", phone="+50688887777", **kwargs):
        return await create_client(ClientCreate(name=name, phone=phone, **kwargs))
    return _make


@pytest.fixture
def make_contract():
    async def _make(client=None, anchor=None, **kwargs):
        fields = {"name": "Hosting", "amount": 30000, "currency": "CRC", "billing_cycle": "monthly"}
        fields.update(kwargs)
        if client:
            fields["client_id"] = client["id"]
        return await create_contract(ContractCreate(**fields), anchor=anchor)
    return _make


@pytest.fixture
def make_reminder(db):
    """Insert a reminder for an explicit local due date (bypasses the scheduler)"""
    async def _make(contract, due: date, status="pending", **payload):
        reminder = new_reminder_doc(contract, scheduled_for_due_date(due), status=status, payload=payload)
        await db.reminders.insert_one(reminder)
        reminder.pop("_id", None)
        return reminder
    return _make


@pytest.fixture
def make_payment():
    from services.payments import create_payment

    async def _make(client, contract=None, amount=30000, **kwargs):
        fields = {
            "client_id": client["id"],
            "contract_id": contract["id"] if contract else None,
            "amount": amount,
            "currency": "CRC",
            "channel": "sinpe",
        }
        fields.update(kwargs)
        return await create_payment(PaymentCreate(**fields))
    return _make


# ==================== HTTP ====================

@pytest.fixture
async def api():
    """Authenticated in-process client (get_current_user overridden)"""
    from server import app
    from routes.auth import get_current_user

    app.dependency_overrides[get_current_user] = lambda: dict(TEST_USER)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_api():
    from server import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def operator(db):
    """Real user document for login tests"""
    doc = {
        "id": "user-admin-1",
        "email": "admin@cobros.test",
        "password": hash_password("Cobros2026!"),
        "name": "Admin",
        "role": "admin",
        "is_active": True,
    }
    await db.users.insert_one(doc)
    doc.pop("_id", None)
    return doc
