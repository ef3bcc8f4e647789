"""
Cobros CRM - Template Renderer Tests
Run: cd backend && pytest tests/test_template_renderer.py -v
"""

import pytest
from datetime import date

from services.errors import TemplateError
from services.settings import upsert_setting
from services.template_renderer import (
    render,
    resolve_variables,
    format_amount,
    format_due_date,
    render_reminder_message,
)

SETTINGS = {
    "company_name": "Cobros SA",
    "reminder_template": "",
    "payment_contact": "8888-0000",
    "bank_accounts": "BCR 001-123",
    "beneficiary_name": "Cobros SA",
}


class TestRender:
    def test_substitutes_known_placeholders(self):
        assert render("Hola {client_name}", {"client_name": "Ana"}) == "Hola Ana"

    def test_unknown_placeholders_left_verbatim(self):
        text = render("Hola {client_name}, {nickname}", {"client_name": "Ana"})
        assert text == "Hola Ana, {nickname}"

    def test_missing_template_is_hard_failure(self):
        with pytest.raises(TemplateError):
            render("", {})
        with pytest.raises(TemplateError):
            render("   ", {})
        with pytest.raises(TemplateError):
            render(None, {})


class TestFormatting:
    def test_crc_symbol(self):
        assert format_amount(30000, "CRC") == "₡30,000.00"

    def test_usd_symbol(self):
        assert format_amount("25.5", "usd") == "$25.50"

    def test_other_currency_uses_code(self):
        assert format_amount(10, "EUR") == "EUR 10.00"

    def test_bad_amount_is_zero(self):
        assert format_amount(None, "CRC") == "₡0.00"
        assert format_amount("n/a", "CRC") == "₡0.00"

    def test_spanish_date(self):
        assert format_due_date(date(2026, 2, 10), "es-CR") == "10 de febrero de 2026"

    def test_english_date(self):
        assert format_due_date(date(2026, 2, 10), "en-US") == "February 10, 2026"

    def test_other_locale_iso(self):
        assert format_due_date(date(2026, 2, 10), "fr-FR") == "2026-02-10"


class TestResolveVariables:
    def test_due_date_from_payload_first(self):
        variables = resolve_variables(
            {"payload": {"due_date": "mañana"}},
            {"next_due_date": "2026-02-10"},
            {"name": "Ana"},
            SETTINGS,
        )
        assert variables["due_date"] == "mañana"

    def test_due_date_from_contract(self):
        variables = resolve_variables({"payload": {}}, {"next_due_date": "2026-02-10"}, {}, SETTINGS)
        assert variables["due_date"] == "10 de febrero de 2026"

    def test_amount_from_contract_first(self):
        variables = resolve_variables(
            {"payload": {"amount": "999"}},
            {"amount": 30000, "currency": "CRC"},
            {},
            SETTINGS,
        )
        assert variables["amount"] == "₡30,000.00"

    def test_amount_from_payload_then_zero(self):
        variables = resolve_variables({"payload": {"amount": "1500", "currency": "USD"}}, None, None, SETTINGS)
        assert variables["amount"] == "$1,500.00"
        variables = resolve_variables({"payload": {}}, None, None, SETTINGS)
        assert variables["amount"] == "0.00"

    def test_services_and_settings(self):
        variables = resolve_variables(
            {"payload": {}},
            {"name": "Plan Pyme", "services": ["Hosting", "Correo"]},
            {"name": "Ana"},
            SETTINGS,
        )
        assert variables["services"] == "Hosting, Correo"
        assert variables["contract_name"] == "Plan Pyme"
        assert variables["client_name"] == "Ana"
        assert variables["bank_accounts"] == "BCR 001-123"
        assert variables["beneficiary_name"] == "Cobros SA"


class TestRenderReminderMessage:
    async def test_end_to_end(self, db, make_client, make_contract):
        client = await make_client(name="Ana Solano")
        contract = await make_contract(client, name="Plan Pyme", next_due_date=date(2026, 2, 10))
        reminder = await db.reminders.find_one({"contract_id": contract["id"]})

        await upsert_setting(
            "reminder_template",
            "Hola {client_name}: {contract_name} vence el {due_date} por {amount}. SINPE {payment_contact} {extra}"
        )
        await upsert_setting("payment_contact", "8888-0000")

        text = await render_reminder_message(reminder["id"])
        assert text == (
            "Hola Ana Solano: Plan Pyme vence el 10 de febrero de 2026 por ₡30,000.00. "
            "SINPE 8888-0000 {extra}"
        )

    async def test_no_template_configured(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 10))
        reminder = await db.reminders.find_one({"contract_id": contract["id"]})

        with pytest.raises(TemplateError):
            await render_reminder_message(reminder["id"])
