"""
COBROS CRM - Template Renderer

Builds the outbound reminder text from the global `reminder_template`
setting and the variables resolved for one reminder.
Unknown {placeholders} are left verbatim. No template = hard failure.
"""

import re
from datetime import date
from typing import Dict, Optional

import config
from config import db
from services.due_dates import parse_date
from services.errors import TemplateError, NotFoundError
from services.settings import get_message_settings

PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")

CURRENCY_SYMBOLS = {
    "CRC": "₡",
    "USD": "$",
}

SPANISH_MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

ENGLISH_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def format_amount(amount, currency: str) -> str:
    """₡30,000.00 / $25.50 / EUR 10.00"""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    currency = (currency or "").upper()
    symbol = CURRENCY_SYMBOLS.get(currency)
    prefix = symbol if symbol else (f"{currency} " if currency else "")
    return f"{prefix}{value:,.2f}"


def format_due_date(value: date, locale: Optional[str] = None) -> str:
    locale = (locale or config.APP_LOCALE or "").lower()
    if locale.startswith("es"):
        return f"{value.day} de {SPANISH_MONTHS[value.month - 1]} de {value.year}"
    if locale.startswith("en"):
        return f"{ENGLISH_MONTHS[value.month - 1]} {value.day}, {value.year}"
    return value.isoformat()


def render(template: str, variables: Dict[str, str]) -> str:
    if not template or not template.strip():
        raise TemplateError()

    def substitute(match):
        key = match.group(1)
        if key in variables:
            return variables[key]
        return match.group(0)

    return PLACEHOLDER_RE.sub(substitute, template)


def resolve_variables(
    reminder: Dict,
    contract: Optional[Dict],
    client: Optional[Dict],
    settings: Dict[str, str]
) -> Dict[str, str]:
    payload = reminder.get("payload") or {}
    contract = contract or {}
    client = client or {}

    due_date = payload.get("due_date")
    if not due_date:
        stored = parse_date(contract.get("next_due_date"))
        due_date = format_due_date(stored) if stored else ""

    amount = contract.get("amount")
    if amount is None:
        amount = payload.get("amount", 0)
    currency = contract.get("currency") or payload.get("currency") or ""

    services = contract.get("services") or []
    if isinstance(services, list):
        services = ", ".join(str(s) for s in services)

    return {
        "client_name": client.get("name", ""),
        "contract_name": contract.get("name", ""),
        "due_date": str(due_date),
        "amount": format_amount(amount, currency),
        "currency": currency,
        "services": services,
        "company_name": settings.get("company_name", ""),
        "payment_contact": settings.get("payment_contact", ""),
        "bank_accounts": settings.get("bank_accounts", ""),
        "beneficiary_name": settings.get("beneficiary_name", ""),
    }


async def render_reminder_message(reminder_id: str) -> str:
    reminder = await db.reminders.find_one({"id": reminder_id, "deleted_at": None}, {"_id": 0})
    if not reminder:
        raise NotFoundError("reminder", reminder_id)

    contract = await db.contracts.find_one({"id": reminder.get("contract_id")}, {"_id": 0})
    client = await db.clients.find_one({"id": reminder.get("client_id")}, {"_id": 0})
    settings = await get_message_settings()

    variables = resolve_variables(reminder, contract, client, settings)
    return render(settings.get("reminder_template", ""), variables)


def settlement_notice(client_name: str, amount, currency: str, months: int, company_name: str = "") -> str:
    """Short confirmation sent after an approved conciliation"""
    label = "mes" if months == 1 else "meses"
    text = (
        f"Hola {client_name}, su pago de {format_amount(amount, currency)} "
        f"fue verificado ({months} {label})."
    )
    if company_name:
        text += f" Gracias, {company_name}."
    return text
