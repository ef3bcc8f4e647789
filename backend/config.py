"""
Configuration et utilitaires partagés
"""

import os
import hashlib
import secrets
import logging
from datetime import datetime, timezone, time
import pytz
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger("config")

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'cobros_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Multi-document transactions need a replica set
MONGO_TRANSACTIONS = os.environ.get('MONGO_TRANSACTIONS', 'false').lower() in ('1', 'true', 'yes')

# Reminders
APP_TIMEZONE = os.environ.get('APP_TIMEZONE', 'America/Costa_Rica')
APP_LOCALE = os.environ.get('APP_LOCALE', 'es-CR')
REMINDER_SEND_TIME = os.environ.get('REMINDER_SEND_TIME', '09:00')
DEFAULT_SEND_TIME = time(9, 0)

# Messaging bot (external process)
BOT_WEBHOOK_URL = os.environ.get('BOT_WEBHOOK_URL', '')
BOT_TIMEOUT_SECONDS = float(os.environ.get('BOT_TIMEOUT_SECONDS', '10'))


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def local_tz():
    """Timezone used to interpret date-only due dates"""
    return pytz.timezone(APP_TIMEZONE)

def send_time() -> time:
    """
    Parse REMINDER_SEND_TIME (HH:MM, 24h).
    Invalid values fall back to 09:00.
    """
    try:
        hours, minutes = REMINDER_SEND_TIME.strip().split(":")[:2]
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError):
        logger.warning(f"Invalid REMINDER_SEND_TIME '{REMINDER_SEND_TIME}', using 09:00")
        return DEFAULT_SEND_TIME


async def ensure_indexes():
    """Index MongoDB (appelé au démarrage et par les tests)"""
    await db.conciliations.create_index("payment_id", unique=True)
    await db.reminders.create_index("contract_id")
    await db.reminders.create_index([("status", 1), ("scheduled_for", 1)])
    await db.payments.create_index("client_id")
    await db.payments.create_index("reminder_id")
    await db.contracts.create_index("client_id")
    await db.users.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.settings.create_index("key", unique=True)
