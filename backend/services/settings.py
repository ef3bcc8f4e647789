"""
COBROS CRM - Service Settings

Gestion des parametres systeme dynamiques.
Collection: settings (chaque doc identifie par key, valeur dans "value")

Settings disponibles (consommes par le template renderer):
- company_name: nom affiche dans les messages
- reminder_template: texte global avec {placeholders}
- payment_contact: numero / contact de paiement
- bank_accounts: comptes bancaires, un par ligne
- beneficiary_name: titulaire des comptes
"""

import logging
from typing import Optional, Dict, Any
from config import db, now_iso

logger = logging.getLogger("settings")

MESSAGE_SETTING_KEYS = [
    "company_name",
    "reminder_template",
    "payment_contact",
    "bank_accounts",
    "beneficiary_name",
]


async def get_setting(key: str) -> Optional[Dict]:
    """Recupere un setting par sa cle"""
    doc = await db.settings.find_one({"key": key}, {"_id": 0})
    return doc


async def upsert_setting(key: str, value: Any, updated_by: str = "system") -> Dict:
    """Cree ou met a jour un setting"""
    data = {
        "key": key,
        "value": value,
        "updated_at": now_iso(),
        "updated_by": updated_by,
    }

    existing = await db.settings.find_one({"key": key})
    if existing:
        await db.settings.update_one({"key": key}, {"$set": data})
    else:
        data["created_at"] = now_iso()
        await db.settings.insert_one(data)

    logger.info(f"Setting '{key}' updated by {updated_by}")
    result = await db.settings.find_one({"key": key}, {"_id": 0})
    return result


async def get_message_settings() -> Dict[str, str]:
    """
    Global settings map for the template renderer.
    Missing keys come back as empty strings.
    """
    docs = await db.settings.find(
        {"key": {"$in": MESSAGE_SETTING_KEYS}}, {"_id": 0}
    ).to_list(len(MESSAGE_SETTING_KEYS))

    values = {key: "" for key in MESSAGE_SETTING_KEYS}
    for doc in docs:
        value = doc.get("value")
        values[doc["key"]] = "" if value is None else str(value)
    return values
