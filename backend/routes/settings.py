"""
COBROS CRM - Routes Settings

Parametres globaux des messages (template + coordonnees de paiement).
Cles: company_name, reminder_template, payment_contact, bank_accounts, beneficiary_name
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional

from routes.auth import get_current_user
from services.settings import (
    get_setting,
    upsert_setting,
    get_message_settings,
    MESSAGE_SETTING_KEYS,
)

router = APIRouter(prefix="/settings", tags=["Settings"])


# ---- Models ----

class SettingUpdate(BaseModel):
    value: Optional[str] = None


def _check_key(key: str):
    if key not in MESSAGE_SETTING_KEYS:
        raise HTTPException(status_code=404, detail=f"Unknown setting: {key}")


# ---- Endpoints ----

@router.get("")
async def list_settings(user: dict = Depends(get_current_user)):
    """Map complete, cles absentes = chaine vide"""
    return {"settings": await get_message_settings()}


@router.get("/{key}")
async def get_setting_route(key: str, user: dict = Depends(get_current_user)):
    _check_key(key)
    doc = await get_setting(key)
    if not doc:
        return {"key": key, "value": "", "source": "default"}
    return doc


@router.put("/{key}")
async def update_setting_route(key: str, data: SettingUpdate, user: dict = Depends(get_current_user)):
    _check_key(key)
    doc = await upsert_setting(key, data.value or "", updated_by=user.get("email", "system"))
    return {"success": True, "setting": doc}
