"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Modèle Client                                                  ║
║                                                                              ║
║  Root of ownership: Contracts, Reminders and Payments belong to a Client.    ║
║  Soft delete cascades to contracts (and their reminders) and payments.       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, field_validator
import re


class ClientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PAUSED = "paused"


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def _check_email(v):
    if v and not is_valid_email_format(v):
        raise ValueError(f"Invalid email format: {v}")
    return v


class ClientCreate(BaseModel):
    """
    Client creation.

    contract_id: optional unassigned contract to attach to the new client
    (quick-create / assign-later workflow).
    """
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: ClientStatus = ClientStatus.ACTIVE
    notes: Optional[str] = None
    metadata: Dict[str, Any] = {}
    contract_id: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[ClientStatus] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    contract_id: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)
