"""
COBROS CRM - Event Logger

Centralized audit trail for all sensitive actions.
Single function to call from any route/service.
"""

import uuid
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Write a single event to the event_log collection.

    Args:
        action: e.g. conciliation_create, reminder_settle, contract_delete
        entity_type: client | contract | reminder | payment | conciliation
        entity_id: ID of the primary entity
        user: id/email of the operator, "system" for engine side effects
        details: free-form dict (reason, old_value, new_value, etc.)
        related: linked entity IDs (payment_id, reminder_id, contract_id, etc.)
    """
    await db.event_log.insert_one({
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": details or {},
        "related": related or {},
        "created_at": now_iso()
    })
