"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Models Package                                                 ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import ContractCreate, ReminderStatus, etc.                     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    UserLogin,
    UserCreate,
    UserResponse,
)

# Client
from .client import (
    ClientStatus,
    ClientCreate,
    ClientUpdate,
)

# Contract
from .contract import (
    BillingCycle,
    VALID_BILLING_CYCLES,
    RECURRING_CYCLES,
    normalize_currency,
    ContractCreate,
    ContractUpdate,
)

# Reminder
from .reminder import (
    ReminderStatus,
    OUTSTANDING_STATUSES,
    DISPATCHABLE_STATUSES,
    SETTLEABLE_STATUSES,
    ENGINE_ONLY_STATUSES,
    VALID_REMINDER_TRANSITIONS,
    ReminderCreate,
    ReminderUpdate,
    ReminderAcknowledge,
)

# Payment
from .payment import (
    PaymentStatus,
    SETTLEMENT_CHANNEL,
    PaymentCreate,
    PaymentUpdate,
    PaymentStatusUpdate,
)

# Conciliation
from .conciliation import (
    ConciliationStatus,
    PAYMENT_STATUS_MIRROR,
    REVIEW_OUTCOMES,
    payment_status_for,
    ConciliationCreate,
    ConciliationUpdate,
)

__all__ = [
    # Auth
    "UserLogin",
    "UserCreate",
    "UserResponse",
    # Client
    "ClientStatus",
    "ClientCreate",
    "ClientUpdate",
    # Contract
    "BillingCycle",
    "VALID_BILLING_CYCLES",
    "RECURRING_CYCLES",
    "normalize_currency",
    "ContractCreate",
    "ContractUpdate",
    # Reminder
    "ReminderStatus",
    "OUTSTANDING_STATUSES",
    "DISPATCHABLE_STATUSES",
    "SETTLEABLE_STATUSES",
    "ENGINE_ONLY_STATUSES",
    "VALID_REMINDER_TRANSITIONS",
    "ReminderCreate",
    "ReminderUpdate",
    "ReminderAcknowledge",
    # Payment
    "PaymentStatus",
    "SETTLEMENT_CHANNEL",
    "PaymentCreate",
    "PaymentUpdate",
    "PaymentStatusUpdate",
    # Conciliation
    "ConciliationStatus",
    "PAYMENT_STATUS_MIRROR",
    "REVIEW_OUTCOMES",
    "payment_status_for",
    "ConciliationCreate",
    "ConciliationUpdate",
]
