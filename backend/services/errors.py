"""
COBROS CRM - Error taxonomy

Raised by services, translated to HTTP responses in server.py:
- ValidationError  -> 422 (field identified)
- ConflictError    -> 409
- NotFoundError    -> 404
"""


class BillingError(Exception):
    """Base class for billing engine errors"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationError(BillingError):
    """Malformed input or cross-entity ownership mismatch"""
    status_code = 422

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {"detail": self.message, "field": self.field}


class InvalidTransitionError(ValidationError):
    """Status move not present in a transition table"""

    def __init__(self, entity_type: str, entity_id: str, from_status: str, to_status: str, valid_next: list):
        super().__init__(
            "status",
            f"INVALID TRANSITION: {entity_type} {entity_id} cannot go from '{from_status}' to '{to_status}'. "
            f"Valid transitions from '{from_status}': {valid_next}"
        )
        self.from_status = from_status
        self.to_status = to_status


class TemplateError(ValidationError):
    """Global reminder template missing or empty"""

    def __init__(self, message: str = "Reminder template is not configured"):
        super().__init__("reminder_template", message)


class ConflictError(BillingError):
    """Duplicate resource (e.g. second conciliation for a payment)"""
    status_code = 409


class NotFoundError(BillingError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
