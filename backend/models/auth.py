"""
COBROS CRM - Modeles Auth & Utilisateurs
Operators reviewing payments. Authentication is a thin boundary.
"""

from pydantic import BaseModel, field_validator
from typing import Optional


VALID_ROLES = ["admin", "reviewer", "viewer"]


class UserLogin(BaseModel):
    email: str
    password: str


class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    role: str = "reviewer"

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Invalid role: {v}. Valid: {VALID_ROLES}")
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    is_active: Optional[bool] = True
