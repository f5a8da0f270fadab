from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Principal(BaseModel):
    """The identity carried inside a session token."""
    id: str
    username: str
    role: Role


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
