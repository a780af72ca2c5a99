from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
import re


PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")

def validate_password_strength(password: str) -> str:
    """Mínimo 8 caracteres con mayúscula, minúscula y número"""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[a-z]", password) or not re.search(r"[A-Z]", password) or not re.search(r"\d", password):
        raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return password

def _clean_name(v: str) -> str:
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Name must be at least 2 characters")
    return v

def _clean_phone(v: str) -> str:
    v = v.strip()
    if not v or not PHONE_RE.match(v):
        raise ValueError("Please provide a valid phone number")
    return v

class Register(BaseModel):
    # role no se acepta aquí: siempre nace como "user"
    name: str = Field(..., min_length=2, max_length=80)
    email: EmailStr
    phone: str = Field(..., max_length=30)
    password: str = Field(..., max_length=72)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _clean_phone(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)

class Login(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

class UserUpdate(BaseModel):
    """Perfil editable por el propio usuario; role nunca."""
    name: Optional[str] = Field(None, min_length=2, max_length=80)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v is not None else v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _clean_phone(v) if v is not None else v
