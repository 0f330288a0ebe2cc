# meter_dashboard/models.py
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional


class RegisterIn(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()
