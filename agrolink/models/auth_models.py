# agrolink/models/auth_models.py

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _loose_email(v: str) -> str:
    v = (v or "").strip().lower()
    if "@" not in v or " " in v:
        raise ValueError("invalid email format (expected something like user@host)")
    return v


class SignUpModel(BaseModel):
    role: Literal["farmer", "retailer", "logistic", "warehouse"]
    full_name: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=6)
    confirm_password: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    # role-specific sign-up fields (farm name, fleet size, warehouse capacity...)
    profile: Dict[str, Any] = {}

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        return _loose_email(v)

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match.")
        return self


class LoginModel(BaseModel):
    role: str
    email: str
    password: str
