# agrolink/models/settlement_models.py

from typing import Optional

from pydantic import BaseModel, Field


class PaymentOutcomeModel(BaseModel):
    """What the checkout widget reports back after a payment attempt."""
    payment_ref: str = Field(default="", max_length=128)
    status: str = "success"          # success / failed / cancelled
    error: Optional[str] = None
