# agrolink/models/catalog_models.py

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class CatalogItemCreateModel(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    attributes: Dict[str, Any] = {}

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v


class CatalogItemUpdateModel(BaseModel):
    """Owner edits. Quantity is not here: it only moves through adjust."""
    name: Optional[str] = None
    unit_price: Optional[float] = Field(default=None, gt=0)
    attributes: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v


class QuantityAdjustModel(BaseModel):
    delta: int

    @field_validator("delta")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must not be 0")
        return v
