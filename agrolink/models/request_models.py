# agrolink/models/request_models.py

from pydantic import BaseModel, Field


class SubmitRequestModel(BaseModel):
    catalog_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
