# Address models

from typing import Optional
from pydantic import BaseModel, Field


class AddressInput(BaseModel):
    """A delivery address to save for a customer"""
    street: str = Field(..., min_length=1, max_length=255)
    unit: Optional[str] = Field(None, max_length=40)
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=2, max_length=40)
    zip_code: str = Field(..., min_length=5, max_length=12)
    delivery_notes: Optional[str] = Field(None, max_length=500)
    is_default: bool = False
