# Order request models
# Rule checks (day minimum, completa shape, menu availability) happen in the order engine so
# callers get its specific reasons; these models only enforce the wire shape

from typing import List, Optional
from pydantic import BaseModel, Field

from api.addresses.models import AddressInput


class SideSelection(BaseModel):
    menu_item_id: int
    quantity: int = 1


class CompletaSelection(BaseModel):
    """One entree plus its sides"""
    entree_id: Optional[int] = None
    sides: List[SideSelection] = Field(default_factory=list)


class ExtraSelection(BaseModel):
    menu_item_id: int
    quantity: int = 1


class OrderDaySelection(BaseModel):
    day_of_week: int = Field(..., description="1 = Monday ... 5 = Friday")
    completas: List[CompletaSelection] = Field(default_factory=list)
    extra_entrees: List[ExtraSelection] = Field(default_factory=list)
    extra_sides: List[ExtraSelection] = Field(default_factory=list)


class GuestInfo(BaseModel):
    """Contact details for checkout without an account"""
    email: Optional[str] = Field(None, max_length=255)
    first_name: Optional[str] = Field(None, max_length=80)
    last_name: Optional[str] = Field(None, max_length=80)
    phone: Optional[str] = Field(None, max_length=40)


class CreateOrderRequest(BaseModel):
    weekly_menu_id: int
    order_days: List[OrderDaySelection] = Field(default_factory=list)
    is_pickup: bool = False
    address_id: Optional[int] = None
    guest_address: Optional[AddressInput] = None
    guest_info: Optional[GuestInfo] = None
    checkout_session_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=1000)


class UpdateDeliveryRequest(BaseModel):
    is_pickup: bool
    address_id: Optional[int] = None
    guest_address: Optional[AddressInput] = None
    checkout_session_id: Optional[str] = Field(None, max_length=64)


class ApplyPromoRequest(BaseModel):
    """An empty promo_code removes the discount"""
    promo_code: Optional[str] = Field(None, max_length=32)
    checkout_session_id: Optional[str] = Field(None, max_length=64)


class PayOrderRequest(BaseModel):
    payment_token: Optional[str] = Field(None, max_length=255)
    checkout_session_id: Optional[str] = Field(None, max_length=64)


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    checkout_session_id: Optional[str] = Field(None, max_length=64)
