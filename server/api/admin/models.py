# Administrator request models

from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel, Field

from api.orders.models import OrderDaySelection


class PricingRequest(BaseModel):
    """Dollar amounts, two decimal places"""
    completa_price: Decimal = Field(..., ge=0, decimal_places=2)
    extra_entree_price: Decimal = Field(..., ge=0, decimal_places=2)
    extra_side_price: Decimal = Field(..., ge=0, decimal_places=2)
    delivery_fee_per_meal: Decimal = Field(..., ge=0, decimal_places=2)


class CreateMenuItemRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    kind: str = Field(..., description="ENTREE or SIDE")
    description: Optional[str] = Field(None, max_length=500)
    is_dessert: bool = False
    is_soup: bool = False
    is_staple: bool = False


class MenuItemStatusRequest(BaseModel):
    status: str = Field(..., description="active / inactive")


class CreateWeeklyMenuRequest(BaseModel):
    week_start_date: str = Field(..., description="Monday of the week (YYYY-MM-DD)")


class WeeklyMenuItemRequest(BaseModel):
    menu_item_id: int
    day_of_week: int = Field(..., ge=0, le=5, description="0 = every day, 1..5 = Monday..Friday")


class PublishMenuRequest(BaseModel):
    is_published: bool = True


class UpdateOrderRequest(BaseModel):
    """Any combination; status changes follow the order state machine"""
    status: Optional[str] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class BulkStatusRequest(BaseModel):
    order_ids: List[int] = Field(..., min_length=1, max_length=500)
    status: str


class EditOrderRequest(BaseModel):
    order_days: List[OrderDaySelection]
    is_pickup: Optional[bool] = None
    address_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class RefundRequest(BaseModel):
    amount: Decimal = Field(..., decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class RecordPaymentRequest(BaseModel):
    amount: Decimal = Field(..., decimal_places=2)
    method: str = Field(..., description="CASH / CHECK / CARD / OTHER")
    reference: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = Field(None, max_length=500)


class CreditAccountRequest(BaseModel):
    is_credit_account: bool
