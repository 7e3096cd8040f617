# Order routes: checkout, customer order views, payment

import logging
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, Path, Query, Response

from .models import (
    CreateOrderRequest, UpdateDeliveryRequest, ApplyPromoRequest,
    PayOrderRequest, CancelOrderRequest
)
from api.auth.routes import get_current_user, get_optional_user, get_database
from api.auth.models import TokenData
from api.payments.routes import get_core_operations
from db.core_operations import CoreOperations
from db.manager import DatabaseManager
from db.query_operations import QueryOperations
from db.supporting_operations import SupportingOperations
from ordering.errors import NotFoundError
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


def _user_id(current_user: Optional[TokenData]) -> Optional[int]:
    return current_user.user_id if current_user else None


@router.post("", response_model=Dict[str, Any], status_code=201)
def create_order(
    order_request: CreateOrderRequest,
    response: Response,
    current_user: Optional[TokenData] = Depends(get_optional_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Create an order, as a signed-in customer or a guest

    Replaying the same checkout_session_id returns the order already created (200).
    """
    result = core_ops.create_order(
        weekly_menu_id=order_request.weekly_menu_id,
        order_days=[day.model_dump() for day in order_request.order_days],
        is_pickup=order_request.is_pickup,
        user_id=_user_id(current_user),
        guest_info=order_request.guest_info.model_dump() if order_request.guest_info and not current_user else None,
        address_id=order_request.address_id,
        guest_address=order_request.guest_address.model_dump() if order_request.guest_address else None,
        checkout_session_id=order_request.checkout_session_id,
        notes=order_request.notes
    )

    if result["replayed"]:
        response.status_code = 200
    order = result["order"]
    return create_success_response(
        data=result,
        message=f"Order {order['order_number']} created, total {order['total_amount']:.2f}"
    )


@router.get("/my", response_model=Dict[str, Any])
def my_orders(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: TokenData = Depends(get_current_user),
    db: DatabaseManager = Depends(get_database)
):
    customer_id = SupportingOperations(db).resolve_checkout_identity(user_id=current_user.user_id)["customer_id"]
    orders = QueryOperations(db).get_customer_orders(customer_id, offset=offset, limit=limit)
    return create_success_response(data={"orders": orders})


@router.get("/guest/{guest_token}", response_model=Dict[str, Any])
def guest_order(
    guest_token: str = Path(..., min_length=16, max_length=64),
    db: DatabaseManager = Depends(get_database)
):
    """One-time lookup of a guest order; the token is spent on success"""
    order = QueryOperations(db).lookup_guest_order(guest_token)
    return create_success_response(data=order)


@router.get("/{order_id}", response_model=Dict[str, Any])
def get_order(
    order_id: int = Path(...),
    current_user: TokenData = Depends(get_current_user),
    db: DatabaseManager = Depends(get_database)
):
    order = QueryOperations(db).get_order_detail(order_id)
    user = SupportingOperations(db).get_user_by_id(current_user.user_id)
    if not user["is_admin"] and order["customer_id"] != user["customer_id"]:
        raise NotFoundError("Order not found")
    return create_success_response(data=order)


@router.patch("/{order_id}/delivery", response_model=Dict[str, Any])
def update_delivery(
    request: UpdateDeliveryRequest,
    order_id: int = Path(...),
    current_user: Optional[TokenData] = Depends(get_optional_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Switch pickup/delivery on the order this checkout already created"""
    order = core_ops.update_checkout_delivery(
        order_id,
        is_pickup=request.is_pickup,
        address_id=request.address_id,
        guest_address=request.guest_address.model_dump() if request.guest_address else None,
        user_id=_user_id(current_user),
        checkout_session_id=request.checkout_session_id
    )
    return create_success_response(data=order, message="Delivery updated")


@router.post("/{order_id}/promo", response_model=Dict[str, Any])
def apply_promo(
    request: ApplyPromoRequest,
    order_id: int = Path(...),
    current_user: Optional[TokenData] = Depends(get_optional_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.apply_promo_code(
        order_id, request.promo_code,
        user_id=_user_id(current_user),
        checkout_session_id=request.checkout_session_id
    )
    message = f"Promo code {order['promo_code']} applied" if order["promo_code"] else "Promo code removed"
    return create_success_response(data=order, message=message)


@router.post("/{order_id}/pay", response_model=Dict[str, Any])
def pay_order(
    request: PayOrderRequest,
    order_id: int = Path(...),
    current_user: Optional[TokenData] = Depends(get_optional_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.charge_order(
        order_id,
        user_id=_user_id(current_user),
        checkout_session_id=request.checkout_session_id,
        payment_token=request.payment_token
    )
    return create_success_response(data=order, message="Payment received")


@router.post("/{order_id}/cancel", response_model=Dict[str, Any])
def cancel_order(
    request: CancelOrderRequest,
    order_id: int = Path(...),
    current_user: Optional[TokenData] = Depends(get_optional_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.cancel_order(
        order_id,
        user_id=_user_id(current_user),
        checkout_session_id=request.checkout_session_id,
        reason=request.reason
    )
    return create_success_response(data=order, message="Order cancelled")
