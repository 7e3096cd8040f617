# Administrator routes: pricing, menus, order management, payments and refunds

import logging
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, Query, Path

from .models import (
    PricingRequest, CreateMenuItemRequest, MenuItemStatusRequest, CreateWeeklyMenuRequest,
    WeeklyMenuItemRequest, PublishMenuRequest, UpdateOrderRequest, BulkStatusRequest,
    EditOrderRequest, RefundRequest, RecordPaymentRequest, CreditAccountRequest
)
from api.addresses.models import AddressInput
from api.auth.routes import get_admin_user, get_database
from api.auth.models import TokenData
from api.payments.routes import get_core_operations
from db.manager import DatabaseManager
from db.core_operations import CoreOperations
from db.query_operations import QueryOperations
from db.supporting_operations import SupportingOperations
from utils.response import create_success_response, create_pagination_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


# ===== Pricing =====

@router.get("/pricing", response_model=Dict[str, Any])
def get_pricing(
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    row = SupportingOperations(db).get_pricing_row()
    return create_success_response(data=row)


@router.put("/pricing", response_model=Dict[str, Any])
def update_pricing(
    request: PricingRequest,
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    """
    Replace unit prices; orders already placed keep the prices they were created with
    """
    pricing = SupportingOperations(db).update_pricing_config(
        current_admin.user_id,
        completa_price=request.completa_price,
        extra_entree_price=request.extra_entree_price,
        extra_side_price=request.extra_side_price,
        delivery_fee_per_meal=request.delivery_fee_per_meal
    )
    return create_success_response(
        data={key: float(value) for key, value in pricing.model_dump().items()},
        message="Pricing updated"
    )


# ===== Menu items and weekly menus =====

@router.post("/menu-items", response_model=Dict[str, Any], status_code=201)
def create_menu_item(
    request: CreateMenuItemRequest,
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    item = SupportingOperations(db).create_menu_item(current_admin.user_id, **request.model_dump())
    return create_success_response(data=item, message=f"Menu item \"{item['name']}\" created")


@router.patch("/menu-items/{menu_item_id}", response_model=Dict[str, Any])
def set_menu_item_status(
    request: MenuItemStatusRequest,
    menu_item_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    item = SupportingOperations(db).set_menu_item_status(current_admin.user_id, menu_item_id, request.status)
    return create_success_response(data=item)


@router.post("/weekly-menus", response_model=Dict[str, Any], status_code=201)
def create_weekly_menu(
    request: CreateWeeklyMenuRequest,
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    menu = SupportingOperations(db).create_weekly_menu(current_admin.user_id, request.week_start_date)
    return create_success_response(data=menu, message=f"Weekly menu for {request.week_start_date} created")


@router.get("/weekly-menus/{weekly_menu_id}", response_model=Dict[str, Any])
def get_weekly_menu(
    weekly_menu_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    """Includes unpublished menus"""
    menu = SupportingOperations(db).find_weekly_menu(weekly_menu_id, require_published=False)
    return create_success_response(data=menu)


@router.post("/weekly-menus/{weekly_menu_id}/items", response_model=Dict[str, Any])
def add_weekly_menu_item(
    request: WeeklyMenuItemRequest,
    weekly_menu_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    menu = SupportingOperations(db).add_weekly_menu_item(
        current_admin.user_id, weekly_menu_id, request.menu_item_id, request.day_of_week
    )
    return create_success_response(data=menu)


@router.post("/weekly-menus/{weekly_menu_id}/publish", response_model=Dict[str, Any])
def publish_weekly_menu(
    request: PublishMenuRequest,
    weekly_menu_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    menu = SupportingOperations(db).publish_weekly_menu(
        current_admin.user_id, weekly_menu_id, request.is_published
    )
    message = "Weekly menu published" if request.is_published else "Weekly menu unpublished"
    return create_success_response(data=menu, message=message)


# ===== Orders =====

@router.get("/orders", response_model=Dict[str, Any])
def list_orders(
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    weekly_menu_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="order number, email or name"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    result = QueryOperations(db).list_orders(
        status=status, payment_status=payment_status, weekly_menu_id=weekly_menu_id,
        search=search, offset=offset, limit=limit
    )
    return create_pagination_response(
        items=result["orders"],
        total_count=result["total_count"],
        current_page=result["offset"] // result["limit"] + 1,
        per_page=result["limit"]
    )


@router.get("/orders/{order_id}", response_model=Dict[str, Any])
def get_order(
    order_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    return create_success_response(data=QueryOperations(db).get_order_detail(order_id))


@router.patch("/orders/{order_id}", response_model=Dict[str, Any])
def update_order(
    request: UpdateOrderRequest,
    order_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Change order status, non-monetary payment status, or notes

    Applied in that order; each change is its own transaction.
    """
    order = None
    if request.status:
        order = core_ops.update_order_status(current_admin.user_id, order_id, request.status)
    if request.payment_status:
        order = core_ops.set_payment_status(current_admin.user_id, order_id, request.payment_status)
    if request.notes is not None:
        order = core_ops.update_order_notes(current_admin.user_id, order_id, request.notes)
    if order is None:
        order = core_ops.query.get_order_detail(order_id)
    return create_success_response(data=order, message="Order updated")


@router.post("/orders/bulk-status", response_model=Dict[str, Any])
def bulk_update_status(
    request: BulkStatusRequest,
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    result = core_ops.admin_bulk_update_status(current_admin.user_id, request.order_ids, request.status)
    return create_success_response(
        data=result,
        message=f"{len(result['updated'])} orders updated, {len(result['failed'])} skipped"
    )


@router.put("/orders/{order_id}", response_model=Dict[str, Any])
def edit_order(
    request: EditOrderRequest,
    order_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Replace the order's days and items and re-price it

    The response carries previous_total so a price difference can be settled
    with a payment or a refund.
    """
    order = core_ops.admin_edit_order(
        current_admin.user_id, order_id,
        order_days=[day.model_dump() for day in request.order_days],
        is_pickup=request.is_pickup,
        address_id=request.address_id,
        notes=request.notes
    )
    return create_success_response(data=order, message="Order updated")


@router.post("/orders/{order_id}/refund", response_model=Dict[str, Any])
def refund_order(
    request: RefundRequest,
    order_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    result = core_ops.refund_order(current_admin.user_id, order_id, request.amount, request.reason)
    refund = result["refund"]
    return create_success_response(
        data=result,
        message=f"Refunded {refund['amount']:.2f}, {refund['remaining']:.2f} remaining"
    )


@router.post("/orders/{order_id}/payments", response_model=Dict[str, Any])
def record_payment(
    request: RecordPaymentRequest,
    order_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.admin_record_payment(
        current_admin.user_id, order_id, request.amount, request.method,
        reference=request.reference, notes=request.notes
    )
    return create_success_response(data=order, message="Payment recorded")


# ===== Customers =====

@router.post("/customers/{customer_id}/addresses", response_model=Dict[str, Any], status_code=201)
def create_customer_address(
    request: AddressInput,
    customer_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    address = SupportingOperations(db).create_address(customer_id, **request.model_dump())
    logger.info(f"Address {address['address_id']} added to customer {customer_id} by admin {current_admin.user_id}")
    return create_success_response(data=address, message="Address saved")


@router.patch("/customers/{customer_id}/credit-account", response_model=Dict[str, Any])
def set_credit_account(
    request: CreditAccountRequest,
    customer_id: int = Path(...),
    current_admin: TokenData = Depends(get_admin_user),
    db: DatabaseManager = Depends(get_database)
):
    """Credit-account customers' new orders skip card payment and are invoiced"""
    result = SupportingOperations(db).set_credit_account(
        current_admin.user_id, customer_id, request.is_credit_account
    )
    return create_success_response(data=result)
