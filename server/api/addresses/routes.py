# Address routes for the signed-in customer

import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends

from .models import AddressInput
from api.auth.routes import get_current_user, get_database
from api.auth.models import TokenData
from db.manager import DatabaseManager
from db.supporting_operations import SupportingOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/addresses", tags=["addresses"])


def _customer_id(support: SupportingOperations, current_user: TokenData) -> int:
    return support.resolve_checkout_identity(user_id=current_user.user_id)["customer_id"]


@router.get("", response_model=Dict[str, Any])
def list_addresses(
    current_user: TokenData = Depends(get_current_user),
    db: DatabaseManager = Depends(get_database)
):
    support = SupportingOperations(db)
    addresses = support.list_addresses(_customer_id(support, current_user))
    return create_success_response(data={"addresses": addresses})


@router.post("", response_model=Dict[str, Any], status_code=201)
def create_address(
    request: AddressInput,
    current_user: TokenData = Depends(get_current_user),
    db: DatabaseManager = Depends(get_database)
):
    support = SupportingOperations(db)
    address = support.create_address(_customer_id(support, current_user), **request.model_dump())
    logger.info(f"Address {address['address_id']} saved for user {current_user.user_id}")
    return create_success_response(data=address, message="Address saved")
