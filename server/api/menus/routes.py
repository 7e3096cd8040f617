# Public menu and pricing routes

import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, Path

from api.auth.routes import get_database
from db.manager import DatabaseManager
from db.supporting_operations import SupportingOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["menus"])


@router.get("/pricing", response_model=Dict[str, Any])
def get_pricing(db: DatabaseManager = Depends(get_database)):
    """Current unit prices and per-meal delivery fee"""
    pricing = SupportingOperations(db).get_pricing_config()
    return create_success_response(data={key: float(value) for key, value in pricing.model_dump().items()})


@router.get("/menus", response_model=Dict[str, Any])
def list_menus(db: DatabaseManager = Depends(get_database)):
    menus = SupportingOperations(db).list_weekly_menus(published_only=True)
    return create_success_response(data={"menus": menus})


@router.get("/menus/{weekly_menu_id}", response_model=Dict[str, Any])
def get_menu(
    weekly_menu_id: int = Path(...),
    db: DatabaseManager = Depends(get_database)
):
    """
    Published weekly menu: items offered per weekday (key 0 = every day) and staples
    """
    menu = SupportingOperations(db).find_weekly_menu(weekly_menu_id)
    return create_success_response(data=menu)
