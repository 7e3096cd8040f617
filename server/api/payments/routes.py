# Payment processor webhook and processor dependency

import json
import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, HTTPException, Request

from .processor_service import PaymentProcessorService
from api.auth.routes import config, get_database
from db.core_operations import CoreOperations
from db.manager import DatabaseManager
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payments", tags=["payments"])

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"


def get_payment_processor() -> PaymentProcessorService:
    return PaymentProcessorService(config.get_payments_config())


def get_core_operations(
    db: DatabaseManager = Depends(get_database),
    processor: PaymentProcessorService = Depends(get_payment_processor)
) -> CoreOperations:
    return CoreOperations(db, processor=processor, currency=config.get("payments.currency", "usd"))


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/webhook", response_model=Dict[str, Any])
def payment_webhook(
    request: Request,
    payload: bytes = Depends(raw_body),
    processor: PaymentProcessorService = Depends(get_payment_processor),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Processor events: payment.succeeded appends a ledger row, payment.failed marks the order FAILED
    """
    if not processor.verify_webhook_signature(payload, request.headers.get("X-Signature")):
        logger.warning("Rejected payment webhook with a bad signature")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event_type = event.get("type")
    data = event.get("data") or {}
    if event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED) or not data.get("order_id"):
        logger.info(f"Ignoring payment webhook event {event_type}")
        return create_success_response(data={"handled": False}, message="Event ignored")

    order_id = int(data["order_id"])
    if event_type == PAYMENT_SUCCEEDED:
        if not data.get("amount_cents") or not data.get("processor_reference"):
            raise HTTPException(status_code=400, detail="Invalid webhook payload")
        result = core_ops.record_processor_payment(
            order_id, int(data["amount_cents"]), data["processor_reference"]
        )
        return create_success_response(
            data={"handled": True, "duplicate": result["duplicate"],
                  "payment_status": result["order"]["payment_status"]},
            message="Payment recorded"
        )

    order = core_ops.record_payment_failure(order_id, data.get("reason") or "Payment failed")
    return create_success_response(
        data={"handled": True, "payment_status": order["payment_status"]},
        message="Payment failure recorded"
    )
