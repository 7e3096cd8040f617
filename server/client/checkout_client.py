# Checkout client for the order API
# One CheckoutSession creates at most one order; later fulfillment changes update that order

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

GUEST_FIELDS = ("email", "first_name", "last_name", "phone")


class CheckoutError(Exception):
    """The API rejected a checkout request"""

    def __init__(self, message: str, status_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data


class CheckoutPreconditionError(CheckoutError):
    """Checkout inputs are incomplete; nothing was sent"""


class CheckoutSession:
    """
    State of one checkout attempt

    creation_locked is set before an order is requested and stays set once the
    order exists. It is cleared only when a create attempt fails and may be retried.
    """
    def __init__(self, weekly_menu_id: int, checkout_session_id: Optional[str] = None):
        self.weekly_menu_id = weekly_menu_id
        self.checkout_session_id = checkout_session_id or uuid.uuid4().hex
        self.creation_locked = False
        self.order: Optional[Dict[str, Any]] = None
        self.guest_token: Optional[str] = None
        self._flag_lock = threading.Lock()

    @property
    def order_id(self) -> Optional[int]:
        return self.order["order_id"] if self.order else None

    def try_lock_creation(self) -> bool:
        """Set creation_locked; False when it was already set"""
        with self._flag_lock:
            if self.creation_locked:
                return False
            self.creation_locked = True
            return True

    def release_creation(self):
        with self._flag_lock:
            if self.order is None:
                self.creation_locked = False


def checkout_precondition_problem(order_days: List[Dict[str, Any]], is_pickup: bool,
                                  address_id: Optional[int], guest_address: Optional[Dict[str, Any]],
                                  guest_info: Optional[Dict[str, Any]], signed_in: bool) -> Optional[str]:
    """What is still missing before an order can be requested, None when ready"""
    if not order_days:
        return "Choose your meals first"
    if not signed_in:
        info = guest_info or {}
        if any(not str(info.get(field) or "").strip() for field in GUEST_FIELDS):
            return "Enter your email, name and phone number"
    if not is_pickup and address_id is None and not guest_address:
        return "Choose a delivery address or pickup"
    return None


class CheckoutClient:
    """
    Drives checkout against the order API

    Args:
        http_client: httpx.Client with base_url set (a FastAPI TestClient works too)
        access_token: bearer token of a signed-in customer, None for guest checkout
    """
    def __init__(self, http_client: httpx.Client, access_token: Optional[str] = None):
        self.http = http_client
        self.access_token = access_token

    def _headers(self) -> Dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def _request(self, method: str, url: str, payload: Dict[str, Any]) -> Any:
        response = self.http.request(method, url, json=payload, headers=self._headers())
        try:
            body = response.json()
        except ValueError:
            raise CheckoutError(f"Unexpected response from {url}", response.status_code)

        if response.status_code >= 400 or not body.get("success"):
            raise CheckoutError(body.get("error") or "Request failed", response.status_code, body.get("data"))
        return body["data"]

    def ensure_order(self, session: CheckoutSession, order_days: List[Dict[str, Any]], is_pickup: bool,
                     address_id: Optional[int] = None, guest_address: Optional[Dict[str, Any]] = None,
                     guest_info: Optional[Dict[str, Any]] = None,
                     notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Create the session's order, or apply fulfillment changes to it once created

        Safe to call every time checkout inputs change.

        Returns:
            the order, or None while another call is creating it

        Raises:
            CheckoutPreconditionError: inputs incomplete, no request made
            CheckoutError: the API rejected the request
        """
        if session.order is not None:
            return self.update_delivery(session, is_pickup, address_id, guest_address)

        if not session.try_lock_creation():
            logger.debug(f"Checkout {session.checkout_session_id}: order creation already in flight")
            return None

        problem = checkout_precondition_problem(
            order_days, is_pickup, address_id, guest_address, guest_info, bool(self.access_token)
        )
        if problem:
            session.release_creation()
            raise CheckoutPreconditionError(problem)

        payload = {
            "weekly_menu_id": session.weekly_menu_id,
            "order_days": order_days,
            "is_pickup": is_pickup,
            "address_id": None if is_pickup else address_id,
            "guest_address": None if is_pickup else guest_address,
            "guest_info": None if self.access_token else guest_info,
            "checkout_session_id": session.checkout_session_id,
            "notes": notes,
        }
        try:
            data = self._request("POST", "/api/orders", payload)
        except (CheckoutError, httpx.HTTPError):
            session.release_creation()
            raise

        session.order = data["order"]
        session.guest_token = data.get("guest_token") or session.guest_token
        logger.info(f"Checkout {session.checkout_session_id}: order {session.order['order_number']} ready")
        return session.order

    def update_delivery(self, session: CheckoutSession, is_pickup: bool, address_id: Optional[int] = None,
                        guest_address: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        order = session.order
        unchanged = (
            bool(order["is_pickup"]) == is_pickup
            and not guest_address
            and (is_pickup or address_id is None or order["address_id"] == address_id)
        )
        if unchanged:
            return order

        if not is_pickup and address_id is None and not guest_address:
            raise CheckoutPreconditionError("Choose a delivery address or pickup")

        session.order = self._request("PATCH", f"/api/orders/{session.order_id}/delivery", {
            "is_pickup": is_pickup,
            "address_id": None if is_pickup else address_id,
            "guest_address": None if is_pickup else guest_address,
            "checkout_session_id": session.checkout_session_id,
        })
        return session.order

    def apply_promo(self, session: CheckoutSession, promo_code: Optional[str]) -> Dict[str, Any]:
        if session.order is None:
            raise CheckoutPreconditionError("Place your order before adding a promo code")
        session.order = self._request("POST", f"/api/orders/{session.order_id}/promo", {
            "promo_code": promo_code,
            "checkout_session_id": session.checkout_session_id,
        })
        return session.order

    def pay(self, session: CheckoutSession, payment_token: Optional[str] = None) -> Dict[str, Any]:
        if session.order is None:
            raise CheckoutPreconditionError("Place your order before paying")
        session.order = self._request("POST", f"/api/orders/{session.order_id}/pay", {
            "payment_token": payment_token,
            "checkout_session_id": session.checkout_session_id,
        })
        return session.order
