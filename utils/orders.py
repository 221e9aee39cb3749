"""
Order reconciliation for Stripe checkout completions.

`OrderReconciler.reconcile` is an upsert keyed on the checkout session id:
the first delivery creates the order (including metadata-only fields), every
later delivery only refreshes payment/customer/amount fields.
"""
import json
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger
from models.order import Order, OrderStatus
from utils.stripe_api import StripeAPI

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_MINOR_UNITS = re.compile(r"^-?\d+$")


def _dict(node) -> dict:
    return node if isinstance(node, dict) else {}


def _minor_units(value) -> Optional[int]:
    """Stripe amounts are integer cents; anything else is treated as absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _MINOR_UNITS.match(value.strip()):
        return int(value.strip())
    return None


def parse_quantity(raw) -> int:
    m = _LEADING_INT.match(str(raw or ""))
    return int(m.group(1)) if m else 0


def parse_price(raw) -> Decimal:
    try:
        price = Decimal(str(raw).strip()) if raw not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")
    return price if price.is_finite() else Decimal("0")


def decode_json_list(raw) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("[orders] could not decode metadata list; treating as empty")
        return []
    return value if isinstance(value, list) else []


def shipping_details(session: dict) -> dict:
    details = session.get("shipping_details")
    if not isinstance(details, dict):
        # Newer API versions nest it under collected_information
        details = _dict(session.get("collected_information")).get("shipping_details")
    return _dict(details)


def build_order_update(session: dict) -> dict:
    """Fields refreshed on every reconciliation of a session."""
    customer = _dict(session.get("customer_details"))
    payment_status = session.get("payment_status")
    return {
        "payment_status": payment_status,
        "status": OrderStatus.from_payment_status(payment_status).value,
        "customer_email": customer.get("email") or session.get("customer_email"),
        "customer_name": customer.get("name"),
        "customer_phone": customer.get("phone"),
        "shipping_address": shipping_details(session).get("address") or None,
        "billing_address": customer.get("address") or None,
        "total_amount_cents": _minor_units(session.get("amount_total")),
        "shipping_cost_cents": _minor_units(_dict(session.get("shipping_cost")).get("amount_total")),
        "updated_at": datetime.now(timezone.utc),
    }


def build_first_seen_fields(session: dict) -> dict:
    """Fields only written when the order row is created."""
    meta = _dict(session.get("metadata"))
    return {
        "quantity": parse_quantity(meta.get("quantity")),
        "price_per_card": parse_price(meta.get("pricePerCard")),
        "shipping_country": meta.get("shippingCountry") or _dict(shipping_details(session).get("address")).get("country"),
        "card_images": decode_json_list(meta.get("cardImages")),
        "card_images_base64": decode_json_list(meta.get("cardImagesBase64")),
        "card_data": decode_json_list(meta.get("cardData")),
        "image_storage_path": meta.get("imageStoragePath") or None,
        "order_metadata": dict(meta),
    }


class OrderReconciler:
    def __init__(self, db: Session, payments: StripeAPI):
        self.db = db
        self.payments = payments

    def find(self, session_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.stripe_session_id == session_id).first()

    async def reconcile(self, completion: dict) -> Order:
        session_id = str(_dict(completion).get("id") or "").strip()
        if not session_id:
            raise ValueError("completion payload has no session id")

        full = await self.payments.retrieve_checkout_session(session_id)
        session = {**completion, **full}
        update = build_order_update(session)

        existing = self.find(session_id)
        if existing is not None:
            return self._apply(existing, update)

        try:
            return self._create(session_id, session, update)
        except IntegrityError:
            # Another delivery inserted the same session first
            existing = self.find(session_id)
            if existing is None:
                raise
            logger.info(f"[orders] concurrent insert for {session_id}; updating instead")
            return self._apply(existing, update)

    def _apply(self, order: Order, update: dict) -> Order:
        try:
            for key, value in update.items():
                setattr(order, key, value)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        logger.info(f"[orders] updated order {order.id} session={order.stripe_session_id} status={order.status}")
        return order

    def _create(self, session_id: str, session: dict, update: dict) -> Order:
        order = Order(
            id=uuid.uuid4().hex,
            stripe_session_id=session_id,
            **update,
            **build_first_seen_fields(session),
        )
        self.db.add(order)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        logger.info(f"[orders] created order {order.id} session={session_id} status={order.status}")
        return order
