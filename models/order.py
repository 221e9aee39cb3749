"""
Order model for PostgreSQL
One row per checkout session, written by the Stripe webhook
"""
import enum

from sqlalchemy import Column, String, JSON, DateTime, Integer, Numeric
from sqlalchemy.sql import func
from core.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @classmethod
    def from_payment_status(cls, payment_status) -> "OrderStatus":
        return cls.PAID if payment_status == "paid" else cls.PENDING


class Order(Base):
    """
    Card print order keyed by the Stripe checkout session id.
    Money columns hold integer minor units (cents).
    """
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    stripe_session_id = Column(String(255), unique=True, index=True, nullable=False)

    payment_status = Column(String(64), nullable=True)  # raw provider value
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value)

    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(64), nullable=True)

    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)

    total_amount_cents = Column(Integer, nullable=True)
    shipping_cost_cents = Column(Integer, nullable=True)

    # First-seen fields copied from checkout metadata on insert
    quantity = Column(Integer, nullable=False, default=0)
    price_per_card = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_country = Column(String(64), nullable=True)
    card_images = Column(JSON, nullable=False, default=list)
    card_images_base64 = Column(JSON, nullable=False, default=list)
    card_data = Column(JSON, nullable=False, default=list)
    image_storage_path = Column(String(512), nullable=True)
    order_metadata = Column('metadata', JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
