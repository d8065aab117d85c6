import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, Text, UniqueConstraint, Uuid, event, text
from sqlmodel import Column, SQLModel, Field, String
from uuid6 import uuid7
from printstore.common.utils import now


def _public_id_column():
    return Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)


def _money_column(nullable: bool = False):
    return Column(Numeric(12, 2), nullable=nullable)


def _created_at_column():
    return Column(DateTime(timezone=True), nullable=False, default=now)


# ---------------------------------------------------------------------------------------------------------
# identity mirror (owned by the auth provider, read-only here)

class Users(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True, unique=True))
    name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())


class Address(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    full_name: str = Field(sa_column=Column(String(128), nullable=False))
    phone: str = Field(sa_column=Column(String(20), nullable=False))
    line1: str = Field(sa_column=Column(String(255), nullable=False))
    line2: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    city: str = Field(sa_column=Column(String(128), nullable=False))
    state: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    postal_code: str = Field(sa_column=Column(String(16), nullable=False))
    country: str = Field(default="IN", sa_column=Column(String(64), nullable=False, default="IN"))
    is_default: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


# ---------------------------------------------------------------------------------------------------------
# catalog

class Availability(str, enum.Enum):
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    name: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    price: Decimal = Field(sa_column=_money_column(), description="authoritative unit price, major units")
    stock_qty: int = Field(sa_column=Column(Integer(), nullable=False))
    availability: str = Field(default=Availability.AVAILABLE.value,
        sa_column=Column(String(32), nullable=False, default=Availability.AVAILABLE.value))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))


# cart lines are written by the storefront; this service only reads and clears them
class CartItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    product_id: int = Field(sa_column=Column(ForeignKey("product.id", ondelete="CASCADE"), nullable=False))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
    )


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class PromoCode(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    code: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    discount_type: str = Field(sa_column=Column(String(16), nullable=False))
    discount_value: Decimal = Field(sa_column=_money_column())
    max_discount_amount: Optional[Decimal] = Field(default=None, sa_column=_money_column(nullable=True))
    min_order_amount: Optional[Decimal] = Field(default=None, sa_column=_money_column(nullable=True))
    max_uses: int = Field(sa_column=Column(Integer, nullable=False))
    used_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())


# ---------------------------------------------------------------------------------------------------------
# custom-print quotations

class DesignRequestStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    QUOTATION_SENT = "quotation_sent"
    NEGOTIATION_REQUESTED = "negotiation_requested"
    REVISED_QUOTATION_SENT = "revised_quotation_sent"
    FINAL_QUOTATION_CONFIRMED = "final_quotation_confirmed"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (DesignRequestStatus.PAID, DesignRequestStatus.REJECTED, DesignRequestStatus.COMPLETED)


class DesignRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    status: str = Field(default=DesignRequestStatus.PENDING_REVIEW.value,
        sa_column=Column(String(32), nullable=False, index=True, default=DesignRequestStatus.PENDING_REVIEW.value))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    size: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    quoted_amount: Optional[Decimal] = Field(default=None, sa_column=_money_column(nullable=True))
    final_amount: Optional[Decimal] = Field(default=None, sa_column=_money_column(nullable=True))
    price_locked: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    converted_to_order: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))


# ---------------------------------------------------------------------------------------------------------
# payments

class PaymentRecordStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentSource(str, enum.Enum):
    CART = "cart"
    SINGLE = "single"
    DESIGN_REQUEST = "design_request"


# one row per gateway order; gateway_order_id is the idempotency anchor for materialization
class PaymentRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    gateway_order_id: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))
    gateway_payment_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, unique=True))
    provider: str = Field(default="razorpay", sa_column=Column(String(64), nullable=False, default="razorpay"))
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    source_type: str = Field(sa_column=Column(String(32), nullable=False))
    design_request_id: Optional[int] = Field(default=None,
        sa_column=Column(ForeignKey("designrequest.id", ondelete="SET NULL"), nullable=True, index=True))
    address_id: Optional[int] = Field(default=None,
        sa_column=Column(ForeignKey("address.id", ondelete="SET NULL"), nullable=True))
    promo_code_id: Optional[int] = Field(default=None,
        sa_column=Column(ForeignKey("promocode.id", ondelete="SET NULL"), nullable=True))
    amount: Decimal = Field(sa_column=_money_column())
    amount_minor: int = Field(sa_column=Column(Integer, nullable=False))
    currency: str = Field(default="INR", sa_column=Column(String(8), nullable=False, default="INR"))
    status: str = Field(default=PaymentRecordStatus.PENDING.value,
        sa_column=Column(String(16), nullable=False, index=True, default=PaymentRecordStatus.PENDING.value))
    charge_snapshot: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    failure_reason: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    verified_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


# ---------------------------------------------------------------------------------------------------------
# orders

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PACKING = "packing"
    WAITING_FOR_PICKUP = "waiting-for-pickup"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class OrderType(str, enum.Enum):
    STANDARD = "standard"
    CUSTOM_DESIGN = "custom_design"


class OrderNumberSequence(SQLModel, table=True):
    """Each inserted row hands out one order number; ids never repeat."""
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())


class Orders(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    order_number: str = Field(sa_column=Column(String(40), nullable=False, unique=True, index=True))
    user_id: Optional[int] = Field(default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True))
    order_type: str = Field(default=OrderType.STANDARD.value,
        sa_column=Column(String(32), nullable=False, default=OrderType.STANDARD.value))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(32), nullable=False, index=True))
    payment_status: str = Field(default=OrderPaymentStatus.PENDING.value, sa_column=Column(String(16), nullable=False))
    payment_record_id: Optional[int] = Field(default=None,
        sa_column=Column(Integer, ForeignKey("paymentrecord.id", ondelete="RESTRICT"), nullable=True, unique=True))
    gateway_payment_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    design_request_id: Optional[int] = Field(default=None,
        sa_column=Column(Integer, ForeignKey("designrequest.id", ondelete="SET NULL"), nullable=True))
    promo_code_id: Optional[int] = Field(default=None,
        sa_column=Column(Integer, ForeignKey("promocode.id", ondelete="SET NULL"), nullable=True))
    currency: str = Field(default="INR", sa_column=Column(String(8), nullable=False, default="INR"))
    subtotal: Decimal = Field(sa_column=_money_column())
    discount_amount: Decimal = Field(default=Decimal("0"), sa_column=_money_column())
    total_amount: Decimal = Field(sa_column=_money_column())
    shipping_address: dict = Field(sa_column=Column(JSON, nullable=False))
    courier_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    tracking_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    tracking_url: Optional[str] = Field(default=None, sa_column=Column(String(1024), nullable=True))
    shipment_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    expected_delivery_date: Optional[date] = Field(default=None, sa_column=Column(Date, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))
    shipped_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    delivered_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class OrderItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: Optional[int] = Field(default=None,
        sa_column=Column(Integer, ForeignKey("product.id", ondelete="RESTRICT"), nullable=True))
    product_name: str = Field(sa_column=Column(String(255), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    unit_price_snapshot: Decimal = Field(sa_column=_money_column())
    line_total: Decimal = Field(sa_column=_money_column())


# ---------------------------------------------------------------------------------------------------------
# raw-material inventory

class LedgerAction(str, enum.Enum):
    ADD = "add"
    USE = "use"
    ADJUST = "adjust"


class UsageType(str, enum.Enum):
    PRODUCT_MANUFACTURING = "product_manufacturing"
    ORDER_FULFILLMENT = "order_fulfillment"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    DAMAGED = "damaged"
    SAMPLE = "sample"


class RawMaterial(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=_public_id_column())
    name: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    unit: str = Field(default="pcs", sa_column=Column(String(32), nullable=False, default="pcs"))
    quantity: Decimal = Field(sa_column=_money_column())
    min_quantity: Decimal = Field(default=Decimal("0"), sa_column=_money_column())
    availability: str = Field(default=Availability.AVAILABLE.value,
        sa_column=Column(String(32), nullable=False, default=Availability.AVAILABLE.value))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))


class RawMaterialUsage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    raw_material_id: int = Field(sa_column=Column(ForeignKey("rawmaterial.id", ondelete="CASCADE"), index=True, nullable=False))
    quantity_used: Decimal = Field(sa_column=_money_column())
    usage_type: str = Field(sa_column=Column(String(32), nullable=False))
    reference_note: Optional[str] = Field(default=None, sa_column=Column(String(1000), nullable=True))
    actor_id: int = Field(sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())


class RawMaterialLedger(SQLModel, table=True):
    """Append-only stock ledger, one row per quantity change."""
    id: Optional[int] = Field(default=None, primary_key=True)
    raw_material_id: int = Field(sa_column=Column(ForeignKey("rawmaterial.id", ondelete="RESTRICT"), index=True, nullable=False))
    action_type: str = Field(sa_column=Column(String(16), nullable=False, index=True))
    previous_quantity: Decimal = Field(sa_column=_money_column())
    quantity_change: Decimal = Field(sa_column=_money_column())
    new_quantity: Decimal = Field(sa_column=_money_column())
    note: Optional[str] = Field(default=None, sa_column=Column(String(1000), nullable=True))
    actor_id: int = Field(sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())


@event.listens_for(RawMaterialLedger, "before_update")
@event.listens_for(RawMaterialLedger, "before_delete")
def _ledger_is_append_only(mapper, connection, target):
    raise RuntimeError("raw material ledger entries are immutable")


# ---------------------------------------------------------------------------------------------------------

class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True, index=True))
    action_type: str = Field(sa_column=Column(String(64), nullable=False))
    entity_type: str = Field(sa_column=Column(String(64), nullable=False))
    entity_id: str = Field(sa_column=Column(String(64), nullable=False))
    description: Optional[str] = Field(default=None, sa_column=Column(String(1000), nullable=True))
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=_created_at_column())

    __table_args__ = (
        Index("ix_activitylog_entity", "entity_type", "entity_id"),
    )
