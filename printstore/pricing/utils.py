import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from printstore.common.utils import as_utc, quantize_money, to_minor_units
from printstore.schema.full_schema import DiscountType, PaymentSource, PromoCode

ZERO = Decimal("0")


@dataclass(frozen=True)
class ChargeLine:
    product_id: Optional[int]
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    def to_snapshot(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
        }


@dataclass(frozen=True)
class ChargeQuote:
    """Authoritative amounts for one checkout, computed from stored rows only."""
    source: PaymentSource
    source_entity_id: uuid.UUID
    lines: List[ChargeLine]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    amount_minor: int
    currency: str
    promo_code_id: Optional[int] = None
    design_request_id: Optional[int] = None

    def to_snapshot(self) -> dict:
        return {
            "source": self.source.value,
            "source_entity_id": str(self.source_entity_id),
            "lines": [ln.to_snapshot() for ln in self.lines],
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "promo_code_id": self.promo_code_id,
        }


def promo_is_applicable(promo: Optional[PromoCode], subtotal: Decimal, at: datetime) -> bool:
    if promo is None or not promo.is_active:
        return False
    expires_at = as_utc(promo.expires_at)
    if expires_at is not None and expires_at <= at:
        return False
    if promo.used_count >= promo.max_uses:
        return False
    if promo.min_order_amount is not None and subtotal < Decimal(promo.min_order_amount):
        return False
    return True


def compute_discount(discount_type: str, discount_value, subtotal: Decimal,
                     max_discount_amount=None) -> Decimal:
    """Discount for an already-applicable promo, clamped to [0, subtotal]."""
    value = Decimal(discount_value)
    if discount_type == DiscountType.PERCENTAGE.value:
        discount = subtotal * value / Decimal(100)
        if max_discount_amount is not None:
            discount = min(discount, Decimal(max_discount_amount))
    elif discount_type == DiscountType.FLAT.value:
        discount = value
    else:
        discount = ZERO

    discount = max(ZERO, min(discount, subtotal))
    return quantize_money(discount)


def build_totals(lines: List[ChargeLine], discount: Decimal):
    subtotal = quantize_money(sum((ln.line_total for ln in lines), ZERO))
    discount = quantize_money(max(ZERO, min(discount, subtotal)))
    total = quantize_money(subtotal - discount)
    return subtotal, discount, total, to_minor_units(total)
