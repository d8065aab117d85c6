import uuid
from decimal import Decimal
from typing import List, Optional
from uuid6 import uuid7
from printstore.auth.dependencies import RequestIdentity
from printstore.common.custom_exceptions import (AmountTooSmall, InsufficientStock, InvalidQuantity,
                                                 NotFound, PaymentPreconditionFailed, ValidationError)
from printstore.common.utils import now, quantize_money
from printstore.config.settings import config_settings
from printstore.design_requests.repository import design_request_by_public_id
from printstore.design_requests.utils import payability_problem
from printstore.pricing.constants import CUSTOM_DESIGN_LINE_NAME, logger
from printstore.pricing.repository import cart_lines_for_user, product_by_public_id, products_by_ids, promo_by_public_id
from printstore.pricing.utils import ZERO, ChargeLine, ChargeQuote, build_totals, compute_discount, promo_is_applicable
from printstore.schema.full_schema import Availability, PaymentSource


def _ensure_minimum(amount_minor: int):
    if amount_minor < config_settings.MIN_CHARGE_MINOR_UNITS:
        raise AmountTooSmall(details={"amount_minor": amount_minor,
                                      "minimum_minor": config_settings.MIN_CHARGE_MINOR_UNITS})


def _check_stock(product, quantity: int):
    if product.availability == Availability.OUT_OF_STOCK.value or product.stock_qty < quantity:
        raise InsufficientStock(
            f"not enough stock for {product.name}",
            details={"product_id": str(product.public_id), "requested": quantity, "available": product.stock_qty},
        )


async def _resolve_promo(session, promo_code_id, subtotal: Decimal):
    """(promo row id, discount). Any unusable promo degrades to no discount."""
    if promo_code_id is None:
        return None, ZERO

    promo = await promo_by_public_id(session, promo_code_id)
    if not promo_is_applicable(promo, subtotal, now()):
        logger.info("pricing.promo_not_applied", extra={"promo_code_id": str(promo_code_id)})
        return None, ZERO

    discount = compute_discount(promo.discount_type, promo.discount_value, subtotal, promo.max_discount_amount)
    return promo.id, discount


async def compute_charge(session, identity: RequestIdentity, mode: PaymentSource,
                         product_id: Optional[uuid.UUID] = None, quantity: Optional[int] = None,
                         promo_code_id: Optional[uuid.UUID] = None) -> ChargeQuote:

    if mode == PaymentSource.CART:
        requested = await cart_lines_for_user(session, identity.user_id)
        if not requested:
            raise ValidationError("cart is empty")
        source_entity_id = uuid7()
    elif mode == PaymentSource.SINGLE:
        if product_id is None:
            raise ValidationError("product_id is required for single item checkout")
        product = await product_by_public_id(session, product_id)
        if product is None:
            raise NotFound("product not found", details={"product_id": str(product_id)})
        requested = [{"product_id": product.id, "quantity": 1 if quantity is None else quantity}]
        source_entity_id = product.public_id
    else:
        raise ValidationError(f"unsupported checkout mode {mode}")

    for it in requested:
        if it["quantity"] is None or int(it["quantity"]) < 1:
            raise InvalidQuantity(details={"quantity": it["quantity"]})

    products = await products_by_ids(session, [it["product_id"] for it in requested])

    lines: List[ChargeLine] = []
    for it in requested:
        product = products.get(it["product_id"])
        if product is None:
            raise NotFound("product not found", details={"product_id": it["product_id"]})
        qty = int(it["quantity"])
        _check_stock(product, qty)

        unit_price = quantize_money(product.price)
        lines.append(ChargeLine(
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            unit_price=unit_price,
            line_total=quantize_money(unit_price * qty),
        ))

    subtotal, _, _, _ = build_totals(lines, ZERO)
    promo_row_id, discount = await _resolve_promo(session, promo_code_id, subtotal)
    subtotal, discount, total, amount_minor = build_totals(lines, discount)

    _ensure_minimum(amount_minor)

    logger.debug("pricing.charge_computed", extra={
        "mode": mode.value, "lines": len(lines), "amount_minor": amount_minor,
    })
    return ChargeQuote(
        source=mode,
        source_entity_id=source_entity_id,
        lines=lines,
        subtotal=subtotal,
        discount=discount,
        total=total,
        amount_minor=amount_minor,
        currency=config_settings.PAYMENT_CURRENCY,
        promo_code_id=promo_row_id,
    )


async def quote_design_request(session, identity: RequestIdentity, design_request_id: uuid.UUID) -> ChargeQuote:
    dr = await design_request_by_public_id(session, design_request_id)
    if dr is None or dr.user_id != identity.user_id:
        raise NotFound("design request not found", details={"design_request_id": str(design_request_id)})

    problem = payability_problem(dr)
    if problem:
        raise PaymentPreconditionFailed(problem, details={"design_request_id": str(design_request_id)})

    final_amount = quantize_money(dr.final_amount)
    qty = max(int(dr.quantity or 1), 1)
    line = ChargeLine(
        product_id=None,
        product_name=CUSTOM_DESIGN_LINE_NAME,
        quantity=qty,
        unit_price=quantize_money(final_amount / qty),
        line_total=final_amount,
    )
    subtotal, discount, total, amount_minor = build_totals([line], ZERO)
    _ensure_minimum(amount_minor)

    return ChargeQuote(
        source=PaymentSource.DESIGN_REQUEST,
        source_entity_id=dr.public_id,
        lines=[line],
        subtotal=subtotal,
        discount=discount,
        total=total,
        amount_minor=amount_minor,
        currency=config_settings.PAYMENT_CURRENCY,
        design_request_id=dr.id,
    )
