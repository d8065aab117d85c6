import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.exc import IntegrityError
from printstore.auth.dependencies import RequestIdentity
from printstore.common.custom_exceptions import (InsufficientStock, PaymentPreconditionFailed, PromoInvalid,
                                                 ValidationError)
from printstore.common.utils import now, quantize_money
from printstore.config.settings import config_settings
from printstore.design_requests.repository import lock_design_request, mark_design_request_paid
from printstore.design_requests.utils import payability_problem
from printstore.orders.constants import logger
from printstore.orders.repository import (address_for_order, allocate_order_number_id, clear_cart,
                                          decrement_product_stock, insert_order, insert_order_items,
                                          order_by_payment_record, redeem_promo)
from printstore.orders.utils import address_snapshot, format_order_number
from printstore.payments.repository import claim_payment_record
from printstore.schema.full_schema import (OrderPaymentStatus, Orders, OrderStatus, OrderType, PaymentRecord,
                                           PaymentSource)


@dataclass(frozen=True)
class MaterializedOrder:
    order_id: uuid.UUID
    order_number: str
    total_amount: Decimal
    replayed: bool = False

    def to_response(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "total_amount": str(quantize_money(self.total_amount)),
            "replayed": self.replayed,
        }


def _as_replay(order: Orders) -> MaterializedOrder:
    return MaterializedOrder(order.public_id, order.order_number, order.total_amount, replayed=True)


async def get_order_by_payment_record(session, payment_record_id: int) -> Optional[Orders]:
    return await order_by_payment_record(session, payment_record_id)


async def _recheck_design_request(session, design_request_id: Optional[int], owner_id: int, paid_amount: Decimal):
    dr = await lock_design_request(session, design_request_id) if design_request_id else None
    if dr is None or dr.user_id != owner_id:
        raise PaymentPreconditionFailed("design request not found for this payment")

    problem = payability_problem(dr)
    if problem:
        raise PaymentPreconditionFailed(problem, details={"design_request_id": str(dr.public_id)})

    if quantize_money(dr.final_amount) != quantize_money(paid_amount):
        raise PaymentPreconditionFailed("final amount changed after the payment was opened",
                                        details={"design_request_id": str(dr.public_id)})


async def materialize_order(session, identity: RequestIdentity, record: PaymentRecord,
                            gateway_payment_id: str, outbox=None) -> MaterializedOrder:
    """
    Turn a verified payment into exactly one order.

    Everything from the payment claim to the stock / promo / source updates
    commits together or not at all. A payment that was already claimed, or an
    order that already exists for it, is returned as a replay instead.
    """
    # rollback expires ORM state, keep plain values around
    record_id = record.id
    owner_id = record.user_id
    source = PaymentSource(record.source_type)
    design_request_id = record.design_request_id
    promo_code_id = record.promo_code_id
    address_id = record.address_id
    currency = record.currency
    paid_amount = record.amount
    snapshot = dict(record.charge_snapshot)
    lines = list(snapshot.get("lines") or [])

    try:
        # claim first: a caller that loses the claim must see the winner's order, not the paid design request
        claimed = await claim_payment_record(session, record_id, gateway_payment_id)
        if not claimed:
            await session.rollback()
            existing = await order_by_payment_record(session, record_id)
            if existing is None:
                raise PaymentPreconditionFailed("payment is no longer pending")
            logger.info("order.materialize.replay", extra={"payment_record_id": record_id})
            return _as_replay(existing)

        if source == PaymentSource.DESIGN_REQUEST:
            await _recheck_design_request(session, design_request_id, owner_id, paid_amount)

        at = now()
        seq_id = await allocate_order_number_id(session)
        order_number = format_order_number(config_settings.ORDER_NUMBER_PREFIX, seq_id, at)

        address = await address_for_order(session, owner_id, address_id)
        if address is None:
            raise ValidationError("no shipping address on file")

        order = await insert_order(
            session,
            order_number=order_number,
            user_id=owner_id,
            order_type=(OrderType.CUSTOM_DESIGN.value if source == PaymentSource.DESIGN_REQUEST
                        else OrderType.STANDARD.value),
            status=OrderStatus.CONFIRMED.value,
            payment_status=OrderPaymentStatus.PAID.value,
            payment_record_id=record_id,
            gateway_payment_id=gateway_payment_id,
            design_request_id=design_request_id,
            promo_code_id=promo_code_id,
            currency=currency,
            subtotal=Decimal(snapshot["subtotal"]),
            discount_amount=Decimal(snapshot["discount"]),
            total_amount=Decimal(snapshot["total"]),
            shipping_address=address_snapshot(address),
            created_at=at,
            updated_at=at,
        )
        await insert_order_items(session, order.id, lines)

        if source == PaymentSource.DESIGN_REQUEST:
            if not await mark_design_request_paid(session, design_request_id):
                raise PaymentPreconditionFailed("design request changed during payment")
        else:
            for ln in lines:
                ok = await decrement_product_stock(session, ln["product_id"], int(ln["quantity"]),
                                                   config_settings.PRODUCT_LOW_STOCK_QUANTITY)
                if not ok:
                    raise InsufficientStock(f"not enough stock for {ln['product_name']}",
                                            details={"requested": int(ln["quantity"])})
            if promo_code_id is not None and not await redeem_promo(session, promo_code_id):
                raise PromoInvalid()
            if source == PaymentSource.CART:
                await clear_cart(session, owner_id)

        result = MaterializedOrder(order.public_id, order.order_number, order.total_amount)
        await session.commit()

    except IntegrityError:
        await session.rollback()
        existing = await order_by_payment_record(session, record_id)
        if existing is None:
            raise
        logger.info("order.materialize.replay_on_conflict", extra={"payment_record_id": record_id})
        return _as_replay(existing)
    except Exception:
        await session.rollback()
        raise

    logger.info("order.materialized", extra={
        "order_public_id": str(result.order_id), "order_number": result.order_number, "source": source.value,
    })
    if outbox is not None:
        outbox.emit({
            "actor_id": identity.user_id,
            "action_type": "order_created",
            "entity_type": "order",
            "entity_id": str(result.order_id),
            "description": f"Order {result.order_number} created from {source.value} payment",
            "details": {"payment_record_id": record_id, "total": str(result.total_amount)},
        })
    return result
