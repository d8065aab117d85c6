import uuid
from typing import Optional
from metrics.custom_instrumentator import payment_verifications_total
from printstore.auth.dependencies import RequestIdentity
from printstore.common.custom_exceptions import (Forbidden, InsufficientStock, InternalError, NotFound,
                                                 PaymentPreconditionFailed, PromoInvalid, SignatureMismatch,
                                                 ValidationError)
from printstore.orders.repository import address_id_by_public_id
from printstore.orders.services import MaterializedOrder, get_order_by_payment_record, materialize_order
from printstore.payments.constants import logger
from printstore.payments.gateway import RazorpayGateway
from printstore.payments.repository import (insert_payment_record, mark_payment_record_failed,
                                            payment_record_by_gateway_order_id)
from printstore.payments.utils import build_receipt, verify_checkout_signature
from printstore.pricing.services import compute_charge, quote_design_request
from printstore.pricing.utils import ChargeQuote
from printstore.schema.full_schema import PaymentRecordStatus, PaymentSource

# failures after money was captured; the record is closed as failed for refund reconciliation
_CAPTURED_BUT_UNFULFILLABLE = (PaymentPreconditionFailed, InsufficientStock, PromoInvalid)


async def open_payment_intent(session, gateway: RazorpayGateway, identity: RequestIdentity, quote: ChargeQuote,
                              address_id: Optional[uuid.UUID] = None) -> dict:
    address_row_id = None
    if address_id is not None:
        address_row_id = await address_id_by_public_id(session, identity.user_id, address_id)
        if address_row_id is None:
            raise NotFound("address not found", details={"address_id": str(address_id)})

    receipt = build_receipt(quote.source.value, quote.source_entity_id)
    notes = {
        "owner_id": str(identity.user_public_id),
        "entity_type": quote.source.value,
        "entity_id": str(quote.source_entity_id),
    }

    # nothing is written unless the gateway accepted the order
    gw_resp = await gateway.create_order(quote.amount_minor, quote.currency, receipt, notes)
    gateway_order_id = gw_resp["id"]

    record = await insert_payment_record(
        session,
        gateway_order_id=gateway_order_id,
        provider=gateway.provider,
        user_id=identity.user_id,
        source_type=quote.source.value,
        design_request_id=quote.design_request_id,
        address_id=address_row_id,
        promo_code_id=quote.promo_code_id,
        amount=quote.total,
        amount_minor=quote.amount_minor,
        currency=quote.currency,
        status=PaymentRecordStatus.PENDING.value,
        charge_snapshot=quote.to_snapshot(),
    )
    await session.commit()

    logger.info("payment.intent_opened", extra={
        "payment_public_id": str(record.public_id), "source": quote.source.value, "amount_minor": quote.amount_minor,
    })
    return {
        "gateway_order_id": gateway_order_id,
        "amount": quote.amount_minor,
        "currency": quote.currency,
        "subtotal": str(quote.subtotal),
        "discount": str(quote.discount),
        "total": str(quote.total),
        "key_id": gateway.key_id,
    }


async def create_checkout_payment(session, gateway: RazorpayGateway, identity: RequestIdentity,
                                  mode: PaymentSource, product_id: Optional[uuid.UUID] = None,
                                  quantity: Optional[int] = None, promo_code_id: Optional[uuid.UUID] = None,
                                  address_id: Optional[uuid.UUID] = None) -> dict:
    quote = await compute_charge(session, identity, mode, product_id=product_id, quantity=quantity,
                                 promo_code_id=promo_code_id)
    return await open_payment_intent(session, gateway, identity, quote, address_id=address_id)


async def create_design_payment(session, gateway: RazorpayGateway, identity: RequestIdentity,
                                design_request_id: uuid.UUID, address_id: Optional[uuid.UUID] = None) -> dict:
    quote = await quote_design_request(session, identity, design_request_id)
    return await open_payment_intent(session, gateway, identity, quote, address_id=address_id)


async def verify_payment(session, identity: RequestIdentity, outbox, gateway_order_id: str,
                         gateway_payment_id: str, signature: str, secret: str,
                         source_entity_id: Optional[uuid.UUID] = None) -> dict:

    if not verify_checkout_signature(gateway_order_id, gateway_payment_id, signature, secret):
        payment_verifications_total.labels(result="signature_mismatch").inc()
        logger.warning("payment.verify.signature_mismatch", extra={"gateway_order_id": gateway_order_id})
        raise SignatureMismatch()

    record = await payment_record_by_gateway_order_id(session, gateway_order_id)
    if record is None:
        raise NotFound("payment not found", details={"gateway_order_id": gateway_order_id})
    if record.user_id != identity.user_id:
        logger.warning("payment.verify.owner_mismatch", extra={"gateway_order_id": gateway_order_id})
        raise Forbidden("payment belongs to another user")

    if source_entity_id is not None and str(source_entity_id) != record.charge_snapshot.get("source_entity_id"):
        raise ValidationError("payment does not belong to the given entity")

    record_id = record.id

    if record.status == PaymentRecordStatus.SUCCESS.value:
        existing = await get_order_by_payment_record(session, record_id)
        if existing is None:
            raise InternalError("payment succeeded but its order is missing")
        payment_verifications_total.labels(result="replayed").inc()
        logger.info("payment.verify.replay", extra={"gateway_order_id": gateway_order_id})
        return MaterializedOrder(existing.public_id, existing.order_number, existing.total_amount,
                                 replayed=True).to_response()

    if record.status == PaymentRecordStatus.FAILED.value:
        raise PaymentPreconditionFailed("payment was already closed as failed",
                                        details={"reason": record.failure_reason})

    try:
        result = await materialize_order(session, identity, record, gateway_payment_id, outbox)
    except _CAPTURED_BUT_UNFULFILLABLE as exc:
        await mark_payment_record_failed(session, record_id, gateway_payment_id, f"{exc.code}: {exc.message}")
        await session.commit()
        payment_verifications_total.labels(result="failed").inc()
        logger.error("payment.verify.captured_unfulfillable", extra={
            "gateway_order_id": gateway_order_id, "error_code": exc.code,
        })
        raise

    payment_verifications_total.labels(result="replayed" if result.replayed else "materialized").inc()
    return result.to_response()
