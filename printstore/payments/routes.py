import uuid
from typing import Optional
from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from printstore.auth.constants import Permission
from printstore.auth.dependencies import RequestIdentity, require_permission
from printstore.common.constants import request_id_ctx
from printstore.common.custom_exceptions import ValidationError
from printstore.common.utils import success_response
from printstore.db.dependencies import get_session
from printstore.audit.dependencies import get_audit_outbox
from printstore.payments.dependencies import get_gateway
from printstore.payments.gateway import RazorpayGateway
from printstore.payments.models import CheckoutIn, DesignPaymentIn, VerifyPaymentIn
from printstore.payments.services import create_checkout_payment, create_design_payment, verify_payment
from printstore.schema.full_schema import PaymentSource

payments_router = APIRouter()


@payments_router.post("/orders")
async def create_order(payload: CheckoutIn,
                       identity: RequestIdentity = Depends(require_permission(Permission.CHECKOUT)),
                       gateway: RazorpayGateway = Depends(get_gateway),
                       session: AsyncSession = Depends(get_session)):

    if payload.checkout_mode == PaymentSource.DESIGN_REQUEST:
        raise ValidationError("design requests are paid through /payments/design-requests/{id}")

    data = await create_checkout_payment(
        session, gateway, identity, payload.checkout_mode,
        product_id=payload.product_id,
        quantity=payload.quantity,
        promo_code_id=payload.promo_code_id,
        address_id=payload.address_id,
    )
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@payments_router.post("/design-requests/{design_request_id}")
async def create_design_request_payment(design_request_id: uuid.UUID,
                                        payload: Optional[DesignPaymentIn] = Body(None),
                                        identity: RequestIdentity = Depends(require_permission(Permission.CHECKOUT)),
                                        gateway: RazorpayGateway = Depends(get_gateway),
                                        session: AsyncSession = Depends(get_session)):

    address_id = payload.address_id if payload else None
    data = await create_design_payment(session, gateway, identity, design_request_id, address_id=address_id)
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@payments_router.post("/verify")
async def verify(payload: VerifyPaymentIn,
                 identity: RequestIdentity = Depends(require_permission(Permission.VERIFY_PAYMENT)),
                 gateway: RazorpayGateway = Depends(get_gateway),
                 outbox=Depends(get_audit_outbox),
                 session: AsyncSession = Depends(get_session)):

    data = await verify_payment(
        session, identity, outbox,
        payload.gateway_order_id, payload.gateway_payment_id, payload.signature,
        secret=gateway.key_secret,
        source_entity_id=payload.source_entity_id,
    )
    return success_response(data, request_id=request_id_ctx.get())
