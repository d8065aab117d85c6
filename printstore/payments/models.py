import uuid
from typing import Optional
from pydantic import BaseModel
from printstore.schema.full_schema import PaymentSource


class CheckoutIn(BaseModel):
    checkout_mode: PaymentSource = PaymentSource.CART
    product_id: Optional[uuid.UUID] = None
    quantity: Optional[int] = None
    promo_code_id: Optional[uuid.UUID] = None
    address_id: Optional[uuid.UUID] = None


class DesignPaymentIn(BaseModel):
    address_id: Optional[uuid.UUID] = None


class VerifyPaymentIn(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    source_entity_id: Optional[uuid.UUID] = None
