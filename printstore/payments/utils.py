import hashlib
import hmac
from printstore.payments.constants import RECEIPT_ID_CHARS, RECEIPT_PREFIXES


def expected_checkout_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_checkout_signature(gateway_order_id: str, gateway_payment_id: str, signature: str, secret: str) -> bool:
    if not (gateway_order_id and gateway_payment_id and signature):
        return False
    expected = expected_checkout_signature(gateway_order_id, gateway_payment_id, secret)
    return hmac.compare_digest(expected, signature)


def build_receipt(source_type: str, source_entity_id) -> str:
    prefix = RECEIPT_PREFIXES[source_type]
    return f"{prefix}_{source_entity_id.hex[:RECEIPT_ID_CHARS]}"
