import uuid
from typing import List, Optional
from printstore.common.custom_exceptions import NotFound
from printstore.orders.constants import ORDER_STATUS_DISPLAY, UNKNOWN_CUSTOMER_NAME, logger
from printstore.orders.repository import items_for_order, order_by_public_id
from printstore.schema.full_schema import OrderItem, OrderPaymentStatus, Orders, OrderStatus, OrderType


def mask_customer_name(full_name: Optional[str]) -> str:
    parts = (full_name or "").split()
    if not parts:
        return UNKNOWN_CUSTOMER_NAME
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]} {parts[-1][0]}."


def coarse_location(address: Optional[dict]) -> Optional[str]:
    address = address or {}
    parts = [p for p in (address.get("city"), address.get("state")) if p]
    return ", ".join(parts) or None


def status_view(status: str) -> dict:
    # unknown values fall back to the initial status rather than failing the page
    try:
        st = OrderStatus(status)
    except ValueError:
        st = OrderStatus.PENDING
    label, color, icon = ORDER_STATUS_DISPLAY[st]
    return {"code": st.value, "label": label, "color": color, "icon": icon}


def _iso(value):
    return value.isoformat() if value is not None else None


def project_order_status(order: Orders, items: List[OrderItem]) -> dict:
    """Public, privacy-redacted view of an order. Pure; no phone, no street address."""
    products = [{"name": it.product_name, "quantity": it.quantity} for it in items]
    return {
        "orderId": str(order.public_id),
        "orderNumber": order.order_number,
        "customerName": mask_customer_name((order.shipping_address or {}).get("full_name")),
        "location": coarse_location(order.shipping_address),
        "status": status_view(order.status),
        "courier": {
            "name": order.courier_name,
            "trackingId": order.tracking_id,
            "trackingUrl": order.tracking_url,
        },
        "dates": {
            "ordered": _iso(order.created_at),
            "shipped": _iso(order.shipped_at),
            "expectedDelivery": _iso(order.expected_delivery_date),
            "delivered": _iso(order.delivered_at),
        },
        "products": products,
        "totalItems": sum(it.quantity for it in items),
        # orders placed as cash on delivery by the storefront stay unpaid until staff confirm collection
        "paymentMode": "Prepaid" if order.payment_status == OrderPaymentStatus.PAID.value else "Cash on Delivery",
        "isCustomDesign": order.order_type == OrderType.CUSTOM_DESIGN.value,
    }


async def verify_order_status(session, order_id: uuid.UUID) -> dict:
    order = await order_by_public_id(session, order_id)
    if order is None:
        logger.info("order.verify.not_found", extra={"order_public_id": str(order_id)})
        raise NotFound("order not found")
    items = await items_for_order(session, order.id)
    return project_order_status(order, items)
