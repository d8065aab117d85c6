from printstore.common.logging_setup import get_logger
from printstore.schema.full_schema import OrderStatus

logger = get_logger("printstore.orders")

ORDER_NUMBER_PAD = 6

# label, color, icon shown on the public order tracking page
ORDER_STATUS_DISPLAY = {
    OrderStatus.PENDING: ("Order Placed", "#f59e0b", "⏳"),
    OrderStatus.CONFIRMED: ("Order Confirmed", "#3b82f6", "✅"),
    OrderStatus.PACKING: ("Packing", "#8b5cf6", "📦"),
    OrderStatus.WAITING_FOR_PICKUP: ("Ready for Pickup", "#f97316", "🏪"),
    OrderStatus.SHIPPED: ("Shipped", "#6366f1", "🚚"),
    OrderStatus.OUT_FOR_DELIVERY: ("Out for Delivery", "#06b6d4", "🛵"),
    OrderStatus.DELIVERED: ("Delivered", "#22c55e", "✅"),
    OrderStatus.CANCELLED: ("Cancelled", "#ef4444", "❌"),
}

UNKNOWN_CUSTOMER_NAME = "Customer"
