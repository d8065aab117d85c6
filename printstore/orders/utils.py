from datetime import datetime
from printstore.orders.constants import ORDER_NUMBER_PAD
from printstore.schema.full_schema import Address


def format_order_number(prefix: str, allocated_id: int, at: datetime) -> str:
    return f"{prefix}-{at:%Y%m%d}-{allocated_id:0{ORDER_NUMBER_PAD}d}"


def address_snapshot(address: Address) -> dict:
    return {
        "full_name": address.full_name,
        "phone": address.phone,
        "address_line1": address.line1,
        "address_line2": address.line2,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }
