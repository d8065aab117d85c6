from typing import Optional
from printstore.schema.full_schema import DesignRequest, DesignRequestStatus


def payability_problem(dr: DesignRequest) -> Optional[str]:
    """Why a design request cannot be paid right now, or None when it can."""
    if dr.converted_to_order:
        return "design request already converted to an order"
    if not dr.price_locked:
        return "price is not locked yet"
    if dr.final_amount is None:
        return "final amount is not set"
    if dr.status != DesignRequestStatus.PAYMENT_PENDING.value:
        return f"design request is in status {dr.status}"
    return None
