import contextvars
from decimal import Decimal
from typing import Optional

# Context variables for request and trace id
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

MONEY_QUANT = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100
