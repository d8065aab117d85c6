from decimal import Decimal
from typing import Optional
from pydantic import BaseModel
from printstore.schema.full_schema import UsageType


class UsageIn(BaseModel):
    quantity_used: Decimal
    reason: UsageType
    note: Optional[str] = None


class RestockIn(BaseModel):
    quantity_added: Decimal
    note: Optional[str] = None


class AdjustIn(BaseModel):
    new_quantity: Decimal
    note: str
