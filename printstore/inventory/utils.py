from decimal import Decimal
from printstore.common.utils import quantize_money
from printstore.schema.full_schema import Availability, RawMaterial, RawMaterialLedger


def derive_availability(quantity, min_quantity) -> Availability:
    quantity = Decimal(quantity)
    if quantity <= 0:
        return Availability.OUT_OF_STOCK
    if quantity <= Decimal(min_quantity):
        return Availability.LOW_STOCK
    return Availability.AVAILABLE


def material_view(material: RawMaterial) -> dict:
    return {
        "id": str(material.public_id),
        "name": material.name,
        "unit": material.unit,
        "quantity": str(quantize_money(material.quantity)),
        "min_quantity": str(quantize_money(material.min_quantity)),
        "availability": material.availability,
    }


def ledger_entry_view(entry: RawMaterialLedger) -> dict:
    return {
        "id": entry.id,
        "action_type": entry.action_type,
        "previous_quantity": str(quantize_money(entry.previous_quantity)),
        "quantity_change": str(quantize_money(entry.quantity_change)),
        "new_quantity": str(quantize_money(entry.new_quantity)),
        "note": entry.note,
        "actor_id": entry.actor_id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
