import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional
from printstore.auth.dependencies import RequestIdentity
from printstore.common.custom_exceptions import InsufficientStock, InvalidQuantity, NotFound, ValidationError
from printstore.common.utils import quantize_money
from printstore.inventory.constants import DEFAULT_LEDGER_PAGE, MAX_LEDGER_PAGE, logger
from printstore.inventory.repository import (insert_ledger_entry, insert_usage, ledger_entries, ledger_totals,
                                             lock_material, material_by_public_id, materials_at_or_below_minimum,
                                             set_material_quantity)
from printstore.inventory.utils import derive_availability, ledger_entry_view, material_view
from printstore.schema.full_schema import LedgerAction, UsageType


def _positive_amount(value) -> Decimal:
    try:
        amount = quantize_money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantity(details={"quantity": str(value)})
    if amount <= 0:
        raise InvalidQuantity(details={"quantity": str(value)})
    return amount


async def _locked_material(session, raw_material_id: uuid.UUID):
    material = await lock_material(session, raw_material_id)
    if material is None:
        raise NotFound("raw material not found", details={"raw_material_id": str(raw_material_id)})
    return material


async def _apply_change(session, identity: RequestIdentity, material, action: LedgerAction,
                        quantity_change: Decimal, note: Optional[str], outbox=None) -> dict:
    """Ledger row plus guarded quantity update, committed together."""
    previous = quantize_money(material.quantity)
    new_quantity = quantize_money(previous + quantity_change)
    availability = derive_availability(new_quantity, material.min_quantity)

    entry = await insert_ledger_entry(session, material.id, action.value, previous, quantity_change,
                                      new_quantity, note, identity.user_id)
    if not await set_material_quantity(session, material.id, previous, new_quantity, availability.value):
        raise InsufficientStock("raw material changed concurrently, retry", retryable=True,
                                details={"raw_material_id": str(material.public_id)})
    await session.commit()

    view = material_view(material)
    view.update(quantity=str(new_quantity), availability=availability.value)
    logger.info("inventory.ledger_appended", extra={
        "raw_material_id": str(material.public_id), "action_type": action.value,
        "quantity_change": str(quantity_change), "new_quantity": str(new_quantity),
    })
    if outbox is not None:
        outbox.emit({
            "actor_id": identity.user_id,
            "action_type": f"raw_material_{action.value}",
            "entity_type": "raw_material",
            "entity_id": str(material.public_id),
            "description": f"{material.name}: {previous} -> {new_quantity}",
            "details": {"ledger_entry_id": entry.id, "note": note},
        })
    return {"material": view, "ledger_entry": ledger_entry_view(entry)}


async def record_usage(session, identity: RequestIdentity, raw_material_id: uuid.UUID, quantity_used,
                       usage_type: UsageType, note: Optional[str] = None, outbox=None) -> dict:
    quantity_used = _positive_amount(quantity_used)
    try:
        material = await _locked_material(session, raw_material_id)
        current = quantize_money(material.quantity)
        if quantity_used > current:
            raise InsufficientStock(
                f"only {current} {material.unit} of {material.name} left",
                details={"requested": str(quantity_used), "available": str(current)},
            )

        await insert_usage(session, material.id, quantity_used, usage_type.value, note, identity.user_id)
        return await _apply_change(session, identity, material, LedgerAction.USE, -quantity_used,
                                   note or usage_type.value, outbox)
    except Exception:
        await session.rollback()
        raise


async def restock(session, identity: RequestIdentity, raw_material_id: uuid.UUID, quantity_added,
                  note: Optional[str] = None, outbox=None) -> dict:
    quantity_added = _positive_amount(quantity_added)
    try:
        material = await _locked_material(session, raw_material_id)
        return await _apply_change(session, identity, material, LedgerAction.ADD, quantity_added, note, outbox)
    except Exception:
        await session.rollback()
        raise


async def adjust(session, identity: RequestIdentity, raw_material_id: uuid.UUID, new_quantity,
                 note: str, outbox=None) -> dict:
    if not note or not note.strip():
        raise ValidationError("a note is required for stock adjustments")
    try:
        target = quantize_money(new_quantity)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantity(details={"quantity": str(new_quantity)})
    if target < 0:
        raise InvalidQuantity("quantity cannot be negative", details={"quantity": str(new_quantity)})

    try:
        material = await _locked_material(session, raw_material_id)
        delta = target - quantize_money(material.quantity)
        return await _apply_change(session, identity, material, LedgerAction.ADJUST, delta, note.strip(), outbox)
    except Exception:
        await session.rollback()
        raise


async def list_ledger(session, raw_material_id: uuid.UUID, action_type: Optional[LedgerAction] = None,
                      limit: int = DEFAULT_LEDGER_PAGE) -> dict:
    material = await material_by_public_id(session, raw_material_id)
    if material is None:
        raise NotFound("raw material not found", details={"raw_material_id": str(raw_material_id)})

    limit = max(1, min(int(limit), MAX_LEDGER_PAGE))
    entries = await ledger_entries(session, material.id, action_type.value if action_type else None, limit)
    return {"material": material_view(material), "entries": [ledger_entry_view(e) for e in entries]}


async def ledger_balance(session, raw_material_id: uuid.UUID) -> dict:
    """Rebuild the balance from the ledger and compare it with the stored quantity."""
    material = await material_by_public_id(session, raw_material_id)
    if material is None:
        raise NotFound("raw material not found", details={"raw_material_id": str(raw_material_id)})

    current = quantize_money(material.quantity)
    total_change, count, opening = await ledger_totals(session, material.id)
    opening = quantize_money(opening) if opening is not None else current
    rebuilt = quantize_money(opening + total_change) if count else current

    if rebuilt != current:
        logger.warning("inventory.ledger_mismatch", extra={
            "raw_material_id": str(material.public_id), "ledger": str(rebuilt), "stored": str(current),
        })
    return {
        "raw_material_id": str(material.public_id),
        "opening_quantity": str(opening),
        "ledger_change": str(total_change),
        "ledger_quantity": str(rebuilt),
        "stored_quantity": str(current),
        "entries": count,
        "consistent": rebuilt == current,
    }


async def low_stock_materials(session) -> list:
    materials = await materials_at_or_below_minimum(session)
    return [material_view(m) for m in materials]
