from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func, select, update
from printstore.common.utils import now, quantize_money
from printstore.schema.full_schema import RawMaterial, RawMaterialLedger, RawMaterialUsage


async def material_by_public_id(session, material_pid) -> Optional[RawMaterial]:
    stmt = (
        select(RawMaterial)
        .where(RawMaterial.public_id == material_pid)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def lock_material(session, material_pid) -> Optional[RawMaterial]:
    stmt = (
        select(RawMaterial)
        .where(RawMaterial.public_id == material_pid)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def insert_usage(session, material_id: int, quantity_used: Decimal, usage_type: str,
                       note: Optional[str], actor_id: int) -> RawMaterialUsage:
    usage = RawMaterialUsage(raw_material_id=material_id, quantity_used=quantity_used,
                             usage_type=usage_type, reference_note=note, actor_id=actor_id)
    session.add(usage)
    await session.flush()
    return usage


async def insert_ledger_entry(session, material_id: int, action_type: str, previous_quantity: Decimal,
                              quantity_change: Decimal, new_quantity: Decimal, note: Optional[str],
                              actor_id: int) -> RawMaterialLedger:
    entry = RawMaterialLedger(raw_material_id=material_id, action_type=action_type,
                              previous_quantity=previous_quantity, quantity_change=quantity_change,
                              new_quantity=new_quantity, note=note, actor_id=actor_id)
    session.add(entry)
    await session.flush()
    return entry


async def set_material_quantity(session, material_id: int, expected_quantity: Decimal,
                                new_quantity: Decimal, availability: str) -> bool:
    """Compare-and-set; False when the quantity moved since it was read."""
    stmt = (
        update(RawMaterial)
        .where(RawMaterial.id == material_id, RawMaterial.quantity == expected_quantity)
        .values(quantity=new_quantity, availability=availability, updated_at=now())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def ledger_entries(session, material_id: int, action_type: Optional[str], limit: int) -> List[RawMaterialLedger]:
    stmt = select(RawMaterialLedger).where(RawMaterialLedger.raw_material_id == material_id)
    if action_type is not None:
        stmt = stmt.where(RawMaterialLedger.action_type == action_type)
    stmt = stmt.order_by(RawMaterialLedger.id.desc()).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def ledger_totals(session, material_id: int):
    """(sum of changes, entry count, previous_quantity of the first entry)."""
    stmt = select(func.coalesce(func.sum(RawMaterialLedger.quantity_change), 0),
                  func.count(RawMaterialLedger.id)).where(RawMaterialLedger.raw_material_id == material_id)
    res = await session.execute(stmt)
    total, count = res.one()

    first_stmt = (
        select(RawMaterialLedger.previous_quantity)
        .where(RawMaterialLedger.raw_material_id == material_id)
        .order_by(RawMaterialLedger.id.asc())
        .limit(1)
    )
    first = await session.execute(first_stmt)
    return quantize_money(Decimal(str(total))), int(count), first.scalar_one_or_none()


async def materials_at_or_below_minimum(session) -> List[RawMaterial]:
    stmt = (
        select(RawMaterial)
        .where(RawMaterial.quantity <= RawMaterial.min_quantity)
        .order_by(RawMaterial.quantity.asc(), RawMaterial.name.asc())
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())
