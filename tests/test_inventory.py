from decimal import Decimal
import pytest
from sqlalchemy import func, select
from printstore.auth.constants import Role
from printstore.common.custom_exceptions import InsufficientStock, InvalidQuantity, NotFound, ValidationError
from printstore.db.connection import async_session
from printstore.inventory.services import (adjust, ledger_balance, list_ledger, low_stock_materials, record_usage,
                                           restock)
from printstore.inventory.utils import derive_availability
from printstore.schema.full_schema import (Availability, LedgerAction, RawMaterial, RawMaterialLedger,
                                           RawMaterialUsage, UsageType)


async def _count(model):
    async with async_session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
async def staff(factory):
    user = await factory.user(name="Store Staff", with_address=False)
    return factory.identity(user, Role.STAFF)


@pytest.mark.parametrize("quantity,min_quantity,expected", [
    ("0", "10", Availability.OUT_OF_STOCK),
    ("-1", "10", Availability.OUT_OF_STOCK),
    ("0.01", "10", Availability.LOW_STOCK),
    ("10", "10", Availability.LOW_STOCK),
    ("10.01", "10", Availability.AVAILABLE),
    ("1", "0", Availability.AVAILABLE),
])
def test_availability_boundaries(quantity, min_quantity, expected):
    assert derive_availability(Decimal(quantity), Decimal(min_quantity)) == expected


@pytest.mark.asyncio
async def test_using_everything_marks_out_of_stock(db_session, factory, staff):
    material = await factory.material(quantity="5", min_quantity="10", availability="low_stock")

    result = await record_usage(db_session, staff, material.public_id, 5, UsageType.ORDER_FULFILLMENT)

    assert result["material"]["quantity"] == "0.00"
    assert result["material"]["availability"] == "out_of_stock"
    entry = result["ledger_entry"]
    assert (entry["previous_quantity"], entry["quantity_change"], entry["new_quantity"]) == ("5.00", "-5.00", "0.00")
    assert entry["action_type"] == "use"

    stored = await factory.get(RawMaterial, material.id)
    assert stored.quantity == Decimal("0")
    assert stored.availability == "out_of_stock"


@pytest.mark.asyncio
async def test_usage_dropping_below_minimum_marks_low_stock(db_session, factory, staff):
    material = await factory.material(quantity="20", min_quantity="10")

    result = await record_usage(db_session, staff, material.public_id, 12, UsageType.PRODUCT_MANUFACTURING,
                                note="batch 42")

    assert result["material"]["quantity"] == "8.00"
    assert result["material"]["availability"] == "low_stock"
    assert await _count(RawMaterialUsage) == 1
    assert await _count(RawMaterialLedger) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_quantity", [0, -3, "abc"])
async def test_non_positive_usage_is_rejected(db_session, factory, staff, bad_quantity):
    material = await factory.material()

    with pytest.raises(InvalidQuantity):
        await record_usage(db_session, staff, material.public_id, bad_quantity, UsageType.DAMAGED)
    assert await _count(RawMaterialLedger) == 0


@pytest.mark.asyncio
async def test_overdraw_is_rejected_before_any_write(db_session, factory, staff):
    material = await factory.material(quantity="3", min_quantity="1")

    with pytest.raises(InsufficientStock):
        await record_usage(db_session, staff, material.public_id, 4, UsageType.SAMPLE)

    assert await _count(RawMaterialUsage) == 0
    assert await _count(RawMaterialLedger) == 0
    assert (await factory.get(RawMaterial, material.id)).quantity == Decimal("3")


@pytest.mark.asyncio
async def test_unknown_material(db_session, factory, staff):
    with pytest.raises(NotFound):
        await record_usage(db_session, staff, staff.user_public_id, 1, UsageType.SAMPLE)


@pytest.mark.asyncio
async def test_restock_and_adjust_keep_ledger_in_step(db_session, factory, staff):
    material = await factory.material(quantity="5", min_quantity="10", availability="low_stock")

    restocked = await restock(db_session, staff, material.public_id, 30, note="vendor invoice 118")
    assert restocked["material"]["quantity"] == "35.00"
    assert restocked["material"]["availability"] == "available"

    await record_usage(db_session, staff, material.public_id, "2.5", UsageType.DAMAGED)
    adjusted = await adjust(db_session, staff, material.public_id, 31, note="stock count")
    assert adjusted["ledger_entry"]["quantity_change"] == "-1.50"
    assert adjusted["ledger_entry"]["action_type"] == "adjust"

    balance = await ledger_balance(db_session, material.public_id)
    assert balance["consistent"] is True
    assert balance["opening_quantity"] == "5.00"
    assert balance["ledger_quantity"] == "31.00"
    assert balance["stored_quantity"] == "31.00"
    assert balance["entries"] == 3

    page = await list_ledger(db_session, material.public_id)
    assert [e["action_type"] for e in page["entries"]] == ["adjust", "use", "add"]

    only_adds = await list_ledger(db_session, material.public_id, action_type=LedgerAction.ADD)
    assert [e["quantity_change"] for e in only_adds["entries"]] == ["30.00"]


@pytest.mark.asyncio
async def test_adjust_requires_note_and_non_negative_target(db_session, factory, staff):
    material = await factory.material()

    with pytest.raises(ValidationError):
        await adjust(db_session, staff, material.public_id, 10, note="  ")
    with pytest.raises(InvalidQuantity):
        await adjust(db_session, staff, material.public_id, -1, note="count")


@pytest.mark.asyncio
async def test_ledger_rows_cannot_be_edited(db_session, factory, staff):
    material = await factory.material()
    await restock(db_session, staff, material.public_id, 1)

    async with async_session() as session:
        entry = (await session.execute(select(RawMaterialLedger))).scalar_one()
        entry.note = "rewritten"
        with pytest.raises(RuntimeError):
            await session.commit()
        await session.rollback()

    async with async_session() as session:
        entry = (await session.execute(select(RawMaterialLedger))).scalar_one()
        await session.delete(entry)
        with pytest.raises(RuntimeError):
            await session.flush()
        await session.rollback()


@pytest.mark.asyncio
async def test_low_stock_listing(db_session, factory):
    await factory.material(name="Ink cyan", quantity="2", min_quantity="5", availability="low_stock")
    await factory.material(name="Ink black", quantity="0", min_quantity="5", availability="out_of_stock")
    await factory.material(name="Gloss paper", quantity="50", min_quantity="5")

    names = [m["name"] for m in await low_stock_materials(db_session)]
    assert names == ["Ink black", "Ink cyan"]
