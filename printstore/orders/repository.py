from decimal import Decimal
from typing import List, Optional
from sqlalchemy import case, delete, select, update
from printstore.schema.full_schema import (Address, Availability, CartItem, OrderItem, OrderNumberSequence,
                                           Orders, Product, PromoCode)


async def allocate_order_number_id(session) -> int:
    seq = OrderNumberSequence()
    session.add(seq)
    await session.flush()
    return seq.id


async def address_for_order(session, user_id: int, address_id: Optional[int]) -> Optional[Address]:
    stmt = select(Address).where(Address.user_id == user_id, Address.deleted_at.is_(None))
    if address_id is not None:
        stmt = stmt.where(Address.id == address_id)
    else:
        stmt = stmt.where(Address.is_default.is_(True))
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def insert_order(session, **values) -> Orders:
    order = Orders(**values)
    session.add(order)
    await session.flush()
    return order


async def insert_order_items(session, order_id: int, lines) -> List[OrderItem]:
    items = [
        OrderItem(
            order_id=order_id,
            product_id=ln["product_id"],
            product_name=ln["product_name"],
            quantity=int(ln["quantity"]),
            unit_price_snapshot=Decimal(ln["unit_price"]),
            line_total=Decimal(ln["line_total"]),
        )
        for ln in lines
    ]
    session.add_all(items)
    await session.flush()
    return items


async def decrement_product_stock(session, product_id: int, quantity: int, low_stock_quantity: int) -> bool:
    """Guarded decrement; availability is re-derived from the new stock in the same statement."""
    new_stock = Product.stock_qty - quantity
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_qty >= quantity)
        .values(
            stock_qty=new_stock,
            availability=case(
                (new_stock <= 0, Availability.OUT_OF_STOCK.value),
                (new_stock < low_stock_quantity, Availability.LOW_STOCK.value),
                else_=Availability.AVAILABLE.value,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def redeem_promo(session, promo_id: int) -> bool:
    stmt = (
        update(PromoCode)
        .where(PromoCode.id == promo_id, PromoCode.used_count < PromoCode.max_uses)
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def clear_cart(session, user_id: int):
    await session.execute(delete(CartItem).where(CartItem.user_id == user_id))


async def order_by_payment_record(session, payment_record_id: int) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.payment_record_id == payment_record_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def order_by_public_id(session, order_pid) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.public_id == order_pid)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def items_for_order(session, order_id: int) -> List[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def address_id_by_public_id(session, user_id: int, address_pid) -> Optional[int]:
    stmt = select(Address.id).where(
        Address.public_id == address_pid, Address.user_id == user_id, Address.deleted_at.is_(None))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
