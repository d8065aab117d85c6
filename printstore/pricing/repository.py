from typing import Dict, Iterable, List
from sqlalchemy import select
from printstore.schema.full_schema import CartItem, Product, PromoCode


async def cart_lines_for_user(session, user_id: int) -> List[Dict[str, int]]:
    stmt = (
        select(CartItem.product_id, CartItem.quantity)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.id)
    )
    res = await session.execute(stmt)
    return [{"product_id": r[0], "quantity": r[1]} for r in res.all()]


async def products_by_ids(session, product_ids: Iterable[int]) -> Dict[int, Product]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    stmt = select(Product).where(Product.id.in_(ids), Product.deleted_at.is_(None))
    res = await session.execute(stmt)
    return {p.id: p for p in res.scalars().all()}


async def product_by_public_id(session, product_pid):
    stmt = select(Product).where(Product.public_id == product_pid, Product.deleted_at.is_(None))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def promo_by_public_id(session, promo_pid):
    stmt = select(PromoCode).where(PromoCode.public_id == promo_pid)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
