from sqlalchemy import select
from printstore.schema.full_schema import Users


async def userid_by_public_id(session, user_pid):
    stmt = select(Users.id).where(Users.public_id == user_pid)
    res = await session.execute(stmt)
    user = res.first()
    return user[0] if user else None
