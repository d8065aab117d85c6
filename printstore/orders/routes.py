import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from printstore.common.constants import request_id_ctx
from printstore.common.utils import success_response
from printstore.db.dependencies import get_session
from printstore.orders.projector import verify_order_status

orders_router = APIRouter()


# public tracking page, no auth; the projection carries nothing personal beyond a masked name
@orders_router.get("/{order_id}/verify")
async def verify_order(order_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    data = await verify_order_status(session, order_id)
    return success_response(data, request_id=request_id_ctx.get())
