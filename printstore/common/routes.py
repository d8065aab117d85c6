from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from printstore.common.custom_exceptions import InternalError
from printstore.common.constants import request_id_ctx
from printstore.common.utils import success_response
from printstore.db.dependencies import get_session

home_router = APIRouter()


@home_router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise InternalError("database connection error", retryable=True)

    return success_response({"status": "healthy"}, request_id=request_id_ctx.get())
