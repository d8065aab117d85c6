from sqlalchemy import select, update
from printstore.common.utils import now
from printstore.schema.full_schema import DesignRequest, DesignRequestStatus


async def design_request_by_public_id(session, dr_pid):
    stmt = select(DesignRequest).where(DesignRequest.public_id == dr_pid)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def lock_design_request(session, dr_id: int):
    # fresh read under a row lock, ignoring whatever the identity map holds
    stmt = (
        select(DesignRequest)
        .where(DesignRequest.id == dr_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def mark_design_request_paid(session, dr_id: int) -> bool:
    stmt = (
        update(DesignRequest)
        .where(
            DesignRequest.id == dr_id,
            DesignRequest.status == DesignRequestStatus.PAYMENT_PENDING.value,
            DesignRequest.converted_to_order.is_(False),
        )
        .values(status=DesignRequestStatus.PAID.value, converted_to_order=True, updated_at=now())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1
