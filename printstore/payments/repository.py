from typing import Optional
from sqlalchemy import select, update
from printstore.common.utils import now
from printstore.schema.full_schema import PaymentRecord, PaymentRecordStatus


async def insert_payment_record(session, **values) -> PaymentRecord:
    record = PaymentRecord(**values)
    session.add(record)
    await session.flush()
    return record


async def payment_record_by_gateway_order_id(session, gateway_order_id: str) -> Optional[PaymentRecord]:
    stmt = (
        select(PaymentRecord)
        .where(PaymentRecord.gateway_order_id == gateway_order_id)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def claim_payment_record(session, record_id: int, gateway_payment_id: str) -> bool:
    """pending -> success. False when someone else already moved the record."""
    stmt = (
        update(PaymentRecord)
        .where(PaymentRecord.id == record_id, PaymentRecord.status == PaymentRecordStatus.PENDING.value)
        .values(status=PaymentRecordStatus.SUCCESS.value, gateway_payment_id=gateway_payment_id, verified_at=now())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def mark_payment_record_failed(session, record_id: int, gateway_payment_id: str, reason: str) -> bool:
    stmt = (
        update(PaymentRecord)
        .where(PaymentRecord.id == record_id, PaymentRecord.status == PaymentRecordStatus.PENDING.value)
        .values(status=PaymentRecordStatus.FAILED.value, gateway_payment_id=gateway_payment_id,
                failure_reason=reason[:255], verified_at=now())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1
