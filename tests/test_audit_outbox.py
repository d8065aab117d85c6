import asyncio
import pytest
from sqlalchemy import select
from printstore.audit.outbox import AuditOutbox
from printstore.db.connection import async_session
from printstore.schema.full_schema import ActivityLog


def _entry(n):
    return {"actor_id": None, "action_type": "raw_material_use", "entity_type": "raw_material",
            "entity_id": f"mat-{n}", "details": {"n": n}}


@pytest.mark.asyncio
async def test_emit_never_blocks_when_queue_is_full(setup_db):
    outbox = AuditOutbox(async_session, max_queue_size=2)

    # no workers started, so nothing drains the queue
    assert outbox.emit(_entry(1)) is True
    assert outbox.emit(_entry(2)) is True
    assert outbox.emit(_entry(3)) is False
    assert outbox.queue.qsize() == 2


@pytest.mark.asyncio
async def test_workers_write_activity_rows(setup_db):
    outbox = AuditOutbox(async_session, max_queue_size=10, workers_count=2)
    outbox.start()
    for n in range(3):
        outbox.emit(_entry(n))

    await outbox.shutdown(drain_first=True)
    assert outbox.worker_loops == []

    async with async_session() as session:
        rows = (await session.execute(select(ActivityLog).order_by(ActivityLog.entity_id))).scalars().all()
    assert [r.entity_id for r in rows] == ["mat-0", "mat-1", "mat-2"]
    assert rows[0].details == {"n": 0}


@pytest.mark.asyncio
async def test_failed_write_does_not_stop_the_worker(setup_db):
    outbox = AuditOutbox(async_session, max_queue_size=10)
    outbox.start()

    outbox.emit({"action_type": "broken"})      # missing entity fields
    outbox.emit(_entry(7))
    await asyncio.wait_for(outbox.drain(), timeout=5)
    await outbox.shutdown()

    async with async_session() as session:
        rows = (await session.execute(select(ActivityLog))).scalars().all()
    assert [r.entity_id for r in rows] == ["mat-7"]
