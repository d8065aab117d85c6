import asyncio
from typing import Any, Dict, List, Optional
from metrics.custom_instrumentator import audit_events_total
from printstore.audit.repository import insert_activity_log
from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.audit")


class AuditOutbox:
    """
    Best-effort audit trail. emit() never blocks and never raises; a bounded
    queue is drained by worker loops that write ActivityLog rows in their own
    session. Lost entries are counted and logged, nothing else depends on them.
    """

    def __init__(self, session_factory, max_queue_size: int = 1000, workers_count: int = 1):
        self.session_factory = session_factory
        self.queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue(maxsize=max_queue_size)
        self.workers_count = max(1, workers_count)
        self.worker_loops: List[asyncio.Task] = []

    def start(self):
        if self.worker_loops:
            return
        for i in range(self.workers_count):
            cur_worker_name = f"AuditWorker:{i+1}"
            self.worker_loops.append(asyncio.create_task(self._worker_loop(cur_worker_name)))
            logger.info("audit.worker_started", extra={"worker": cur_worker_name})

    def emit(self, entry: Dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait(entry)
        except asyncio.QueueFull:
            audit_events_total.labels(outcome="dropped").inc()
            logger.warning("audit.entry_dropped", extra={
                "action_type": entry.get("action_type"), "entity_id": str(entry.get("entity_id")),
            })
            return False
        audit_events_total.labels(outcome="queued").inc()
        return True

    async def _write(self, entry: Dict[str, Any]):
        async with self.session_factory() as session:
            async with session.begin():
                await insert_activity_log(session, entry)

    async def _worker_loop(self, cur_worker_name: str):
        while True:
            qitem = await self.queue.get()
            try:
                if qitem is None:
                    break
                try:
                    await self._write(qitem)
                    audit_events_total.labels(outcome="written").inc()
                except Exception:
                    audit_events_total.labels(outcome="failed").inc()
                    logger.exception("audit.write_failed", extra={
                        "worker": cur_worker_name, "action_type": qitem.get("action_type"),
                    })
            finally:
                self.queue.task_done()

        logger.info("audit.worker_exiting", extra={"worker": cur_worker_name})

    async def drain(self, timeout: float = 30.0):
        try:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("audit.drain_timeout", extra={"pending": self.queue.qsize()})

    async def shutdown(self, *, drain_first: bool = True, drain_timeout: float = 30.0, wait_timeout: float = 10.0):
        if not self.worker_loops:
            return
        if drain_first:
            await self.drain(drain_timeout)

        for _ in self.worker_loops:
            await self.queue.put(None)

        for t in self.worker_loops:
            try:
                await asyncio.wait_for(t, timeout=wait_timeout)
            except asyncio.TimeoutError:
                logger.warning("audit.worker_cancelled")
                t.cancel()
        self.worker_loops = []
