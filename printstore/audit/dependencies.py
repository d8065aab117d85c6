from typing import Optional
from fastapi import Request
from printstore.audit.outbox import AuditOutbox


def get_audit_outbox(request: Request) -> Optional[AuditOutbox]:
    return getattr(request.app.state, "audit_outbox", None)
