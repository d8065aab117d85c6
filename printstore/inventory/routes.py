import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from printstore.auth.constants import Permission
from printstore.auth.dependencies import RequestIdentity, require_permission
from printstore.common.constants import request_id_ctx
from printstore.common.utils import success_response
from printstore.db.dependencies import get_session
from printstore.inventory.constants import DEFAULT_LEDGER_PAGE, MAX_LEDGER_PAGE
from printstore.inventory.models import AdjustIn, RestockIn, UsageIn
from printstore.inventory.services import adjust, ledger_balance, list_ledger, low_stock_materials, record_usage, restock
from printstore.audit.dependencies import get_audit_outbox
from printstore.schema.full_schema import LedgerAction

inventory_admin_router = APIRouter()


@inventory_admin_router.get("/low-stock")
async def get_low_stock(identity: RequestIdentity = Depends(require_permission(Permission.VIEW_INVENTORY)),
                        session: AsyncSession = Depends(get_session)):
    data = await low_stock_materials(session)
    return success_response({"materials": data}, request_id=request_id_ctx.get())


@inventory_admin_router.post("/{raw_material_id}/usage")
async def record_raw_material_usage(raw_material_id: uuid.UUID, payload: UsageIn,
                                    identity: RequestIdentity = Depends(require_permission(Permission.RECORD_MATERIAL_USAGE)),
                                    outbox=Depends(get_audit_outbox),
                                    session: AsyncSession = Depends(get_session)):
    data = await record_usage(session, identity, raw_material_id, payload.quantity_used, payload.reason,
                              note=payload.note, outbox=outbox)
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@inventory_admin_router.post("/{raw_material_id}/restock")
async def restock_raw_material(raw_material_id: uuid.UUID, payload: RestockIn,
                               identity: RequestIdentity = Depends(require_permission(Permission.MANAGE_INVENTORY)),
                               outbox=Depends(get_audit_outbox),
                               session: AsyncSession = Depends(get_session)):
    data = await restock(session, identity, raw_material_id, payload.quantity_added, note=payload.note, outbox=outbox)
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@inventory_admin_router.post("/{raw_material_id}/adjust")
async def adjust_raw_material(raw_material_id: uuid.UUID, payload: AdjustIn,
                              identity: RequestIdentity = Depends(require_permission(Permission.MANAGE_INVENTORY)),
                              outbox=Depends(get_audit_outbox),
                              session: AsyncSession = Depends(get_session)):
    data = await adjust(session, identity, raw_material_id, payload.new_quantity, payload.note, outbox=outbox)
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@inventory_admin_router.get("/{raw_material_id}/ledger")
async def get_ledger(raw_material_id: uuid.UUID,
                     action_type: Optional[LedgerAction] = None,
                     limit: int = Query(DEFAULT_LEDGER_PAGE, ge=1, le=MAX_LEDGER_PAGE),
                     identity: RequestIdentity = Depends(require_permission(Permission.VIEW_INVENTORY)),
                     session: AsyncSession = Depends(get_session)):
    data = await list_ledger(session, raw_material_id, action_type=action_type, limit=limit)
    return success_response(data, request_id=request_id_ctx.get())


@inventory_admin_router.get("/{raw_material_id}/balance")
async def get_ledger_balance(raw_material_id: uuid.UUID,
                             identity: RequestIdentity = Depends(require_permission(Permission.VIEW_INVENTORY)),
                             session: AsyncSession = Depends(get_session)):
    data = await ledger_balance(session, raw_material_id)
    return success_response(data, request_id=request_id_ctx.get())
