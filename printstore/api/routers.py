from fastapi import APIRouter
from printstore.api import version_prefix
from printstore.common.routes import home_router
from printstore.inventory.routes import inventory_admin_router
from printstore.orders.routes import orders_router
from printstore.payments.routes import payments_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(payments_router, prefix="/payments", tags=["payments"])
public_routers.include_router(orders_router, prefix="/orders", tags=["orders"])
public_routers.include_router(home_router, tags=["home"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin")

admin_routers.include_router(inventory_admin_router, prefix="/raw-materials", tags=["inventory-admin"])
