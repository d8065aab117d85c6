import enum
from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.auth")


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class Permission(str, enum.Enum):
    CHECKOUT = "checkout"
    VERIFY_PAYMENT = "verify_payment"
    RECORD_MATERIAL_USAGE = "record_material_usage"
    MANAGE_INVENTORY = "manage_inventory"
    VIEW_INVENTORY = "view_inventory"


ROLE_PERMISSIONS = {
    Role.CUSTOMER: frozenset({Permission.CHECKOUT, Permission.VERIFY_PAYMENT}),
    Role.STAFF: frozenset({
        Permission.CHECKOUT, Permission.VERIFY_PAYMENT,
        Permission.RECORD_MATERIAL_USAGE, Permission.VIEW_INVENTORY,
    }),
    Role.ADMIN: frozenset(Permission),
}
