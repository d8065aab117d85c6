from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.inventory")

DEFAULT_LEDGER_PAGE = 50
MAX_LEDGER_PAGE = 500
