import httpx
from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.payments")

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError, httpx.NetworkError)
MAX_BACKOFF_SECONDS = 8.0

# receipt namespaces per checkout source
RECEIPT_PREFIXES = {
    "cart": "cart",
    "single": "item",
    "design_request": "design",
}
RECEIPT_ID_CHARS = 20
