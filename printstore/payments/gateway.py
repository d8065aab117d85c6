import asyncio
from typing import Optional
import httpx
from printstore.common.custom_exceptions import UpstreamFailure
from printstore.config.settings import config_settings
from printstore.payments.constants import MAX_BACKOFF_SECONDS, TRANSIENT_EXCEPTIONS, logger


class RazorpayGateway:
    """Server-side client for the gateway's order-creation endpoint."""

    provider = "razorpay"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *,
                 base_url: str = config_settings.RZPAY_GATEWAY_URL,
                 key_id: str = config_settings.RZPAY_KEY,
                 key_secret: str = config_settings.RZPAY_SECRET,
                 timeout: float = config_settings.GATEWAY_TIMEOUT_SECONDS,
                 max_attempts: int = config_settings.GATEWAY_MAX_ATTEMPTS,
                 backoff_base: float = config_settings.GATEWAY_BACKOFF_BASE):
        self.base_url = base_url.rstrip("/")
        self.key_id = key_id
        self._key_secret = key_secret
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    @property
    def key_secret(self) -> str:
        return self._key_secret

    async def aclose(self):
        await self._client.aclose()

    async def _post_order(self, payload: dict, headers: dict) -> dict:
        resp = await self._client.post(
            f"{self.base_url}/orders",
            json=payload,
            headers=headers,
            auth=(self.key_id, self._key_secret),
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp.json()

    async def create_order(self, amount_minor: int, currency: str, receipt: str,
                           notes: Optional[dict] = None, idempotency_key: Optional[str] = None) -> dict:
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = str(idempotency_key)
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        last_exc: Optional[Exception] = None
        for attempt_idx in range(1, self.max_attempts + 1):
            try:
                data = await self._post_order(payload, headers)
            except TRANSIENT_EXCEPTIONS as ex:
                last_exc = ex
                logger.warning("gateway.create_order.transient_error", extra={
                    "attempt": attempt_idx, "error": type(ex).__name__,
                })
            except httpx.HTTPStatusError as ex:
                status_code = ex.response.status_code
                if 500 <= status_code < 600:
                    last_exc = ex
                    logger.warning("gateway.create_order.server_error", extra={
                        "attempt": attempt_idx, "http_status": status_code,
                    })
                else:
                    # 4xx is the gateway rejecting the request, retrying will not change that
                    logger.error("gateway.create_order.rejected", extra={"http_status": status_code})
                    raise UpstreamFailure("payment gateway rejected the order request", retryable=False,
                                          details={"http_status": status_code}) from ex
            except ValueError as ex:
                logger.error("gateway.create_order.bad_body")
                raise UpstreamFailure("payment gateway returned an unreadable response") from ex
            else:
                gateway_order_id = data.get("id") if isinstance(data, dict) else None
                if not gateway_order_id:
                    logger.error("gateway.create_order.missing_order_id")
                    raise UpstreamFailure("payment gateway response carried no order id")
                logger.info("gateway.create_order.ok", extra={"attempt": attempt_idx, "receipt": receipt})
                return data

            if attempt_idx < self.max_attempts:
                await asyncio.sleep(min(self.backoff_base * (2 ** (attempt_idx - 1)), MAX_BACKOFF_SECONDS))

        raise UpstreamFailure(retryable=True, details={"attempts": self.max_attempts,
                                                       "last_error": type(last_exc).__name__}) from last_exc
