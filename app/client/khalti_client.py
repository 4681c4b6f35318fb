import logging
import os
from typing import Optional

import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

KHALTI_BASE_URL = os.getenv("KHALTI_BASE_URL", "https://dev.khalti.com/api/v2")
KHALTI_TIMEOUT = float(os.getenv("KHALTI_TIMEOUT", "15"))


class KhaltiError(Exception):
    """Khalti did not answer, or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class KhaltiClient:
    """Thin client for the Khalti ePayment API.

    - ``KHALTI_SECRET_KEY`` is sent as ``Authorization: Key <secret>``.
    - ``KHALTI_BASE_URL`` selects sandbox (default) or production.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else os.getenv("KHALTI_SECRET_KEY")
        self.base_url = (base_url or KHALTI_BASE_URL).rstrip("/")
        self.timeout = timeout or KHALTI_TIMEOUT
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> dict:
        return {"Authorization": f"Key {self.secret_key}", "Content-Type": "application/json"}

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.configured:
            raise KhaltiError("Khalti secret key is not configured")
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("Khalti %s request failed: %s", path, exc)
            raise KhaltiError(f"Khalti request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            logger.warning("Khalti %s → HTTP %s: %s", path, resp.status_code, data or resp.text)
            detail = data.get("detail") or data.get("error_key") or resp.text
            raise KhaltiError(f"Khalti error: {detail}", status_code=resp.status_code, payload=data)
        return data

    async def initiate(
        self,
        *,
        return_url: str,
        website_url: str,
        amount: int,
        purchase_order_id: str,
        purchase_order_name: str,
        customer_info: Optional[dict] = None,
        **merchant_extra: str,
    ) -> dict:
        """Start a payment. ``amount`` is in paisa. Returns ``{pidx, payment_url, ...}``."""
        payload = {
            "return_url": return_url,
            "website_url": website_url,
            "amount": int(amount),
            "purchase_order_id": purchase_order_id,
            "purchase_order_name": purchase_order_name,
        }
        if customer_info:
            payload["customer_info"] = {k: v for k, v in customer_info.items() if v}
        payload.update({k: str(v) for k, v in merchant_extra.items() if k.startswith("merchant_")})
        data = await self._post("epayment/initiate/", payload)
        if not data.get("pidx") or not data.get("payment_url"):
            raise KhaltiError("Khalti initiate response without pidx/payment_url", payload=data)
        return data

    async def lookup(self, pidx: str) -> dict:
        """Payment state for ``pidx``: ``{pidx, status, total_amount, transaction_id, ...}``."""
        data = await self._post("epayment/lookup/", {"pidx": pidx})
        if "status" not in data:
            raise KhaltiError("Khalti lookup response without status", payload=data)
        return data


_client: Optional[KhaltiClient] = None


def get_khalti_client() -> KhaltiClient:
    """Process-wide client, built on first use."""
    global _client
    if _client is None:
        _client = KhaltiClient()
    return _client


__all__ = ["KhaltiClient", "KhaltiError", "get_khalti_client"]
