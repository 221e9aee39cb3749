from typing import Optional

import httpx

from core.config import logger, STRIPE_API_BASE, STRIPE_SECRET_KEY, STRIPE_TIMEOUT_SEC

# Nested objects the order normalizer reads
SESSION_EXPAND = ("customer", "line_items")


class PaymentProviderError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StripeAPI:
    """Thin async client for the Stripe REST endpoints this service reads."""

    def __init__(self, api_key: str, base_url: str = "https://api.stripe.com", timeout: float = 10.0, transport=None):
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or "https://api.stripe.com").rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "User-Agent": "CardOrdersBackend/1.0",
        }

    async def retrieve_checkout_session(self, session_id: str, expand=SESSION_EXPAND) -> dict:
        if not self.api_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY is not configured")
        if not session_id:
            raise PaymentProviderError("checkout session id is required")

        url = f"{self.base_url}/v1/checkout/sessions/{session_id}"
        params = [("expand[]", e) for e in (expand or ())]
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as ex:
            logger.warning(f"[stripe] session fetch transport error for {session_id}: {ex}")
            raise PaymentProviderError(f"stripe request failed: {ex}") from ex

        if resp.status_code >= 400:
            detail = ""
            try:
                body = resp.json()
                err = body.get("error") if isinstance(body, dict) else None
                detail = str(err.get("message") or "") if isinstance(err, dict) else ""
            except ValueError:
                detail = resp.text[:200]
            logger.warning(f"[stripe] session fetch {session_id} -> {resp.status_code} {detail}")
            raise PaymentProviderError(f"stripe returned {resp.status_code}: {detail}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as ex:
            raise PaymentProviderError("stripe returned a non-JSON body") from ex
        if not isinstance(data, dict):
            raise PaymentProviderError("stripe returned an unexpected payload")
        return data


_client: Optional[StripeAPI] = None


def get_payment_provider() -> StripeAPI:
    """FastAPI dependency returning the process-wide Stripe client."""
    global _client
    if _client is None:
        _client = StripeAPI(STRIPE_SECRET_KEY, base_url=STRIPE_API_BASE, timeout=STRIPE_TIMEOUT_SEC)
    return _client
