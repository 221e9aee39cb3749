"""Stripe checkout-session reads over httpx."""

from __future__ import annotations

import httpx
import pytest

from utils.stripe_api import PaymentProviderError, StripeAPI


def _api(handler) -> StripeAPI:
    return StripeAPI("sk_test_123", base_url="https://stripe.test", timeout=2.0, transport=httpx.MockTransport(handler))


class TestRetrieveCheckoutSession:
    @pytest.mark.asyncio
    async def test_requests_expanded_session(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"id": "cs_1", "amount_total": 1999})

        data = await _api(handler).retrieve_checkout_session("cs_1")
        assert data == {"id": "cs_1", "amount_total": 1999}
        assert seen["url"].path == "/v1/checkout/sessions/cs_1"
        assert seen["url"].params.get_list("expand[]") == ["customer", "line_items"]
        assert seen["auth"] == "Bearer sk_test_123"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_message(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "No such checkout.session"}})

        with pytest.raises(PaymentProviderError) as exc:
            await _api(handler).retrieve_checkout_session("cs_missing")
        assert exc.value.status_code == 404
        assert "No such checkout.session" in str(exc.value)

    @pytest.mark.asyncio
    async def test_timeout_raises_provider_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PaymentProviderError):
            await _api(handler).retrieve_checkout_session("cs_slow")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(PaymentProviderError, match="not configured"):
            await StripeAPI("").retrieve_checkout_session("cs_1")
