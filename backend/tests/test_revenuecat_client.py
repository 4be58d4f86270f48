import httpx
import pytest

from core.revenuecat_client import RevenueCatClient, RevenueCatAPIError


def client_for(handler):
    return RevenueCatClient("sk_test", "proj_test", transport=httpx.MockTransport(handler))


class TestVerifyPurchase:

    async def test_match_on_store_purchase_identifier(self):
        def handler(request):
            assert request.url.params["store_purchase_identifier"] == "GPA.1"
            return httpx.Response(200, json={"items": [{"id": "prch_9", "store_purchase_identifier": "GPA.1"}]})

        result = await client_for(handler).verify_purchase("GPA.1")
        assert result.verified
        assert result.data["items"][0]["id"] == "prch_9"

    async def test_match_on_purchase_id(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"id": "prch_9", "store_purchase_identifier": None}]})

        assert (await client_for(handler).verify_purchase("prch_9")).verified

    async def test_numeric_store_identifier(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"id": "x", "store_purchase_identifier": 1000000123}]})

        assert (await client_for(handler).verify_purchase("1000000123")).verified

    async def test_no_items(self):
        result = await client_for(lambda request: httpx.Response(200, json={"items": []})).verify_purchase("GPA.1")
        assert not result.verified
        assert result.error == "No purchases found for this transaction ID"

    async def test_items_do_not_match(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"id": "other", "store_purchase_identifier": "GPA.2"}]})

        result = await client_for(handler).verify_purchase("GPA.1")
        assert not result.verified
        assert "does not match" in result.error

    async def test_client_error_is_a_failed_verification(self):
        result = await client_for(lambda request: httpx.Response(404, json={})).verify_purchase("GPA.1")
        assert not result.verified
        assert result.error == "RevenueCat API error: 404"

    async def test_non_json_body(self):
        result = await client_for(lambda request: httpx.Response(200, text="<html>")).verify_purchase("GPA.1")
        assert not result.verified

    async def test_server_error_raises(self):
        with pytest.raises(RevenueCatAPIError):
            await client_for(lambda request: httpx.Response(502, text="bad gateway")).verify_purchase("GPA.1")

    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RevenueCatAPIError):
            await client_for(handler).verify_purchase("GPA.1")

    async def test_missing_configuration(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = RevenueCatClient(None, "proj_test", transport=httpx.MockTransport(handler))
        result = await client.verify_purchase("GPA.1")
        assert not client.configured
        assert not result.verified
