"""E2E tests against a mockup server started by run_mock_server.py."""
import httpx
import pytest

pytestmark = pytest.mark.requires_server


@pytest.mark.asyncio
async def test_service_root_served_over_tls(mock_server):
    """
    The launcher starts the server with --ssl, so the service root is
    reachable over https on port 1266.
    """
    assert mock_server.startswith("https://")
    async with httpx.AsyncClient(timeout=10.0, verify=False) as client:
        response = await client.get(f"{mock_server}/redfish/v1")

        assert response.status_code == 200, (
            f"Expected 200, got {response.status_code}. "
            f"Response: {response.text}"
        )
        root = response.json()
        assert isinstance(root, dict), "Response should be a JSON object"
        assert root.get("@odata.id", "").rstrip("/") == "/redfish/v1"


@pytest.mark.asyncio
async def test_systems_collection_from_mockups(mock_server):
    """The Dell mockup tree exposes a Systems collection with members."""
    async with httpx.AsyncClient(timeout=10.0, verify=False) as client:
        root = (await client.get(f"{mock_server}/redfish/v1")).json()
        if "Systems" not in root:
            pytest.skip("Mockup has no Systems collection")

        systems_uri = root["Systems"]["@odata.id"]
        response = await client.get(f"{mock_server}{systems_uri}")

        assert response.status_code == 200
        collection = response.json()
        assert "Members" in collection
        assert collection.get("Members@odata.count", len(collection["Members"])) \
            == len(collection["Members"])


@pytest.mark.asyncio
async def test_unknown_resource_returns_404(mock_server):
    async with httpx.AsyncClient(timeout=10.0, verify=False) as client:
        response = await client.get(
            f"{mock_server}/redfish/v1/DoesNotExist/nowhere"
        )

        assert response.status_code == 404


@pytest.mark.asyncio
async def test_plain_http_not_served(mock_server):
    """With TLS enabled the port does not speak plain HTTP."""
    plain = mock_server.replace("https://", "http://", 1)
    async with httpx.AsyncClient(timeout=5.0) as client:
        try:
            response = await client.get(f"{plain}/redfish/v1")
        except httpx.HTTPError:
            return
        assert response.status_code >= 400
