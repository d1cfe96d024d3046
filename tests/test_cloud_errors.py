"""The shared HTTP error mapping behaves the same for every provider."""
import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from foldly.services.cloud import create_cloud_provider
from foldly.services.cloud.google_drive import GoogleDriveProvider
from foldly.services.cloud.onedrive import OneDriveProvider
from foldly.services.errors import ErrorCode

PROVIDERS = ["google-drive", "onedrive"]


def status_app(status: int) -> web.Application:
    async def reply(request):
        return web.json_response({"error": {"code": status, "message": f"status {status}"}}, status=status)

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", reply)
    return app


def make_client(provider_id, base_url, **kwargs):
    if provider_id == "google-drive":
        return GoogleDriveProvider("token", base_url=base_url, upload_url=base_url, **kwargs)
    return OneDriveProvider("token", base_url=base_url, **kwargs)


@pytest.mark.parametrize("provider_id", PROVIDERS)
@pytest.mark.parametrize("status, code", [
    (401, ErrorCode.AUTH_FAILED),
    (403, ErrorCode.PERMISSION_DENIED),
    (507, ErrorCode.QUOTA_EXCEEDED),
    (500, ErrorCode.UNKNOWN),
    (429, ErrorCode.UNKNOWN),
])
async def test_status_maps_to_same_code(provider_id, status, code):
    async with TestServer(status_app(status)) as server:
        client = make_client(provider_id, str(server.make_url("/api")))
        results = [
            await client.get_file("x"),
            await client.get_files("folder"),
            await client.download_file("x"),
            await client.delete_file("x"),
        ]

    for result in results:
        assert not result.success
        assert result.error.code == code
        if code == ErrorCode.UNKNOWN:
            assert result.error.message.startswith(f"HTTP {status}")


@pytest.mark.parametrize("provider_id", PROVIDERS)
async def test_connection_refused_is_network_error(provider_id):
    server = TestServer(web.Application())
    await server.start_server()
    base_url = str(server.make_url("/api"))
    await server.close()

    result = await make_client(provider_id, base_url).get_file("x")

    assert result.error.code == ErrorCode.NETWORK_ERROR


@pytest.mark.parametrize("provider_id", PROVIDERS)
async def test_timeout_is_network_error(provider_id):
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({})

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", slow)
    async with TestServer(app) as server:
        client = make_client(provider_id, str(server.make_url("/api")), timeout=0.1)
        result = await client.get_file("x")

    assert result.error.code == ErrorCode.NETWORK_ERROR


@pytest.mark.parametrize("provider_id", PROVIDERS)
async def test_non_json_body_is_unknown(provider_id):
    async def garbage(request):
        return web.Response(text="<html>oops</html>", content_type="text/html")

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", garbage)
    async with TestServer(app) as server:
        result = await make_client(provider_id, str(server.make_url("/api"))).get_file("x")

    assert result.error.code == ErrorCode.UNKNOWN


def test_factory_builds_each_provider():
    assert isinstance(create_cloud_provider("google-drive", "t"), GoogleDriveProvider)
    assert isinstance(create_cloud_provider("onedrive", "t"), OneDriveProvider)
    with pytest.raises(ValueError):
        create_cloud_provider("dropbox", "t")


def test_empty_token_is_rejected():
    with pytest.raises(ValueError):
        create_cloud_provider("onedrive", "")
