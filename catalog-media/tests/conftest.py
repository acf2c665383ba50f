import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web

from catalog_media.backends import UploadBackend
from catalog_media.config import CdnConfig, ObjectStorageConfig, PipelineConfig
from catalog_media.models import BackendUploadResult

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"j" * 2048
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"p" * 2048


def build_image_app() -> web.Application:
    """Serves a handful of fixed responses standing in for a PIM media host."""

    async def jpeg(request):
        return web.Response(body=JPEG_BYTES, content_type="image/jpeg")

    async def png(request):
        return web.Response(body=PNG_BYTES, headers={"Content-Type": "image/png; charset=binary"})

    async def html(request):
        return web.Response(text="<html></html>", content_type="text/html")

    async def octet(request):
        return web.Response(body=JPEG_BYTES)

    async def missing(request):
        return web.Response(status=404, text="not found")

    async def empty(request):
        return web.Response(body=b"", content_type="image/jpeg")

    async def slow(request):
        await asyncio.sleep(float(request.query.get("delay", "2")))
        return web.Response(body=JPEG_BYTES, content_type="image/jpeg")

    async def streamed(request):
        resp = web.StreamResponse(headers={"Content-Type": "image/jpeg"})
        resp.enable_chunked_encoding()
        await resp.prepare(request)
        for _ in range(8):
            await resp.write(b"s" * 1024)
        await resp.write_eof()
        return resp

    app = web.Application()
    app.router.add_get("/media/{name}.jpg", jpeg)
    app.router.add_get("/media/{name}.png", png)
    app.router.add_get("/page.html", html)
    app.router.add_get("/octet", octet)
    app.router.add_get("/missing.jpg", missing)
    app.router.add_get("/empty.jpg", empty)
    app.router.add_get("/slow.jpg", slow)
    app.router.add_get("/streamed.jpg", streamed)
    return app


async def start_app(app: web.Application):
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    return runner, f"http://127.0.0.1:{port}"


@pytest_asyncio.fixture
async def image_server():
    runner, base_url = await start_app(build_image_app())
    yield base_url
    await runner.cleanup()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def offline_config(temp_dir):
    """Both backends disabled, no pacing delays."""
    return PipelineConfig(
        cdn=CdnConfig(enabled=False),
        object_storage=ObjectStorageConfig(enabled=False),
        temp_dir=str(temp_dir),
        chunk_delay=0,
        product_delay=0,
    )


class FakeBackend(UploadBackend):
    """Records calls; optionally sleeps or fails."""

    def __init__(self, service, base_url="https://cdn.example.com", fail=False, delay=0.0, variants=None):
        self.service = service
        self.base_url = base_url
        self.fail = fail
        self.delay = delay
        self.variants = variants
        self.calls = []

    async def upload(self, asset, metadata):
        self.calls.append((asset, dict(metadata)))
        assert asset.temp_path.exists()
        delay = self.delay() if callable(self.delay) else self.delay
        if delay:
            await asyncio.sleep(delay)
        if self.fail:
            raise RuntimeError(f"{self.service} is down")
        url = f"{self.base_url}/{asset.temp_path.stem}/public"
        return BackendUploadResult(
            service=self.service,
            id=asset.temp_path.stem,
            key=f"products/{asset.filename}",
            url=url,
            variants=[url] if self.variants is None else self.variants,
        )

    def check_connection(self):
        return {"status": "error", "error": "down"} if self.fail else {"status": "connected"}
