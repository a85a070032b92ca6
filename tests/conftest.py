"""Shared fixtures: a local HTTP service and a fake relay."""

import asyncio
import base64
import json

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from comzy.config import Settings
from tests.helpers import PNG_BYTES


# ── Local service ────────────────────────────────────────────────────────────


async def _echo(request: web.Request) -> web.Response:
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "target": request.raw_path,
            "headers": {k.lower(): v for k, v in request.headers.items()},
            "body": body.decode("utf-8"),
        }
    )


async def _upload(request: web.Request) -> web.Response:
    form = await request.post()
    fields = {}
    files = []
    for name, value in form.items():
        if isinstance(value, web.FileField):
            files.append(
                {
                    "name": name,
                    "filename": value.filename,
                    "content_type": value.content_type,
                    "data": base64.b64encode(value.file.read()).decode("ascii"),
                }
            )
        else:
            fields[name] = value
    return web.json_response(
        {"fields": fields, "files": files, "content_type": request.headers.get("Content-Type", "")}
    )


async def _image(request: web.Request) -> web.Response:
    return web.Response(body=PNG_BYTES, content_type="image/png")


async def _bad_json(request: web.Request) -> web.Response:
    return web.Response(text="{not json", content_type="application/json")


async def _text(request: web.Request) -> web.Response:
    resp = web.Response(text="hello there", content_type="text/plain")
    resp.headers.add("X-Multi", "first")
    resp.headers.add("X-Multi", "second")
    return resp


async def _redirect(request: web.Request) -> web.Response:
    raise web.HTTPFound("/text")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(float(request.query.get("delay", "5")))
    return web.Response(text="late")


async def _fail(request: web.Request) -> web.Response:
    return web.json_response({"detail": "nope"}, status=503)


def make_local_app() -> web.Application:
    app = web.Application()
    app.router.add_route("*", "/echo", _echo)
    app.router.add_post("/upload", _upload)
    app.router.add_get("/image.png", _image)
    app.router.add_get("/bad-json", _bad_json)
    app.router.add_get("/text", _text)
    app.router.add_get("/redirect", _redirect)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/fail", _fail)
    return app


@pytest_asyncio.fixture
async def local_service():
    server = TestServer(make_local_app(), host="127.0.0.1")
    await server.start_server()
    yield server
    await server.close()


# ── Fake relay ───────────────────────────────────────────────────────────────


class FakeRelay:
    """Accepts tunnel connections and records what clients send."""

    def __init__(self, alias: str = "demo") -> None:
        self.alias = alias
        self.sockets: list[web.WebSocketResponse] = []
        self.registrations: list[dict] = []
        self.responses: list[dict] = []
        self.pings = 0
        self.close_after_register = 0

    async def handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(autoping=False)
        await ws.prepare(request)
        self.sockets.append(ws)

        async for msg in ws:
            if msg.type == WSMsgType.PING:
                self.pings += 1
                await ws.pong(msg.data)
            elif msg.type == WSMsgType.TEXT:
                data = json.loads(msg.data)
                if data.get("type") == "register":
                    self.registrations.append(data)
                    await ws.send_json({"type": "registered", "alias": self.alias})
                    if self.close_after_register > 0:
                        self.close_after_register -= 1
                        await ws.close()
                else:
                    self.responses.append(data)
        return ws

    async def send(self, payload: dict | str) -> None:
        ws = self.sockets[-1]
        if isinstance(payload, str):
            await ws.send_str(payload)
        else:
            await ws.send_json(payload)


@pytest_asyncio.fixture
async def relay():
    fake = FakeRelay()
    app = web.Application()
    app.router.add_get("/", fake.handler)
    server = TestServer(app, host="127.0.0.1")
    await server.start_server()
    fake.port = server.port
    fake.url = f"ws://127.0.0.1:{server.port}/"
    yield fake
    await server.close()


@pytest.fixture
def make_settings(tmp_path):
    def factory(**overrides) -> Settings:
        values = {
            "local_host": "127.0.0.1",
            "reconnect_delay": 0.1,
            "keepalive_interval": 20.0,
            "config_dir": tmp_path / ".comzy",
        }
        values.update(overrides)
        return Settings(**values)

    return factory

