"""Shared fixtures: token store on disk and a fake rental backend."""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from api_client import ApiClient
from auth.session import SessionManager
from auth.token_store import TokenStore


class FakeBackend:
    """Accepts one access token; /auth/refresh can be held open."""

    def __init__(self):
        self.valid_token = "A2"
        self.issued_token = "A2"
        self.refresh_status = 200
        self.refresh_calls = 0
        self.refresh_bodies: list[dict] = []
        self.refresh_gate = asyncio.Event()
        self.refresh_gate.set()
        self.seen: list[tuple[str, str | None]] = []
        self.url = ""

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/auth/refresh", self.refresh)
        app.router.add_get("/items/{name}", self.item)
        return app

    async def item(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        auth = request.headers.get("Authorization")
        self.seen.append((name, auth))
        if auth != f"Bearer {self.valid_token}":
            return web.json_response({"success": False, "message": "Token expired"}, status=401)
        return web.json_response({"item": name})

    async def refresh(self, request: web.Request) -> web.Response:
        self.refresh_calls += 1
        self.refresh_bodies.append(await request.json())
        await self.refresh_gate.wait()
        if self.refresh_status != 200:
            return web.json_response(
                {"success": False, "message": "Invalid refresh token"},
                status=self.refresh_status,
            )
        return web.json_response({
            "success": True,
            "message": "Token refreshed successfully",
            "data": {"accessToken": self.issued_token},
        })

    def headers_for(self, name: str) -> list[str | None]:
        return [auth for n, auth in self.seen if n == name]


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "session.json")


@pytest.fixture
def logged_in_store(token_store):
    token_store.save("A1", "R1", {"_id": "u1", "email": "ana@obra.com"})
    return token_store


@pytest.fixture
async def backend():
    fake = FakeBackend()
    async with TestServer(fake.make_app()) as server:
        fake.url = str(server.make_url(""))
        yield fake
        # Let any held refresh handler finish before shutdown
        fake.refresh_gate.set()


@pytest.fixture
async def client(backend, logged_in_store):
    manager = SessionManager(logged_in_store)
    api = ApiClient(backend.url, logged_in_store, manager, refresh_timeout=5)
    yield api
    await api.close()


@pytest.fixture
def wait_until():
    """Poll a condition on the running loop until it holds."""

    async def wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.01)

    return wait
