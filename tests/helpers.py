"""Test helpers: in-memory request queue server and polling utilities."""

import asyncio
from typing import Any, Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from walletbridge.providers.base import ProviderDetail, ProviderInfo, WalletProvider
from walletbridge.queue.client import QueueClient

ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
RECIPIENT = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
QUEUE_BASE = "http://queue.test/api"


class FakeQueue:
    """Request queue server holding its state in memory.

    ``log`` records every request as ``(method, path, body)``.
    """

    def __init__(self):
        self.connection: Any = None
        self.pending: dict[str, list[dict]] = {"transaction": [], "signing": []}
        self.responses: dict[str, list[dict]] = {"transaction": [], "signing": []}
        self.log: list[tuple[str, str, Any]] = []
        self.headers: list[dict] = []
        self.fail = False
        self.garbage = False

    def add_transaction(self, item: dict) -> None:
        self.pending["transaction"].append(item)

    def add_signing(self, item: dict) -> None:
        self.pending["signing"].append(item)

    def calls(self, method: str, path: str) -> list[Any]:
        """Bodies of every logged call matching method and path."""
        return [body for m, p, body in self.log if m == method and p == path]

    def paths(self) -> list[str]:
        return [f"{m} {p}" for m, p, _ in self.log]

    def create_app(self) -> FastAPI:
        app = FastAPI()
        queue = self

        async def record(request: Request) -> Any:
            body = None
            if request.method == "POST":
                raw = await request.body()
                body = await request.json() if raw else None
            queue.log.append((request.method, request.url.path, body))
            queue.headers.append(dict(request.headers))
            return body

        def broken() -> Optional[Any]:
            if queue.fail:
                return JSONResponse(status_code=500, content={"status": "error"})
            if queue.garbage:
                return PlainTextResponse("<html>oops</html>")
            return None

        @app.get("/api/connection")
        async def get_connection(request: Request):
            await record(request)
            return broken() or {"status": "ok", "data": queue.connection}

        @app.post("/api/connection")
        async def post_connection(request: Request):
            body = await record(request)
            failure = broken()
            if failure:
                return failure
            queue.connection = body
            return {"status": "ok", "data": None}

        @app.get("/api/{kind}/request")
        async def get_request(kind: str, request: Request):
            await record(request)
            failure = broken()
            if failure:
                return failure
            items = queue.pending.get(kind, [])
            if not items:
                return {"status": "error", "message": "No pending request"}
            return {"status": "ok", "data": items[0]}

        @app.post("/api/{kind}/response")
        async def post_response(kind: str, request: Request):
            body = await record(request)
            failure = broken()
            if failure:
                return failure
            queue.responses[kind].append(body)
            queue.pending[kind] = [i for i in queue.pending[kind] if i["id"] != body["id"]]
            return {"status": "ok", "data": None}

        return app

    def client(self, session_token: Optional[str] = None) -> QueueClient:
        return QueueClient(
            QUEUE_BASE,
            session_token=session_token,
            transport=httpx.ASGITransport(app=self.create_app()),
        )


class GatedProvider(WalletProvider):
    """Provider whose requests block until ``release()`` is called."""

    def __init__(self, inner: WalletProvider, gated: set[str]):
        super().__init__()
        self.inner = inner
        self.gated = gated
        self.entered = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def request(self, method, params=None):
        if method in self.gated:
            self.entered.set()
            await self._gate.wait()
        return await self.inner.request(method, params)


def detail_for(provider: WalletProvider, uuid: str, name: str = "Test Wallet") -> ProviderDetail:
    return ProviderDetail(
        info=ProviderInfo(uuid=uuid, name=name, icon="", rdns=f"test.{uuid}"),
        provider=provider,
    )


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until true or fail after ``timeout`` seconds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
