"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from walletbridge.bridge import WalletBridge
from walletbridge.errors import (
    BridgeError,
    ChainMismatchError,
    NetworkTransientError,
    ProviderRejectedError,
    SenderMismatchError,
    SessionError,
    UnknownChainError,
)


def _status_for(exc: BridgeError) -> int:
    if isinstance(exc, SessionError):
        return 409
    if isinstance(exc, (SenderMismatchError, UnknownChainError, ChainMismatchError)):
        return 422
    if isinstance(exc, ProviderRejectedError):
        return 400
    if isinstance(exc, NetworkTransientError):
        return 503
    return 500


def create_app(bridge: WalletBridge, manage_lifecycle: bool = True) -> FastAPI:
    """Create the control API around a bridge.

    Args:
        bridge: Bridge instance served by the API
        manage_lifecycle: Start the bridge on startup and close it on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await bridge.start()
        yield
        if manage_lifecycle:
            await bridge.close()

    app = FastAPI(
        title="walletbridge",
        description="Wallet provider bridge for a local signing request queue",
        version="0.1.0",
        lifespan=lifespan,
        debug=bridge.settings.debug,
    )
    app.state.bridge = bridge

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if bridge.settings.debug else [],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        content = {"status": "error", "error": exc.__class__.__name__, "message": str(exc)}
        if isinstance(exc, ProviderRejectedError) and exc.code is not None:
            content["code"] = exc.code
        return JSONResponse(status_code=_status_for(exc), content=content)

    from walletbridge.api.routes import actions, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(actions.router, tags=["Bridge"])

    return app
