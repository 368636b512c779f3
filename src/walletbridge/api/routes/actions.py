"""Bridge state and user action endpoints.

These stand in for the wallet UI: they expose the same snapshots and the
connect / confirm / sign / send actions.
"""

import logging

from fastapi import APIRouter, Request

from walletbridge.bridge import WalletBridge

logger = logging.getLogger(__name__)

router = APIRouter()


def _bridge(request: Request) -> WalletBridge:
    return request.app.state.bridge


@router.get("/state")
async def get_state(request: Request) -> dict:
    """Snapshot of providers, session, staged request and last outcome."""
    return _bridge(request).snapshot()


@router.get("/providers")
async def list_providers(request: Request) -> list[dict]:
    return [record.to_dict() for record in _bridge(request).registry.list()]


@router.post("/providers/{provider_id}/select")
async def select_provider(provider_id: str, request: Request) -> dict:
    bridge = _bridge(request)
    await bridge.select_provider(provider_id)
    return bridge.snapshot()


@router.post("/connect")
async def connect(request: Request) -> dict:
    """Request accounts from the selected wallet."""
    bridge = _bridge(request)
    account = await bridge.connect()
    return {"success": True, "account": account, "session": bridge.session.state.to_dict()}


@router.post("/confirm")
async def confirm(request: Request) -> dict:
    """Attach the connected account/chain to the request queue."""
    bridge = _bridge(request)
    await bridge.confirm()
    return {"success": True, "session": bridge.session.state.to_dict()}


@router.post("/disconnect")
async def disconnect(request: Request) -> dict:
    bridge = _bridge(request)
    await bridge.disconnect()
    return {"success": True, "session": bridge.session.state.to_dict()}


@router.post("/sign")
async def sign(request: Request) -> dict:
    """Sign the staged message signing request."""
    outcome = await _bridge(request).sign()
    return {"success": outcome.ok, "outcome": outcome.model_dump(mode="json")}


@router.post("/send")
async def send(request: Request) -> dict:
    """Submit the staged transaction."""
    outcome = await _bridge(request).send_signed()
    return {"success": outcome.ok, "outcome": outcome.model_dump(mode="json")}
