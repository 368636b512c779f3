"""Tests for the reconciliation loop."""

import asyncio

import pytest

from helpers import ACCOUNT, RECIPIENT, wait_for
from walletbridge.executor import RequestExecutor
from walletbridge.queue.models import OutcomeRecord
from walletbridge.reconcile import ReconciliationLoop

TX1 = {"id": "t1", "request": {"to": RECIPIENT, "value": "0x1"}}
TX2 = {"id": "t2", "request": {"to": RECIPIENT, "value": "0x2"}}
SIG1 = {"id": "s1", "signType": "PersonalSign", "request": {"message": "hello", "address": ACCOUNT}}


class TestConnectionSync:
    """Tests for connection sync."""

    @pytest.mark.asyncio
    async def test_clears_stale_queue_connection(self, fake_queue, queue_client, session):
        fake_queue.connection = [ACCOUNT, 1]
        loop = ReconciliationLoop(session, queue_client)

        await loop.tick()

        assert fake_queue.connection is None

    @pytest.mark.asyncio
    async def test_unconfirmed_session_is_not_pushed(self, fake_queue, queue_client, session):
        await session.connect()
        loop = ReconciliationLoop(session, queue_client)
        before = len(fake_queue.calls("POST", "/api/connection"))

        await loop.tick()

        assert len(fake_queue.calls("POST", "/api/connection")) == before
        assert fake_queue.connection is None

    @pytest.mark.asyncio
    async def test_pushes_when_queue_lost_connection(self, fake_queue, queue_client, confirmed_session):
        fake_queue.connection = None
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert fake_queue.connection == [ACCOUNT, 1]

    @pytest.mark.asyncio
    async def test_pushes_when_queue_disagrees(self, fake_queue, queue_client, confirmed_session):
        fake_queue.connection = [ACCOUNT, 10]
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert fake_queue.connection == [ACCOUNT, 1]

    @pytest.mark.asyncio
    async def test_address_compare_is_case_insensitive(self, fake_queue, queue_client, confirmed_session):
        fake_queue.connection = [ACCOUNT.lower(), 1]
        loop = ReconciliationLoop(confirmed_session, queue_client)
        before = len(fake_queue.calls("POST", "/api/connection"))

        await loop.tick()

        assert len(fake_queue.calls("POST", "/api/connection")) == before

    @pytest.mark.asyncio
    async def test_connection_pushed_before_fetch(self, fake_queue, queue_client, session):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(session, queue_client)

        await session.connect()
        await session.confirm()
        fake_queue.connection = None  # queue dropped it again
        fake_queue.log.clear()
        await loop.tick()

        paths = fake_queue.paths()
        assert paths.index("POST /api/connection") < paths.index("GET /api/transaction/request")
        assert fake_queue.calls("POST", "/api/connection") == [[ACCOUNT, 1]]


class TestPendingFetch:
    """Tests for fetching and staging pending requests."""

    @pytest.mark.asyncio
    async def test_no_fetch_before_confirm(self, fake_queue, queue_client, session):
        fake_queue.add_transaction(TX1)
        await session.connect()
        loop = ReconciliationLoop(session, queue_client)

        await loop.tick()

        assert session.slot.staged is None
        assert fake_queue.calls("GET", "/api/transaction/request") == []

    @pytest.mark.asyncio
    async def test_stages_request(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert confirmed_session.slot.staged.id == "t1"
        assert confirmed_session.slot.staged.kind == "transaction"

    @pytest.mark.asyncio
    async def test_same_id_is_idempotent(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        slot = confirmed_session.slot

        await loop.tick()
        staged = slot.staged
        slot.outcome = OutcomeRecord(request_id="earlier", kind="signing", signature="0x1")
        await loop.tick()

        assert slot.staged is staged
        assert slot.outcome.request_id == "earlier"

    @pytest.mark.asyncio
    async def test_new_id_clears_previous_outcome(self, fake_queue, queue_client, confirmed_session):
        loop = ReconciliationLoop(confirmed_session, queue_client)
        slot = confirmed_session.slot
        slot.outcome = OutcomeRecord(request_id="t0", kind="transaction", hash="0xold")
        slot.receipt = {"status": "0x1"}

        fake_queue.add_transaction(TX1)
        await loop.tick()

        assert slot.staged.id == "t1"
        assert slot.outcome is None
        assert slot.receipt is None

    @pytest.mark.asyncio
    async def test_cleared_when_queue_drops_request(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        await loop.tick()

        fake_queue.pending["transaction"].clear()
        await loop.tick()

        assert confirmed_session.slot.staged is None
        assert confirmed_session.slot.last_seen_id is None

    @pytest.mark.asyncio
    async def test_only_one_staged_with_both_queues_pending(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_signing(SIG1)
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()
        assert confirmed_session.slot.staged.id == "t1"

        # Signing request surfaces once the transaction is gone
        fake_queue.pending["transaction"].clear()
        await loop.tick()
        await loop.tick()
        assert confirmed_session.slot.staged.id == "s1"

    @pytest.mark.asyncio
    async def test_staged_signing_not_replaced_by_new_transaction(
        self, fake_queue, queue_client, confirmed_session
    ):
        fake_queue.add_signing(SIG1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        await loop.tick()
        assert confirmed_session.slot.staged.id == "s1"

        fake_queue.add_transaction(TX1)
        fake_queue.log.clear()
        await loop.tick()
        await loop.tick()

        assert confirmed_session.slot.staged.id == "s1"
        assert fake_queue.calls("GET", "/api/transaction/request") == []

    @pytest.mark.asyncio
    async def test_staged_request_kept_when_other_id_at_head(
        self, fake_queue, queue_client, confirmed_session
    ):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        await loop.tick()

        fake_queue.pending["transaction"] = [TX2]
        await loop.tick()

        assert confirmed_session.slot.staged.id == "t1"

    @pytest.mark.asyncio
    async def test_malformed_transaction_does_not_block_signing(
        self, fake_queue, queue_client, confirmed_session
    ):
        fake_queue.add_transaction({"id": 5, "request": {}})
        fake_queue.add_signing(SIG1)
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert confirmed_session.slot.staged.id == "s1"

    @pytest.mark.asyncio
    async def test_no_fetch_while_executing(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        await loop.tick()

        confirmed_session.slot.executing = True
        fake_queue.log.clear()
        fake_queue.pending["transaction"] = [TX2]
        await loop.tick()

        assert confirmed_session.slot.staged.id == "t1"
        assert fake_queue.calls("GET", "/api/transaction/request") == []

    @pytest.mark.asyncio
    async def test_full_cycle_single_push(self, fake_queue, queue_client, confirmed_session):
        """t1, t1, then empty after the response: staged once, pushed once, cleared once."""
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client)
        executor = RequestExecutor(confirmed_session, queue_client, loop=loop, receipt_poll_interval=0.01)
        slot = confirmed_session.slot
        staged_ids = []
        stage = slot.stage

        def counting_stage(request):
            staged_ids.append(request.id)
            stage(request)

        slot.stage = counting_stage

        await loop.tick()
        await loop.tick()
        assert slot.staged.id == "t1"

        # Queue keeps reporting t1 until it processes the response
        await executor.send()
        fake_queue.pending["transaction"] = [TX1]
        await loop.tick()
        assert slot.staged is None
        assert slot.last_seen_id == "t1"

        fake_queue.pending["transaction"].clear()
        await loop.tick()
        assert slot.last_seen_id is None

        assert staged_ids == ["t1"]
        assert fake_queue.responses["transaction"] == [
            {"id": "t1", "hash": slot.outcome.hash, "error": None}
        ]
        await executor.close()


class TestTickResilience:
    """Tests that failures never stop the loop."""

    @pytest.mark.asyncio
    async def test_tick_swallows_network_errors(self, fake_queue, queue_client, confirmed_session):
        fake_queue.fail = True
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert confirmed_session.slot.staged is None

    @pytest.mark.asyncio
    async def test_tick_swallows_malformed_items(self, fake_queue, queue_client, confirmed_session):
        fake_queue.add_transaction({"request": {"to": RECIPIENT}})
        loop = ReconciliationLoop(confirmed_session, queue_client)

        await loop.tick()

        assert confirmed_session.slot.staged is None

    @pytest.mark.asyncio
    async def test_loop_recovers_after_outage(self, fake_queue, queue_client, confirmed_session):
        fake_queue.fail = True
        fake_queue.add_transaction(TX1)
        loop = ReconciliationLoop(confirmed_session, queue_client, interval=0.01)
        loop.start()
        try:
            await asyncio.sleep(0.05)
            assert loop.running
            fake_queue.fail = False
            await wait_for(lambda: confirmed_session.slot.staged is not None)
        finally:
            await loop.stop()

        assert not loop.running

    @pytest.mark.asyncio
    async def test_poll_now_wakes_loop(self, fake_queue, queue_client, confirmed_session):
        loop = ReconciliationLoop(confirmed_session, queue_client, interval=30.0)
        loop.start()
        try:
            await wait_for(lambda: len(fake_queue.calls("GET", "/api/connection")) == 1)
            fake_queue.add_transaction(TX1)
            loop.poll_now()
            await wait_for(lambda: confirmed_session.slot.staged is not None, timeout=1.0)
        finally:
            await loop.stop()
