"""Tests for the approval manager, console approver and PIN store."""

import asyncio
import io
import os
import sys
import threading

import pytest
from rich.console import Console

from shellgate.hitl.approval import (
    ApprovalManager,
    ApprovalRequest,
    ApprovalResponse,
    RequestType,
    ResponseKind,
    check_pin,
)
from shellgate.hitl.console import PROMPT_THREAD_NAME, ConsoleApprover
from shellgate.hitl.pin import PinStore


def bash_request(*patterns: str, session_id: str = "s1") -> ApprovalRequest:
    return ApprovalRequest(
        type=RequestType.BASH,
        patterns=list(patterns),
        title="Run command",
        session_id=session_id,
    )


class TestPinStore:
    """Tests for PIN storage."""

    def test_set_and_verify(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")

        assert not store.exists()
        store.set("4321")

        assert store.exists()
        assert store.verify("4321")
        assert not store.verify("1234")

    def test_pin_not_stored_in_clear(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("987654")

        assert "987654" not in store.path.read_text()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_mode(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")

        assert os.stat(store.path).st_mode & 0o777 == 0o600

    def test_short_pin_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            PinStore(tmp_path / "pin.json").set("12")

    def test_remove(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")

        assert store.remove()
        assert not store.remove()
        assert not store.verify("4321")


class TestCheckPin:
    """Tests for PIN verification of responses."""

    def test_wrong_pin_becomes_rejection(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")
        request = ApprovalRequest(type=RequestType.PIN, patterns=["git push *"], title="PIN")

        response = check_pin(request, ApprovalResponse.once(pin="0000"), store)

        assert response.kind is ResponseKind.REJECT
        assert response.message == "Invalid PIN"

    def test_correct_pin_passes(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")
        request = ApprovalRequest(type=RequestType.PIN, patterns=["git push *"], title="PIN")

        assert check_pin(request, ApprovalResponse.once(pin="4321"), store).approved

    def test_non_pin_requests_untouched(self):
        response = ApprovalResponse.once()

        assert check_pin(bash_request("ls *"), response, None) is response


class TestApprovalManager:
    """Tests for the asyncio approval manager."""

    @pytest.mark.asyncio
    async def test_respond_resolves_request(self):
        """Test that respond() completes the waiting ask()."""
        manager = ApprovalManager()
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        task = asyncio.ensure_future(manager.ask(bash_request("ls *")))
        await asyncio.sleep(0)

        assert len(manager.pending()) == 1
        assert manager.respond(seen[0].id, ApprovalResponse.once())
        response = await task

        assert response.kind is ResponseKind.ONCE
        assert manager.pending() == []

    @pytest.mark.asyncio
    async def test_respond_unknown_request(self):
        assert not ApprovalManager().respond("nope", ApprovalResponse.once())

    @pytest.mark.asyncio
    async def test_always_covers_later_requests(self):
        """Test that an always answer auto-approves covered patterns."""
        manager = ApprovalManager()
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        task = asyncio.ensure_future(manager.ask(bash_request("npm *")))
        await asyncio.sleep(0)
        manager.respond(seen[0].id, ApprovalResponse.always())
        await task

        response = await manager.ask(bash_request("npm *"))

        assert response.kind is ResponseKind.ALWAYS
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_always_is_per_session(self):
        manager = ApprovalManager()
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        task = asyncio.ensure_future(manager.ask(bash_request("npm *", session_id="a")))
        await asyncio.sleep(0)
        manager.respond(seen[0].id, ApprovalResponse.always())
        await task

        assert manager.is_covered(bash_request("npm *", session_id="a"))
        assert not manager.is_covered(bash_request("npm *", session_id="b"))

        manager.clear_session("a")
        assert not manager.is_covered(bash_request("npm *", session_id="a"))

    @pytest.mark.asyncio
    async def test_always_resolves_covered_pending(self):
        """Test that other pending requests covered by an always answer resolve."""
        manager = ApprovalManager()
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        first = asyncio.ensure_future(manager.ask(bash_request("npm *")))
        second = asyncio.ensure_future(manager.ask(bash_request("npm *")))
        await asyncio.sleep(0)
        manager.respond(seen[0].id, ApprovalResponse.always())

        assert (await first).kind is ResponseKind.ALWAYS
        assert (await second).kind is ResponseKind.ALWAYS

    @pytest.mark.asyncio
    async def test_pin_requests_never_cached(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")
        manager = ApprovalManager(pin_store=store)
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        def pin_request() -> ApprovalRequest:
            return ApprovalRequest(type=RequestType.PIN, patterns=["git push *"], title="PIN")

        task = asyncio.ensure_future(manager.ask(pin_request()))
        await asyncio.sleep(0)
        manager.respond(seen[0].id, ApprovalResponse.always(pin="4321"))
        assert (await task).approved

        assert not manager.is_covered(pin_request())

    @pytest.mark.asyncio
    async def test_wrong_pin_rejected(self, tmp_path):
        store = PinStore(tmp_path / "pin.json")
        store.set("4321")
        manager = ApprovalManager(pin_store=store)
        seen: list[ApprovalRequest] = []
        manager.subscribe(seen.append)

        task = asyncio.ensure_future(
            manager.ask(ApprovalRequest(type=RequestType.PIN, patterns=["x *"], title="PIN"))
        )
        await asyncio.sleep(0)
        manager.respond(seen[0].id, ApprovalResponse.once(pin="1111"))

        response = await task
        assert not response.approved
        assert response.message == "Invalid PIN"

    @pytest.mark.asyncio
    async def test_cancel_withdraws_request(self):
        manager = ApprovalManager()

        task = asyncio.ensure_future(manager.ask(bash_request("ls *")))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert manager.pending() == []

    @pytest.mark.asyncio
    async def test_reject_all(self):
        manager = ApprovalManager()
        tasks = [asyncio.ensure_future(manager.ask(bash_request(f"cmd{i} *"))) for i in range(2)]
        await asyncio.sleep(0)

        assert manager.reject_all("shutting down") == 2
        responses = await asyncio.gather(*tasks)
        assert all(r.kind is ResponseKind.REJECT for r in responses)
        assert responses[0].message == "shutting down"


class TestConsoleApprover:
    """Tests for the terminal approver's threading behavior."""

    @pytest.mark.asyncio
    async def test_answer_delivered(self, monkeypatch):
        approver = ConsoleApprover(console=Console(file=io.StringIO()))
        monkeypatch.setattr(approver, "prompt", lambda request: ApprovalResponse.always())

        response = await approver.ask(bash_request("ls *"))

        assert response.kind is ResponseKind.ALWAYS

    @pytest.mark.asyncio
    async def test_prompt_error_propagates(self, monkeypatch):
        approver = ConsoleApprover(console=Console(file=io.StringIO()))

        def closed_stdin(request):
            raise EOFError

        monkeypatch.setattr(approver, "prompt", closed_stdin)

        with pytest.raises(EOFError):
            await approver.ask(bash_request("ls *"))

    @pytest.mark.asyncio
    async def test_withdrawn_prompt_does_not_hold_the_loop(self, monkeypatch):
        """Test that cancelling a pending prompt returns at once on a daemon thread."""
        release = threading.Event()
        approver = ConsoleApprover(console=Console(file=io.StringIO()))

        def waiting_for_stdin(request):
            release.wait(5)
            return ApprovalResponse.once()

        monkeypatch.setattr(approver, "prompt", waiting_for_stdin)

        task = asyncio.ensure_future(approver.ask(bash_request("ls *")))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        workers = [t for t in threading.enumerate() if t.name == PROMPT_THREAD_NAME]
        assert workers
        assert all(t.daemon for t in workers)

        release.set()
        for worker in workers:
            worker.join(1)
        await asyncio.sleep(0)
