# tests/bundleforge/host/test_event_hub.py
import pytest

from bundleforge.host.events import EventHub


@pytest.mark.asyncio
async def test_emit_runs_sync_and_async_handlers():
    hub = EventHub()
    calls: list[tuple] = []

    def onSync(*args):
        calls.append(("sync", args))

    async def onAsync(*args):
        calls.append(("async", args))

    hub.on("did-install-mod", onSync)
    hub.on("did-install-mod", onAsync)
    hub.emit("did-install-mod", "game", "dl-1", "pkg-1")
    assert calls == [("sync", ("game", "dl-1", "pkg-1"))]

    await hub.drain()
    assert calls[-1] == ("async", ("game", "dl-1", "pkg-1"))


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(caplog):
    hub = EventHub()
    calls: list[str] = []

    def broken(*args):
        raise RuntimeError("handler broke")

    async def brokenAsync(*args):
        raise RuntimeError("async handler broke")

    hub.on("evt", broken)
    hub.on("evt", brokenAsync)
    hub.on("evt", lambda *args: calls.append("ok"))

    hub.emit("evt")
    await hub.drain()

    assert calls == ["ok"]
    assert "handler broke" in caplog.text
    assert "async handler broke" in caplog.text


@pytest.mark.asyncio
async def test_emit_and_await_collects_results():
    hub = EventHub()

    async def double(value):
        return value * 2

    def broken(value):
        raise ValueError("nope")

    hub.on("evt", double)
    hub.on("evt", broken)
    hub.on("evt", lambda value: value + 1)

    assert await hub.emitAndAwait("evt", 5) == [10, 6]


@pytest.mark.asyncio
async def test_unsubscribe():
    hub = EventHub()
    calls: list[int] = []
    unsubscribe = hub.on("evt", lambda: calls.append(1))

    unsubscribe()
    unsubscribe()
    hub.emit("evt")
    await hub.emitAndAwait("unknown-event")

    assert calls == []


def test_hubs_are_independent():
    first, second = EventHub(), EventHub()
    calls: list[str] = []
    first.on("evt", lambda: calls.append("first"))

    second.emit("evt")
    assert calls == []
