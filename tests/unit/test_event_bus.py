from __future__ import annotations

import asyncio
import threading

from apps.api.services.notifier import EventBus


def test_publish_reaches_matching_subscribers_across_threads() -> None:
    bus = EventBus()

    async def scenario():
        all_sub = bus.subscribe()
        alerts_sub = bus.subscribe(["alerts"])
        worker = threading.Thread(target=lambda: bus.publish("matches", {"id": "m1"}))
        worker.start()
        worker.join()
        bus.publish("alerts", {"id": "a1"})
        first = await asyncio.wait_for(all_sub.queue.get(), timeout=1)
        second = await asyncio.wait_for(all_sub.queue.get(), timeout=1)
        only = await asyncio.wait_for(alerts_sub.queue.get(), timeout=1)
        assert alerts_sub.queue.empty()
        bus.unsubscribe(all_sub)
        bus.unsubscribe(alerts_sub)
        return first, second, only

    first, second, only = asyncio.run(scenario())
    assert first == {"table": "matches", "type": "INSERT", "record": {"id": "m1"}}
    assert second["record"]["id"] == "a1"
    assert only["table"] == "alerts"
    assert bus.subscriber_count == 0


def test_recent_history_is_bounded_and_filterable() -> None:
    bus = EventBus(history_size=3)
    for idx in range(5):
        bus.publish("alerts" if idx % 2 else "matches", {"id": idx})
    assert [e["record"]["id"] for e in bus.recent(10)] == [2, 3, 4]
    assert [e["record"]["id"] for e in bus.recent(10, ["alerts"])] == [3]
    assert bus.recent(0) == []
    bus.clear()
    assert bus.recent(10) == []


def test_subscribe_with_history_splits_replay_and_live_events() -> None:
    bus = EventBus()
    bus.publish("alerts", {"id": "old"})

    async def scenario():
        sub, backlog = bus.subscribe_with_history(["alerts"], 10)
        bus.publish("alerts", {"id": "new"})
        live = await asyncio.wait_for(sub.queue.get(), timeout=1)
        assert sub.queue.empty()
        bus.unsubscribe(sub)
        return backlog, live

    backlog, live = asyncio.run(scenario())
    assert [e["record"]["id"] for e in backlog] == ["old"]
    assert live["record"]["id"] == "new"
