from __future__ import annotations

import asyncio

import pytest

from adminx.events import EventPublisher
from adminx.models.events import SignedOut, TemplateUsed


def test_publish_and_drain_in_order() -> None:
    events = EventPublisher()
    events.publish(SignedOut(userId="a"))
    events.publish(TemplateUsed(templateId="t", successful=True))

    assert len(events) == 2
    assert [e.type for e in events.drain()] == ["signed_out", "template_used"]
    assert events.drain() == []


def test_full_queue_drops_oldest(caplog: pytest.LogCaptureFixture) -> None:
    events = EventPublisher(capacity=2)

    for user in ("a", "b", "c"):
        events.publish(SignedOut(userId=user))

    assert events.dropped == 1
    assert [e.user_id for e in events.drain()] == ["b", "c"]
    assert "dropped signed_out" in caplog.text


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        EventPublisher(capacity=0)


@pytest.mark.asyncio
async def test_stream_yields_published_events() -> None:
    events = EventPublisher()
    received: list[str] = []

    async def consume() -> None:
        async for event in events.stream():
            received.append(event.user_id)
            if len(received) == 2:
                return

    consumer = asyncio.create_task(consume())
    events.publish(SignedOut(userId="a"))
    events.publish(SignedOut(userId="b"))
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["a", "b"]
