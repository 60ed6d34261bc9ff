"""
Case Warden - Store Event Tests
===============================

Tests for the store event bus and the events mutations publish.
"""

import asyncio

import pytest

from src.core.database import (
    ActionType,
    CaseEntry,
    ModerationEventBus,
    StoreEventType,
)

from tests.conftest import GUILD_ID, USER_ID


def entry() -> CaseEntry:
    return CaseEntry(guild_id=GUILD_ID, user_id=USER_ID, action=ActionType.WARN, reason="Spam")


class TestEventBus:
    """Tests for ModerationEventBus."""

    def test_subscribe_and_unsubscribe(self):
        """Test a callback stops receiving after unsubscribe."""
        bus = ModerationEventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        bus.publish(StoreEventType.CASES_UPDATED, {"case_id": "a"})
        unsubscribe()
        bus.publish(StoreEventType.CASES_UPDATED, {"case_id": "b"})

        assert [e.payload["case_id"] for e in received] == ["a"]
        assert bus.subscriber_count == 0

    def test_unsubscribe_twice_is_harmless(self):
        """Test calling the unsubscribe handle again does nothing."""
        bus = ModerationEventBus()
        unsubscribe = bus.subscribe(lambda event: None)
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count == 0

    def test_failing_listener_isolated(self):
        """Test one failing listener does not stop the others."""
        bus = ModerationEventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        bus.publish(StoreEventType.STATS_UPDATED, {})

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_subscription_queue(self):
        """Test a queue subscription receives events and is removed on exit."""
        bus = ModerationEventBus()

        async with bus.subscription() as queue:
            assert bus.subscriber_count == 1
            bus.publish(StoreEventType.CASE_CREATED, {"case_id": "a"})
            event = await asyncio.wait_for(queue.get(), timeout=1)
            assert event.type is StoreEventType.CASE_CREATED

        assert bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        """Test a full queue drops events for that subscriber only."""
        bus = ModerationEventBus()
        received = []
        bus.subscribe(received.append)

        async with bus.subscription(maxsize=1) as queue:
            bus.publish(StoreEventType.CASES_UPDATED, {"n": 1})
            bus.publish(StoreEventType.CASES_UPDATED, {"n": 2})

            assert queue.qsize() == 1
            assert bus.dropped == 1
            assert len(received) == 2


class TestStoreEvents:
    """Tests for events published by CaseStore mutations."""

    @pytest.mark.asyncio
    async def test_record_case_event_order(self, store):
        """Test a new case publishes created, then updated, then stats."""
        received = []
        store.on_moderation_store_event(received.append)

        result = await store.record_case(entry())

        assert [e.type for e in received] == [
            StoreEventType.CASE_CREATED,
            StoreEventType.CASES_UPDATED,
            StoreEventType.STATS_UPDATED,
        ]
        assert received[0].payload["case_id"] == result.case.id
        assert received[0].payload["status"] == "open"
        assert received[2].payload["warnings"] == 1

    @pytest.mark.asyncio
    async def test_member_message_events(self, store):
        """Test a status-changing message publishes message and status events."""
        case = (await store.record_case(entry())).case
        received = []
        store.on_moderation_store_event(received.append)

        await store.append_case_message(GUILD_ID, case.id, "member", "hello")

        assert [e.type for e in received] == [
            StoreEventType.CASE_MESSAGE,
            StoreEventType.CASE_STATUS,
            StoreEventType.CASES_UPDATED,
            StoreEventType.STATS_UPDATED,
        ]
        assert received[0].payload["message"]["body"] == "hello"
        assert received[1].payload["status"] == "pending-response"

    @pytest.mark.asyncio
    async def test_noop_publishes_nothing(self, store):
        """Test a mutation that changes nothing publishes nothing."""
        case = (await store.record_case(entry())).case
        received = []
        store.on_moderation_store_event(received.append)

        await store.update_case_status(GUILD_ID, case.id, "open")

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_mutation(self, store):
        """Test a listener error never fails the committed mutation."""
        def broken(event):
            raise RuntimeError("boom")

        store.on_moderation_store_event(broken)
        result = await store.record_case(entry())

        assert (await store.get_case(result.case.id)) is not None

    @pytest.mark.asyncio
    async def test_delete_events(self, store):
        """Test deletion publishes deleted, updated and stats events."""
        case = (await store.record_case(entry())).case
        received = []
        store.on_moderation_store_event(received.append)

        await store.delete_case(GUILD_ID, case.id, actor_type="moderator", actor_id="3000")

        assert [e.type for e in received] == [
            StoreEventType.CASE_DELETED,
            StoreEventType.CASES_UPDATED,
            StoreEventType.STATS_UPDATED,
        ]
        assert received[1].payload["deleted"] is True
        assert received[2].payload["warnings"] == 0
