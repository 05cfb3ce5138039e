import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from unified_ledger.domain.dates import to_iso
from unified_ledger.domain.enums import RefreshState
from unified_ledger.errors import MissingCredentialsError
from unified_ledger.sync.cache import SourceCache
from unified_ledger.sync.lock import AdvisoryLock
from unified_ledger.sync.stream import FinanceStream, FinanceStreamEvent
from unified_ledger.sync.user_config import USER_CONFIG_KEY, UserConfigStore, token_expired


@pytest.mark.unit
class TestAdvisoryLock:

    def test_acquire_then_contend(self, store, now):
        # Arrange
        lock = AdvisoryLock(store)

        # Act
        first = asyncio.run(lock.acquire("trading212-export", 90, owner="a", now=now))
        second = asyncio.run(lock.acquire("trading212-export", 90, owner="b", now=now))

        # Assert
        assert first == "a"
        assert second is None
        record = asyncio.run(store.get_item("locks/trading212-export"))
        assert record["owner"] == "a"
        assert record["expiresAt"] == to_iso(now + timedelta(seconds=90))

    def test_expired_lock_can_be_taken_over(self, store, now):
        lock = AdvisoryLock(store)
        asyncio.run(lock.acquire("x", 60, owner="a", now=now))

        later = now + timedelta(seconds=61)

        assert asyncio.run(lock.acquire("x", 60, owner="b", now=later)) == "b"

    def test_release(self, store, now):
        lock = AdvisoryLock(store)
        asyncio.run(lock.acquire("x", 60, owner="a", now=now))

        assert asyncio.run(lock.release("x", "a")) is True
        assert asyncio.run(store.get_item("locks/x")) is None
        assert asyncio.run(lock.acquire("x", 60, owner="b", now=now)) == "b"

    def test_release_leaves_someone_elses_lock(self, store, now):
        lock = AdvisoryLock(store)
        asyncio.run(lock.acquire("x", 60, owner="b", now=now))

        assert asyncio.run(lock.release("x", "a")) is False
        assert asyncio.run(store.get_item("locks/x"))["owner"] == "b"

    def test_expired_holder_cannot_release_takeover(self, store, now):
        lock = AdvisoryLock(store)
        asyncio.run(lock.acquire("trading212-export", 90, owner="a", now=now - timedelta(seconds=200)))
        asyncio.run(lock.acquire("trading212-export", 90, owner="b", now=now))

        assert asyncio.run(lock.release("trading212-export", "a")) is False
        assert asyncio.run(store.get_item("locks/trading212-export"))["owner"] == "b"

    def test_generated_owner(self, store):
        owner = asyncio.run(AdvisoryLock(store).acquire("locks/y", 10))

        assert owner
        assert asyncio.run(store.get_item("locks/y"))["owner"] == owner


@pytest.mark.unit
class TestSourceCache:

    def test_missing_and_malformed_entries_read_empty(self, store):
        cache = SourceCache(store, "trading212.json")

        assert asyncio.run(cache.read()).data is None

        asyncio.run(store.set_item("trading212.json", ["legacy", "shape"]))
        cached = asyncio.run(cache.read())

        assert cached.data is None
        assert cached.last_updated is None

    def test_write_stamps_last_updated(self, store):
        cache = SourceCache(store, "cards.json")

        written = asyncio.run(cache.write([{"x": 1}]))
        read = asyncio.run(cache.read())

        assert read.data == [{"x": 1}]
        assert read.last_updated == written.last_updated is not None

    def test_stale_without_sync(self, store):
        assert asyncio.run(SourceCache(store, "accounts.json").is_stale()) is True

    def test_freshness_follows_central_sync_time(self, store, stale_sync):
        cache = SourceCache(store, "accounts.json")
        asyncio.run(store.set_item(USER_CONFIG_KEY, stale_sync))

        assert asyncio.run(cache.is_stale(1)) is True
        assert asyncio.run(cache.is_stale(3)) is False

        asyncio.run(cache.mark_synced())
        assert asyncio.run(cache.is_stale(1)) is False

    def test_legacy_bare_user_config(self, store):
        recent = to_iso(datetime.now(timezone.utc) - timedelta(minutes=5))
        asyncio.run(store.set_item(USER_CONFIG_KEY, {"lastSyncedAt": recent}))

        cache = SourceCache(store, "accounts.json")

        assert asyncio.run(cache.get_last_synced_at()) == recent
        assert asyncio.run(cache.is_stale()) is False

    def test_request_resync_forces_staleness(self, store):
        cache = SourceCache(store, "accounts.json")
        asyncio.run(cache.mark_synced())

        asyncio.run(cache.request_resync())

        assert asyncio.run(cache.is_stale()) is True


@pytest.mark.unit
class TestUserConfig:

    def test_update_preserves_other_fields(self, user_config, store):
        asyncio.run(user_config.write({"trading212Account": {"key": "k", "secret": "s"}}))

        asyncio.run(user_config.mark_synced())

        raw = asyncio.run(store.get_item(USER_CONFIG_KEY))
        assert raw["data"]["trading212Account"] == {"key": "k", "secret": "s"}
        assert raw["data"]["lastSyncedAt"]

    def test_missing_trading_credentials(self, user_config):
        with pytest.raises(MissingCredentialsError):
            asyncio.run(user_config.trading_credentials())

    def test_connect_trading(self, user_config):
        asyncio.run(user_config.connect_trading("key", "secret"))

        assert asyncio.run(user_config.trading_credentials()) == ("key", "secret")
        assert asyncio.run(user_config.is_trading_connected()) is True

    def test_connect_requires_both_values(self, user_config):
        with pytest.raises(MissingCredentialsError):
            asyncio.run(user_config.connect_trading("key", ""))

    def test_token_expiry(self, now):
        assert token_expired(None, now)
        assert token_expired(int((now - timedelta(minutes=1)).timestamp() * 1000), now)
        assert not token_expired(int((now + timedelta(hours=1)).timestamp() * 1000), now)


@pytest.mark.unit
class TestFinanceStream:

    def test_subscriber_gets_live_events(self):
        async def scenario():
            stream = FinanceStream(keepalive_seconds=1)
            subscription = stream.subscribe()
            stream.publish_status("trading212", RefreshState.PENDING)
            return await subscription.get()

        event = asyncio.run(scenario())

        assert event == FinanceStreamEvent("status", {"source": "trading212", "state": "pending"})

    def test_new_subscriber_replays_last_status(self):
        async def scenario():
            stream = FinanceStream(keepalive_seconds=1)
            stream.publish_status("trading212", RefreshState.PENDING)
            stream.publish_status("trading212", RefreshState.ERROR, "boom")
            stream.publish_update("credit-card", {"n": 1})
            subscription = stream.subscribe()
            return [await subscription.get(), await subscription.get()]

        events = asyncio.run(scenario())

        assert events[0].payload == {"source": "trading212", "state": "error", "error": "boom"}
        assert events[1].payload == {"source": "credit-card", "state": "ready"}

    def test_keepalive_ping_when_idle(self):
        async def scenario():
            subscription = FinanceStream(keepalive_seconds=0.01).subscribe()
            return await subscription.get()

        assert asyncio.run(scenario()).type == "ping"

    def test_close_deregisters_and_ends_iteration(self):
        async def scenario():
            stream = FinanceStream(keepalive_seconds=1)
            subscription = stream.subscribe()
            stream.publish_status("bank-account", RefreshState.READY)
            subscription.close()
            stream.publish_status("bank-account", RefreshState.PENDING)
            events = [event async for event in subscription]
            return stream, events

        stream, events = asyncio.run(scenario())

        assert stream.subscriber_count == 0
        assert [e.payload["state"] for e in events] == ["ready"]

    def test_sse_encoding(self):
        event = FinanceStreamEvent.status("trading212", RefreshState.READY)

        assert event.to_sse() == (
            'event: status\ndata: {"source": "trading212", "state": "ready"}\n\n'
        )
