from __future__ import annotations

from collections import deque
from datetime import timedelta
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from petition_pipeline.adapters.redis_queue import RedisQueue
from petition_pipeline.domain.errors import QueueBackendError
from tests.support.payloads import FIXED_NOW, make_payload


class _FakeRedis:
    """Just enough of the redis-py client surface for the queue, with byte replies."""

    def __init__(self) -> None:
        self.sets: dict[str, set[str]] = {}
        self.hashes: dict[str, dict[str, bytes]] = {}
        self.lists: dict[str, deque[str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.down = False

    def ensure_up(self) -> None:
        if self.down:
            raise RedisConnectionError("connection refused")

    def sadd(self, key: str, member: str) -> int:
        self.ensure_up()
        members = self.sets.setdefault(key, set())
        added = member not in members
        members.add(member)
        return int(added)

    def hset(self, key: str, field: str, value: str) -> int:
        self.ensure_up()
        self.hashes.setdefault(key, {})[field] = value.encode()
        return 1

    def hdel(self, key: str, field: str) -> int:
        self.ensure_up()
        return int(self.hashes.get(key, {}).pop(field, None) is not None)

    def hlen(self, key: str) -> int:
        self.ensure_up()
        return len(self.hashes.get(key, {}))

    def rpush(self, key: str, value: str) -> int:
        self.ensure_up()
        items = self.lists.setdefault(key, deque())
        items.append(value)
        return len(items)

    def zrem(self, key: str, member: str) -> int:
        self.ensure_up()
        return int(self.zsets.get(key, {}).pop(member, None) is not None)

    def pipeline(self, *, transaction: bool = True) -> _FakePipeline:
        _ = transaction
        return _FakePipeline(self)

    def register_script(self, script: str) -> _FakeClaimScript:
        return _FakeClaimScript(self, script)


class _FakeClaimScript:
    """Runs the claim script's steps in-process, all or nothing like a server-side script."""

    def __init__(self, client: _FakeRedis, source: str) -> None:
        self.client = client
        self.source = source
        self.calls: list[tuple[list[str], list[float]]] = []

    def __call__(self, keys: list[str], args: list[float]) -> list[bytes] | None:
        self.calls.append((keys, args))
        self.client.ensure_up()
        docs_key, ready_key, leases_key = keys
        now, deadline = args
        leases = self.client.zsets.setdefault(leases_key, {})
        ready = self.client.lists.setdefault(ready_key, deque())
        for member in sorted(m for m, score in leases.items() if score <= now):
            del leases[member]
            ready.append(member)
        if not ready:
            return None
        doc_id = ready.popleft()
        body = self.client.hashes.get(docs_key, {}).get(doc_id)
        if body is None:
            return [doc_id.encode()]
        leases[doc_id] = deadline
        return [doc_id.encode(), body]


class _FakePipeline:
    def __init__(self, client: _FakeRedis) -> None:
        self.client = client
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str) -> Any:
        def queue_call(*args: Any) -> _FakePipeline:
            self.calls.append((name, args))
            return self

        return queue_call

    def execute(self) -> list[Any]:
        return [getattr(self.client, name)(*args) for name, args in self.calls]


class _Clock:
    def __init__(self) -> None:
        self.now = FIXED_NOW

    def __call__(self) -> Any:
        return self.now


@pytest.fixture
def client() -> _FakeRedis:
    return _FakeRedis()


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def queue(client: _FakeRedis, clock: _Clock) -> RedisQueue:
    queue = RedisQueue(client, "validations", visibility_timeout=timedelta(minutes=5), clock=clock)  # type: ignore[arg-type]
    queue.create_queue()
    return queue


def test_create_queue_registers_name_once(client: _FakeRedis, queue: RedisQueue) -> None:
    queue.create_queue()

    assert client.sets["petition_queue:queues"] == {"validations"}


def test_enqueue_claim_delete_cycle(queue: RedisQueue) -> None:
    assert queue.enqueue(make_payload("k-1"))
    assert queue.count() == 1

    item = queue.claim_one()

    assert item is not None
    assert item.key == "k-1"
    assert queue.claim_one() is None

    queue.delete_one(item)

    assert queue.count() == 0


def test_expired_lease_is_requeued_once(queue: RedisQueue, clock: _Clock) -> None:
    queue.enqueue(make_payload("k-1"))
    first = queue.claim_one()
    assert first is not None

    clock.now = FIXED_NOW + timedelta(minutes=6)
    again = queue.claim_one()

    assert again is not None
    assert again.key == "k-1"
    assert queue.claim_one() is None


def test_unexpired_lease_stays_hidden(queue: RedisQueue, clock: _Clock) -> None:
    queue.enqueue(make_payload("k-1"))
    queue.claim_one()

    clock.now = FIXED_NOW + timedelta(minutes=4)

    assert queue.claim_one() is None
    assert queue.count() == 1


def test_missing_document_yields_empty_item(client: _FakeRedis, queue: RedisQueue) -> None:
    client.rpush("petition_queue:validations:ready", "ghost")

    item = queue.claim_one()

    assert item is not None
    assert item.payload == {}
    assert client.zsets["petition_queue:validations:leases"] == {}
    assert queue.claim_one() is None


def test_invalid_json_document_yields_empty_payload(client: _FakeRedis, queue: RedisQueue) -> None:
    client.hset("petition_queue:validations:docs", "broken", "{oops")
    client.rpush("petition_queue:validations:ready", "broken")

    item = queue.claim_one()

    assert item is not None
    assert item.payload == {}
    assert item.key is None


def test_connection_errors_become_queue_errors(client: _FakeRedis, queue: RedisQueue) -> None:
    client.down = True

    with pytest.raises(QueueBackendError):
        queue.claim_one()
    with pytest.raises(QueueBackendError):
        queue.count()
    assert not queue.enqueue(make_payload("k-1"))


def test_claim_is_a_single_script_call(client: _FakeRedis, queue: RedisQueue) -> None:
    queue.enqueue(make_payload("k-1"))

    item = queue.claim_one()

    script = queue._claim  # noqa: SLF001
    assert isinstance(script, _FakeClaimScript)
    assert "LPOP" in script.source
    assert "ZADD" in script.source
    assert script.calls == [
        (
            [
                "petition_queue:validations:docs",
                "petition_queue:validations:ready",
                "petition_queue:validations:leases",
            ],
            [FIXED_NOW.timestamp(), (FIXED_NOW + timedelta(minutes=5)).timestamp()],
        )
    ]
    assert item is not None
    assert client.zsets["petition_queue:validations:leases"] == {
        item.handle: (FIXED_NOW + timedelta(minutes=5)).timestamp()
    }


def test_failed_claim_leaves_item_claimable(client: _FakeRedis, queue: RedisQueue) -> None:
    queue.enqueue(make_payload("k-1"))
    client.down = True

    with pytest.raises(QueueBackendError):
        queue.claim_one()

    client.down = False
    item = queue.claim_one()

    assert item is not None
    assert item.key == "k-1"
    assert queue.count() == 1
