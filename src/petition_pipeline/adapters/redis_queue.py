"""Document-store-backed queue on Redis.

Each payload is stored as a JSON document in a hash keyed by a generated id.
Unclaimed ids sit in a ready list; claimed ids move to a sorted set scored by
their lease deadline. A claim runs as one server-side script that first pushes
expired leases back onto the ready list, then pops an id and leases it, so an
id is always either ready or leased and never lost between the two.
"""

from __future__ import annotations

import json
import uuid
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from petition_pipeline.domain.errors import QueueBackendError
from petition_pipeline.domain.preprocess.context import utc_now
from petition_pipeline.domain.types import QueueItem

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from redis import Redis

    from petition_pipeline.domain.types import Payload

log = getLogger(__name__)

DEFAULT_KEY_PREFIX = "petition_queue"

# KEYS: docs hash, ready list, leases zset. ARGV: now, lease deadline.
_CLAIM_SCRIPT = """
local expired = redis.call("ZRANGEBYSCORE", KEYS[3], "-inf", ARGV[1])
for _, id in ipairs(expired) do
    redis.call("ZREM", KEYS[3], id)
    redis.call("RPUSH", KEYS[2], id)
end
local id = redis.call("LPOP", KEYS[2])
if not id then
    return nil
end
local body = redis.call("HGET", KEYS[1], id)
if not body then
    return {id}
end
redis.call("ZADD", KEYS[3], ARGV[2], id)
return {id, body}
"""


class RedisQueue:
    """Single-item queue whose items are JSON documents in Redis."""

    def __init__(
        self,
        client: Redis,
        name: str,
        *,
        visibility_timeout: timedelta = timedelta(minutes=5),
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.name = name
        self.visibility_timeout = visibility_timeout
        self._clock = clock
        self._registry_key = f"{key_prefix}:queues"
        self._docs_key = f"{key_prefix}:{name}:docs"
        self._ready_key = f"{key_prefix}:{name}:ready"
        self._leases_key = f"{key_prefix}:{name}:leases"
        self._claim = client.register_script(_CLAIM_SCRIPT)

    def create_queue(self) -> None:
        try:
            if self.client.sadd(self._registry_key, self.name):
                log.info("Provisioned queue %s", self.name)
        except RedisError as exc:
            raise QueueBackendError(f"Could not provision queue {self.name}: {exc}") from exc

    def enqueue(self, payload: Payload) -> bool:
        try:
            body = json.dumps(payload, default=str)
        except (TypeError, ValueError):
            log.exception("Payload for %s is not serialisable", self.name)
            return False
        doc_id = uuid.uuid4().hex
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self._docs_key, doc_id, body)
            pipe.rpush(self._ready_key, doc_id)
            pipe.execute()
        except RedisError:
            log.exception("Enqueue to %s failed", self.name)
            return False
        return True

    def claim_one(self) -> QueueItem | None:
        now = self._clock()
        deadline = now + self.visibility_timeout
        try:
            reply = self._claim(
                keys=[self._docs_key, self._ready_key, self._leases_key],
                args=[now.timestamp(), deadline.timestamp()],
            )
        except RedisError as exc:
            raise QueueBackendError(f"Claim from {self.name} failed: {exc}") from exc
        if reply is None:
            return None
        doc_id = _text(reply[0])
        if len(reply) < 2:
            # document vanished under us; hand back an empty artifact without a lease
            return QueueItem(handle=doc_id, payload={})
        return QueueItem(handle=doc_id, payload=_decode(_text(reply[1])))

    def delete_one(self, item: QueueItem) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hdel(self._docs_key, item.handle)
            pipe.zrem(self._leases_key, item.handle)
            pipe.execute()
        except RedisError as exc:
            raise QueueBackendError(f"Delete from {self.name} failed: {exc}") from exc

    def count(self) -> int:
        try:
            return int(self.client.hlen(self._docs_key))
        except RedisError as exc:
            raise QueueBackendError(f"Count of {self.name} failed: {exc}") from exc


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _decode(body: str) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError:
        log.warning("Queue document is not valid JSON")
        return {}
    return payload if isinstance(payload, dict) else {}
