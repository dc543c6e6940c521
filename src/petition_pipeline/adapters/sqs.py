"""Managed cloud queue backed by Amazon SQS."""

from __future__ import annotations

import json
from itertools import batched
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final

from botocore.exceptions import BotoCoreError, ClientError

from petition_pipeline.domain.errors import QueueBackendError
from petition_pipeline.domain.types import QueueItem

if TYPE_CHECKING:
    from collections.abc import Sequence

    from petition_pipeline.domain.types import Payload

log = getLogger(__name__)

SQS_MAX_BATCH: Final[int] = 10

_AWS_ERRORS = (BotoCoreError, ClientError)


class SqsQueue:
    """Bulk-capable queue; every receive or delete request carries at most 10 items."""

    def __init__(
        self,
        client: Any,
        name: str,
        *,
        visibility_timeout_seconds: int = 300,
        wait_seconds: int = 0,
        max_batch: int = SQS_MAX_BATCH,
    ) -> None:
        self.client = client
        self.name = name
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self.wait_seconds = wait_seconds
        self.max_batch = max(1, min(max_batch, SQS_MAX_BATCH))
        self._queue_url: str | None = None

    @property
    def queue_url(self) -> str:
        if self._queue_url is None:
            try:
                self._queue_url = self.client.get_queue_url(QueueName=self.name)["QueueUrl"]
            except _AWS_ERRORS as exc:
                raise QueueBackendError(f"Cannot resolve SQS queue {self.name}: {exc}") from exc
        return self._queue_url

    def create_queue(self) -> None:
        try:
            response = self.client.create_queue(
                QueueName=self.name,
                Attributes={"VisibilityTimeout": str(self.visibility_timeout_seconds)},
            )
        except _AWS_ERRORS as exc:
            raise QueueBackendError(f"Could not provision queue {self.name}: {exc}") from exc
        self._queue_url = response["QueueUrl"]

    def enqueue(self, payload: Payload) -> bool:
        try:
            body = json.dumps(payload, default=str)
        except (TypeError, ValueError):
            log.exception("Payload for %s is not serialisable", self.name)
            return False
        try:
            self.client.send_message(QueueUrl=self.queue_url, MessageBody=body)
        except (*_AWS_ERRORS, QueueBackendError):
            log.exception("Enqueue to %s failed", self.name)
            return False
        return True

    def claim_one(self) -> QueueItem | None:
        items = self._receive(1)
        return items[0] if items else None

    def claim_many(self, max_count: int) -> list[QueueItem]:
        return self._receive(max(1, min(max_count, self.max_batch)))

    def delete_one(self, item: QueueItem) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=item.handle)
        except _AWS_ERRORS as exc:
            raise QueueBackendError(f"Delete from {self.name} failed: {exc}") from exc

    def delete_many(self, items: Sequence[QueueItem]) -> int:
        deleted = 0
        for chunk in batched(items, self.max_batch):
            entries = [
                {"Id": str(index), "ReceiptHandle": item.handle}
                for index, item in enumerate(chunk)
            ]
            try:
                response = self.client.delete_message_batch(
                    QueueUrl=self.queue_url, Entries=entries
                )
            except _AWS_ERRORS as exc:
                raise QueueBackendError(f"Batch delete from {self.name} failed: {exc}") from exc
            deleted += len(response.get("Successful", []))
            for failure in response.get("Failed", []):
                # undeleted messages are redelivered and caught by dedupe
                log.warning(
                    "SQS refused delete of entry %s on %s: %s",
                    failure.get("Id"),
                    self.name,
                    failure.get("Message") or failure.get("Code"),
                )
        return deleted

    def count(self) -> int:
        try:
            attributes = self.client.get_queue_attributes(
                QueueUrl=self.queue_url,
                AttributeNames=[
                    "ApproximateNumberOfMessages",
                    "ApproximateNumberOfMessagesNotVisible",
                ],
            )["Attributes"]
        except _AWS_ERRORS as exc:
            raise QueueBackendError(f"Count of {self.name} failed: {exc}") from exc
        return int(attributes.get("ApproximateNumberOfMessages", 0)) + int(
            attributes.get("ApproximateNumberOfMessagesNotVisible", 0)
        )

    def _receive(self, count: int) -> list[QueueItem]:
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=count,
                VisibilityTimeout=self.visibility_timeout_seconds,
                WaitTimeSeconds=self.wait_seconds,
            )
        except _AWS_ERRORS as exc:
            raise QueueBackendError(f"Receive from {self.name} failed: {exc}") from exc
        return [
            QueueItem(handle=message["ReceiptHandle"], payload=_decode(message.get("Body", "")))
            for message in response.get("Messages", [])
        ]


def _decode(body: str) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError:
        log.warning("SQS message body is not valid JSON")
        return {}
    return payload if isinstance(payload, dict) else {}
