"""Fleet poller: query every battery concurrently and publish the readings."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from pyfelicity import (
    QUERY_REAL_INFO,
    REAL_INFO_FIELDS,
    DeviceQueryClient,
    DeviceTarget,
    FieldSpec,
    ParseError,
    QueryFailure,
    QueryOptions,
    decode_reading,
    extract_fields,
)

from .mqtt_client import Publisher

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUS_ERROR = "error"


@dataclass
class TargetResult:
    """What happened to one device during a poll cycle."""

    target: DeviceTarget
    status: str
    reason: str = ""
    published: int = 0


@dataclass
class PollSummary:
    """Completion value of one poll cycle."""

    results: list[TargetResult] = field(default_factory=list)
    duration: float = 0.0

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def published(self) -> int:
        return sum(r.published for r in self.results)

    def __str__(self) -> str:
        return (
            f"{len(self.results)} devices: {self.count(STATUS_OK)} ok, "
            f"{self.count(STATUS_FAILED) + self.count(STATUS_ERROR)} failed, "
            f"{self.count(STATUS_SKIPPED)} skipped, {self.published} values published "
            f"in {self.duration:.2f}s"
        )


class FleetPoller:
    """Polls a fixed set of batteries and forwards their fields to a publisher."""

    def __init__(
        self,
        targets: Sequence[DeviceTarget],
        publisher: Publisher,
        client: Optional[DeviceQueryClient] = None,
        payload: bytes = QUERY_REAL_INFO,
        options: Optional[QueryOptions] = None,
        fields: Iterable[FieldSpec] = REAL_INFO_FIELDS,
        brace_repair_attempts: int = 1,
    ):
        """Initialize the poller.

        Args:
            targets: Devices to query, in publish order.
            publisher: Receives ``(topic, payload)`` for every extracted field.
            client: Query client; a default one is created if omitted.
            payload: Query sent to every device.
            options: Timeout and delimiter for every query.
            fields: Extraction table applied to each reading.
            brace_repair_attempts: Closing braces to try when decoding.
        """
        self.targets = list(targets)
        self.publisher = publisher
        self.client = client or DeviceQueryClient()
        self.payload = payload
        self.options = options or QueryOptions()
        self.fields = tuple(fields)
        self.brace_repair_attempts = brace_repair_attempts

    async def poll(self) -> PollSummary:
        """Run one poll cycle.

        All devices are queried concurrently and every outcome is awaited
        before anything is published; results are handled in target order.

        Returns:
            The cycle summary, once every target has settled.
        """
        started = time.monotonic()
        outcomes = await asyncio.gather(
            *(self.client.query(t, self.payload, self.options) for t in self.targets),
            return_exceptions=True,
        )

        summary = PollSummary()
        for target, outcome in zip(self.targets, outcomes):
            summary.results.append(await self._handle(target, outcome))

        summary.duration = time.monotonic() - started
        logger.info(f"Poll cycle complete: {summary}")
        return summary

    async def _handle(self, target: DeviceTarget, outcome: object) -> TargetResult:
        if isinstance(outcome, BaseException):
            logger.error(f"-> {target} poll error: {outcome!r}")
            return TargetResult(target, STATUS_ERROR, reason=repr(outcome))

        if isinstance(outcome, QueryFailure):
            logger.error(f"-> {target} failed: {outcome.reason}")
            return TargetResult(target, STATUS_FAILED, reason=outcome.reason)

        try:
            reading = decode_reading(outcome.response, self.brace_repair_attempts)
        except ParseError as e:
            logger.warning(f"-> {target} skipped, unreadable response: {e}")
            return TargetResult(target, STATUS_SKIPPED, reason=str(e))

        published = await self.publish_reading(target, reading)
        return TargetResult(target, STATUS_OK, published=published)

    async def publish_reading(self, target: DeviceTarget, reading: dict) -> int:
        """Publish every extractable field of a reading.

        Returns:
            Number of messages the publisher accepted.
        """
        published = 0
        for name, value in extract_fields(reading, self.fields):
            if await self.publisher.publish(f"{target.topic_prefix}/{name}", value):
                published += 1
        logger.debug(f"-> {target} published {published} values")
        return published
