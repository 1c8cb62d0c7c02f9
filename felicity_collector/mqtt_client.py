"""MQTT publisher for Felicity Collector."""

import asyncio
import logging
import uuid
from typing import Optional, Protocol

import aiomqtt

from .config import MQTTConfig

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Anything the poller can hand ``(topic, payload)`` pairs to."""

    async def publish(self, topic: str, payload: str) -> bool:
        ...


class MQTTClient:
    """Async MQTT client with reconnection on broker errors."""

    def __init__(self, config: MQTTConfig):
        """Initialize MQTT client.

        Args:
            config: MQTT configuration.
        """
        self.config = config
        self._client: Optional[aiomqtt.Client] = None
        self._connected = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._running = False
        self._lock = asyncio.Lock()
        self.published = 0
        self.failed = 0

        self._client_id = config.client_id or f"felicity-collector-{uuid.uuid4().hex[:8]}"

    @property
    def connected(self) -> bool:
        """Return True if connected to broker."""
        return self._connected

    async def start(self) -> None:
        """Connect to the broker; failures schedule a reconnect."""
        if not self.config.enabled:
            logger.info("MQTT is disabled in config")
            return

        self._running = True
        await self._connect()

    async def stop(self) -> None:
        """Stop reconnecting and disconnect."""
        self._running = False

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass

        await self._disconnect()
        logger.info(f"MQTT client stopped ({self.published} published, {self.failed} failed)")

    async def _connect(self) -> None:
        if not self._running:
            return

        client = aiomqtt.Client(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username or None,
            password=self.config.password or None,
            identifier=self._client_id,
        )
        try:
            await client.__aenter__()
        except aiomqtt.MqttError as e:
            logger.error(f"Failed to connect to MQTT broker {self.config.host}:{self.config.port}: {e}")
            self._connected = False
            self._schedule_reconnect()
            return

        self._client = client
        self._connected = True
        logger.info(f"Connected to MQTT broker at {self.config.host}:{self.config.port}")

    async def _disconnect(self) -> None:
        if self._client:
            try:
                await self._client.__aexit__(None, None, None)
            except aiomqtt.MqttError as e:
                logger.debug(f"Error during MQTT disconnect: {e}")
            finally:
                self._client = None
                self._connected = False

    def _schedule_reconnect(self) -> None:
        if not self._running:
            return

        if self._reconnect_task and not self._reconnect_task.done():
            return

        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while self._running and not self._connected:
            logger.info(f"Attempting MQTT reconnection in {self.config.reconnect_delay}s...")
            await asyncio.sleep(self.config.reconnect_delay)

            if not self._running:
                break

            await self._disconnect()
            await self._connect()

    def full_topic(self, topic: str) -> str:
        """Prefix a topic with base_topic, if one is configured."""
        if self.config.base_topic:
            return f"{self.config.base_topic}/{topic}"
        return topic

    async def publish(self, topic: str, payload: str) -> bool:
        """Publish one message.

        Args:
            topic: Topic below base_topic, e.g. ``192-168-0-10/Batsoc``.
            payload: Message text.

        Returns:
            True if published successfully, False otherwise.
        """
        if not self.config.enabled:
            return False

        full_topic = self.full_topic(topic)

        if not self._connected or not self._client:
            logger.warning(f"Cannot publish to {full_topic}: not connected")
            self.failed += 1
            self._schedule_reconnect()
            return False

        try:
            async with self._lock:
                await self._client.publish(
                    full_topic,
                    payload,
                    qos=self.config.qos,
                    retain=self.config.retain,
                )
        except aiomqtt.MqttError as e:
            logger.error(f"MQTT publish error on {full_topic}: {e}")
            self.failed += 1
            self._connected = False
            self._schedule_reconnect()
            return False

        self.published += 1
        logger.debug(f"Published to {full_topic}: {payload[:100]}")
        return True


class PrintPublisher:
    """Publisher that writes messages to stdout instead of a broker."""

    def __init__(self) -> None:
        self.published = 0

    async def publish(self, topic: str, payload: str) -> bool:
        print(f"{topic} {payload}")
        self.published += 1
        return True
