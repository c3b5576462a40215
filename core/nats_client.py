"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between services

Wraps nats-py: events are published to JetStream for persistence and
delivered to subscribers through push consumers (durable) or plain core
NATS subscriptions (ephemeral, best-effort live feeds).
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Union, TYPE_CHECKING

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


logger = logging.getLogger(__name__)


class ServiceSource(Enum):
    """Service sources"""

    MARKETPLACE_SERVICE = "marketplace_service"


# Subject prefix -> JetStream stream holding it
STREAM_MAPPINGS = {
    "marketplace": "MARKETPLACE",
    "user": "user-stream",
}


def get_stream_name(subject: str, default: Optional[str] = None) -> str:
    """
    Determine the JetStream stream for a subject from its first token.

    Mappings:
    - marketplace.* -> the service stream (default) or MARKETPLACE
    - user.* -> user-stream
    - anything else -> <prefix>-stream
    """
    prefix = subject.split(".", 1)[0]
    if prefix == "marketplace" and default:
        return default
    return STREAM_MAPPINGS.get(prefix, f"{prefix}-stream")


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[Enum, str],
        source: Union[ServiceSource, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source.value if isinstance(source, Enum) else source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.utcnow().isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    @property
    def nats_subject(self) -> str:
        """Wire subject: event type, suffixed with the entity key when present"""
        return f"{self.type}.{self.subject}" if self.subject else self.type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


class NATSEventBus:
    """
    NATS JetStream event bus on top of nats-py.

    Publishing goes through JetStream (persisted, deduplicated by event id).
    Subscriptions are JetStream push consumers when a durable name is given,
    otherwise plain subscriptions that only see live traffic.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        stream_name: Optional[str] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as the connection name)
            config: Optional ConfigManager instance for endpoint discovery
            stream_name: JetStream stream to publish into
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)

        infra = config.settings.infrastructure
        if infra.nats_url:
            self.url = infra.nats_url
        else:
            host, port = config.discover_service(
                service_name="nats_service",
                default_host=infra.nats_host,
                default_port=infra.nats_port,
                env_host_key="NATS_HOST",
                env_port_key="NATS_PORT",
            )
            self.url = f"nats://{host}:{port}"

        self.stream_name = stream_name or infra.nats_stream

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._subscriptions: Dict[str, Any] = {}  # subscription id -> subscription
        self._streams: Set[str] = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and make sure the stream exists"""
        try:
            self._nc = await nats.connect(
                servers=[self.url],
                name=self.service_name,
                connect_timeout=5,
                max_reconnect_attempts=5,
            )
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS at {self.url} as {self.service_name}")

            await self._ensure_stream("marketplace")

        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def _ensure_stream(self, subject: str) -> str:
        """Create the stream covering subject's prefix unless this bus already did"""
        prefix = subject.split(".", 1)[0]
        stream_name = get_stream_name(prefix, default=self.stream_name)
        if stream_name in self._streams:
            return stream_name

        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
            logger.debug(f"Stream '{stream_name}' ready for {prefix}.>")
        except Exception as e:
            # Usually the stream exists already, owned by the publishing service
            logger.debug(f"Stream creation note for '{stream_name}': {e}")

        self._streams.add(stream_name)
        return stream_name

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to NATS JetStream.

        The event id is sent as Nats-Msg-Id so retried publishes are
        deduplicated by the server.
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(
                event.nats_subject,
                data,
                headers={"Nats-Msg-Id": event.id},
            )
            logger.info(f"Published event {event.type} [{event.id}] to stream {ack.stream}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: Callable, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a subject pattern.

        Args:
            pattern: Subject pattern (e.g., "marketplace.shipment.*.<shipment_id>")
            handler: Async callback receiving an Event
            durable: Optional durable consumer name (JetStream); omit for a live feed
        """
        if not self._is_connected or not self._nc:
            logger.error("Not connected to NATS")
            return None

        async def _on_message(msg):
            try:
                payload = json.loads(msg.data.decode())
                await handler(Event.from_dict(payload))
                if durable:
                    await msg.ack()
            except Exception as e:
                logger.error(f"Error processing message on {msg.subject}: {e}")
                if durable:
                    await msg.nak()

        try:
            if durable:
                await self._ensure_stream(pattern)
                sub = await self._js.subscribe(
                    pattern, durable=durable, cb=_on_message, manual_ack=True
                )
            else:
                sub = await self._nc.subscribe(pattern, cb=_on_message)

            subscription_id = durable or f"{pattern}#{uuid.uuid4().hex[:8]}"
            self._subscriptions[subscription_id] = sub
            logger.info(f"Subscribed to {pattern} as {subscription_id}")
            return subscription_id

        except Exception as e:
            logger.error(f"Error subscribing to events: {e}")
            return None

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Drop a subscription by the id subscribe_to_events returned"""
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is None:
            return False
        try:
            await sub.unsubscribe()
            logger.info(f"Unsubscribed {subscription_id}")
            return True
        except Exception as e:
            logger.warning(f"Error unsubscribing {subscription_id}: {e}")
            return False

    async def close(self):
        """Drain subscriptions and close the connection"""
        for subscription_id in list(self._subscriptions.keys()):
            await self.unsubscribe(subscription_id)

        if self._nc:
            try:
                await asyncio.wait_for(self._nc.drain(), timeout=5)
            except Exception as e:
                logger.warning(f"NATS drain did not complete cleanly: {e}")
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        config: Optional ConfigManager instance for endpoint discovery

    Returns:
        NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        event_bus = NATSEventBus(service_name=service_name, config=config)
        await event_bus.connect()
        _event_bus = event_bus

    return _event_bus
