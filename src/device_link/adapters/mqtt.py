import asyncio
from enum import Enum
from typing import Dict, Any, Awaitable, Callable, Optional, Union, List
from pydantic import BaseModel, ConfigDict, Field
import aiomqtt as mqtt
from aiomqtt import Will
import json
import traceback
from ..adapters.base import CommunicationAdapter
from ..utils.logging import get_logger
from ..utils.exceptions import BrokerUnavailable, CommunicationError
import random
import ssl

logger = get_logger(__name__)

'''
usage Examples

await mqtt_adapter.subscribe("neogest/status", status_handler)
await mqtt_adapter.connect()

await mqtt_adapter.publish({
    "topic": "neogest/light",
    "payload": "ON",
})

await mqtt_adapter.disconnect()

'''

MessageHandler = Callable[[str, Any], Awaitable[None]]


class LinkState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class MQTTConfig(BaseModel):
    """MQTT configuration model"""
    model_config = ConfigDict(extra="ignore")

    host: str = Field(..., description="MQTT broker hostname")
    port: int = Field(1883, description="MQTT broker port")
    username: Optional[str] = Field(None, description="MQTT username")
    password: Optional[str] = Field(None, description="MQTT password")
    keepalive: int = Field(60, description="Connection keepalive in seconds")
    client_id: str = Field("device_link", description="MQTT client ID prefix")
    ssl: bool = Field(False, description="Enable SSL/TLS")
    reconnect_interval: float = Field(5.0, ge=0, description="Initial reconnection interval in seconds")
    max_reconnect_interval: float = Field(60.0, ge=0, description="Upper bound for reconnection backoff")
    max_publish_attempts: int = Field(3, ge=1, description="Attempts per queued publish before it is dropped")
    message_queue_size: int = Field(1000, description="Maximum size of incoming and outgoing queues")
    ca_cert: Optional[str] = Field(None, description="Custom CA certificate")
    client_cert: Optional[str] = Field(None, description="Client certificate")
    client_key: Optional[str] = Field(None, description="Required if client_cert is set")
    verify_hostname: bool = Field(True, description="Verify broker's hostname")
    tls_version: Optional[str] = Field(None, description="TLSv1_2, TLSv1_3, etc.")
    subscribe_qos: int = Field(0, ge=0, le=2, description="qos for subscribe topics")
    publish_qos: int = Field(0, ge=0, le=2, description="qos for publish message")
    clean_session: bool = Field(True, description="Start without a persistent broker session")
    will_topic: Optional[str] = Field(None, description="Retained Online/Offline presence topic")

class MQTTMessage(BaseModel):
    """MQTT message model"""
    topic: str
    payload: Union[dict, str, bytes]
    qos: int = Field(0, ge=0, le=2)
    retain: bool = False

class MQTTAdapter(CommunicationAdapter):
    """
    Long-lived broker connection.

    The connection moves through DISCONNECTED -> CONNECTING -> SUBSCRIBED.
    Every entry into SUBSCRIBED re-issues the subscription for every topic
    with a registered handler, so a dropped and re-established connection
    always ends up listening to the same topics. Drops are retried forever
    with exponential backoff until disconnect() is called.
    """
    def __init__(self, config: Dict[str, Any]):
        """Initialize MQTT adapter with configuration"""
        try:
            self.config = MQTTConfig(**config)
            self.config.keepalive = max(30, self.config.keepalive)
        except Exception as e:
            raise CommunicationError(f"Invalid MQTT configuration: {str(e)}")

        self.client: Optional[mqtt.Client] = None
        self.message_handlers: Dict[str, List[MessageHandler]] = {}
        self.connected = asyncio.Event()
        self._state = LinkState.DISCONNECTED
        self._stop_flag = asyncio.Event()
        self._connection_task: Optional[asyncio.Task] = None
        self._message_processor_task: Optional[asyncio.Task] = None
        self._publisher_task: Optional[asyncio.Task] = None
        self._message_queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.message_queue_size)
        self._publish_queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.message_queue_size)
        self._subscription_lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()

    @property
    def state(self) -> LinkState:
        return self._state

    def _set_state(self, state: LinkState) -> None:
        if state != self._state:
            logger.info(f"MQTT link {self._state.value} -> {state.value}")
        self._state = state
        if state == LinkState.SUBSCRIBED:
            self.connected.set()
        else:
            self.connected.clear()

    def _reconnect_delay(self, attempt: int) -> float:
        return min(
            self.config.reconnect_interval * (2 ** max(attempt - 1, 0)),
            self.config.max_reconnect_interval
        )

    def _create_tls_context(self) -> Optional[ssl.SSLContext]:
        """Create SSL context for MQTT connection based on config"""
        if not self.config.ssl:
            return None

        context = ssl.create_default_context()

        if self.config.ca_cert:
            context.load_verify_locations(cafile=self.config.ca_cert)

        if self.config.client_cert:
            if not self.config.client_key:
                raise ValueError("Client key must be provided when using client certificate")
            context.load_cert_chain(
                certfile=self.config.client_cert,
                keyfile=self.config.client_key
            )

        if self.config.tls_version:
            context.minimum_version = getattr(ssl.TLSVersion, self.config.tls_version.upper(),
                                        ssl.TLSVersion.TLSv1_2)

        context.check_hostname = self.config.verify_hostname

        return context

    def _create_client(self) -> mqtt.Client:
        will = None
        if self.config.will_topic:
            # Set up Last Will and Testament (LWT)
            will = Will(
                topic=self.config.will_topic,
                payload="Offline",
                qos=self.config.publish_qos,
                retain=True)

        return mqtt.Client(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            keepalive=self.config.keepalive,
            identifier=f"{self.config.client_id}_{random.randint(1000, 9999)}",
            clean_session=self.config.clean_session,
            will=will,
            tls_context=self._create_tls_context()
        )

    async def _subscribe_topics(self) -> None:
        """Subscribe to every topic with a handler and enter SUBSCRIBED"""
        async with self._subscription_lock:
            for topic in self.message_handlers:
                if self.client:
                    await self.client.subscribe(topic, qos=self.config.subscribe_qos)
                    logger.info(f"Subscribed to topic: {topic}")
            self._set_state(LinkState.SUBSCRIBED)

    async def _run_connection(self) -> None:
        """Keep a broker connection open, reconnecting after every drop"""
        attempt = 0
        while not self._stop_flag.is_set():
            self._set_state(LinkState.CONNECTING)
            try:
                async with self._create_client() as client:
                    self.client = client
                    await self._subscribe_topics()
                    attempt = 0
                    logger.info(f"Connected to MQTT broker {self.config.host}:{self.config.port}")

                    if self.config.will_topic:
                        await client.publish(
                            self.config.will_topic,
                            payload="Online",
                            qos=self.config.publish_qos,
                            retain=True
                        )

                    async for message in client.messages:
                        self._enqueue_message(message)
                logger.warning("MQTT message stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"MQTT connection error: {str(e)}")
            finally:
                self.client = None
                self._set_state(LinkState.DISCONNECTED)

            if self._stop_flag.is_set():
                break

            attempt += 1
            wait_time = self._reconnect_delay(attempt)
            logger.info(f"MQTT reconnect attempt {attempt} in {wait_time:.2f} seconds")
            try:
                await asyncio.wait_for(self._stop_flag.wait(), timeout=wait_time)
            except asyncio.TimeoutError:
                pass

    def _enqueue_message(self, message: Any) -> None:
        topic = str(message.topic)
        try:
            payload = message.payload
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode()
            try:
                decoded = json.loads(payload)
                # Scalars stay as the raw text so handlers never see a payload decoded twice
                if isinstance(decoded, (dict, list)):
                    payload = decoded
                logger.debug(f"received {payload} from {topic}")
            except (json.JSONDecodeError, TypeError):
                pass  # Keep payload as string if not JSON

            try:
                self._message_queue.put_nowait((topic, payload))
            except asyncio.QueueFull:
                logger.warning(f"Message queue full, dropping message on {topic}")

        except Exception as e:
            logger.error(f"Error processing message on topic {topic}: {str(e)}")

    async def _process_message_queue(self) -> None:
        """Hand queued messages to their handlers in arrival order"""
        while not self._stop_flag.is_set():
            try:
                topic, payload = await self._message_queue.get()
                try:
                    for handler in list(self.message_handlers.get(topic, [])):
                        try:
                            await handler(topic, payload)
                        except Exception as e:
                            logger.error(f"Error in message handler for topic {topic}: {str(e)}")
                finally:
                    self._message_queue.task_done()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.error(f"Error processing queued message: {traceback.format_exc()}")

    async def _publish_worker(self) -> None:
        """Worker task to handle publishing messages from queue"""
        while not self._stop_flag.is_set():
            try:
                message = await self._publish_queue.get()
            except asyncio.CancelledError:
                break
            try:
                attempt = 0
                while not self._stop_flag.is_set():
                    try:
                        async with self._publish_lock:
                            if not (self.client and self.connected.is_set()):
                                raise BrokerUnavailable("Not connected to MQTT broker")
                            await self.client.publish(
                                topic=message.topic,
                                payload=message.payload,
                                qos=message.qos,
                                retain=message.retain
                            )
                        logger.debug(f"Published to {message.topic}")
                        break
                    except Exception as e:
                        attempt += 1
                        if attempt >= self.config.max_publish_attempts:
                            logger.error(f"Dropping message for {message.topic} after {attempt} attempts: {str(e)}")
                            break
                        wait_time = self._reconnect_delay(attempt)
                        logger.warning(f"Publish attempt {attempt} failed, retrying in {wait_time:.2f} seconds...")
                        await asyncio.sleep(wait_time)
            except asyncio.CancelledError:
                break
            finally:
                self._publish_queue.task_done()

    async def connect(self) -> None:
        """Start the connection loop and the queue workers without waiting for the broker"""
        if self._connection_task and not self._connection_task.done():
            return
        self._stop_flag.clear()
        self._connection_task = asyncio.create_task(self._run_connection())
        self._message_processor_task = asyncio.create_task(self._process_message_queue())
        self._publisher_task = asyncio.create_task(self._publish_worker())

    async def disconnect(self) -> None:
        """Stop the connection loop and cancel the workers"""
        self._stop_flag.set()

        tasks = [self._connection_task, self._message_processor_task, self._publisher_task]
        for task in tasks:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._connection_task = None
        self._message_processor_task = None
        self._publisher_task = None
        self.client = None
        self._set_state(LinkState.DISCONNECTED)
        logger.info("MQTT adapter stopped")

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register a handler; the topic is subscribed now if connected and on every reconnect"""
        async with self._subscription_lock:
            is_new = topic not in self.message_handlers
            self.message_handlers.setdefault(topic, []).append(handler)
            if is_new and self.client and self._state == LinkState.SUBSCRIBED:
                try:
                    await self.client.subscribe(topic, qos=self.config.subscribe_qos)
                except Exception as e:
                    # Picked up again by the next reconnect
                    logger.error(f"Failed to subscribe to topic {topic}: {str(e)}")
            logger.info(f"Registered handler for topic: {topic}")

    def publish(self, message: Union[MQTTMessage, Dict[str, Any]]) -> None:
        """Queue message for publishing without waiting for the broker"""
        if isinstance(message, dict):
            message = MQTTMessage(**message)

        payload = message.payload
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode()

        queued_message = MQTTMessage(
            topic=message.topic,
            payload=payload,
            qos=message.qos,
            retain=message.retain
        )

        try:
            self._publish_queue.put_nowait(queued_message)
            logger.debug(f"Queued message for topic: {message.topic}")
        except asyncio.QueueFull:
            raise BrokerUnavailable(f"Publish queue full, dropping message for {message.topic}")
