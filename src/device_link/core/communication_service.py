from typing import Dict, Any, Callable, Optional
from ..adapters.mqtt import MQTTAdapter, LinkState
from ..models.device import Action, DeviceKind, DeviceStatus
from ..models.topics import BrokerTopics
from ..storage.cache import StatusCache
from ..utils.logging import get_logger
from ..utils.exceptions import BrokerUnavailable, CommunicationError
from ..handlers.mqtt_handlers import MQTTMessageHandlers

logger = get_logger(__name__)

class CommunicationService:
    """Broker link: owns the MQTT connection for the lifetime of the process.

    It is the only writer of the status cache on the pub/sub path; status messages arriving on
    the status topic replace the cached record.
    """
    def __init__(self, config: Dict[str, Any], status_cache: StatusCache,
                 on_status: Optional[Callable[[DeviceStatus], None]] = None):
        self.config = config
        self.broker_config = dict(config['broker'])
        self.topics = BrokerTopics(self.broker_config.get('namespace', 'neogest'))
        self.broker_config.setdefault('will_topic', self.topics.gateway)
        self.handlers = MQTTMessageHandlers(status_cache, on_status)
        self.mqtt: Optional[MQTTAdapter] = None

    @property
    def state(self) -> LinkState:
        return self.mqtt.state if self.mqtt else LinkState.DISCONNECTED

    async def initialize(self) -> None:
        logger.info("Initializing Communication Service")
        try:
            self.mqtt = MQTTAdapter(self.broker_config)
            await self.mqtt.subscribe(self.topics.status, self.handlers.status_handler)
            await self.mqtt.connect()
        except CommunicationError:
            raise
        except Exception as e:
            raise CommunicationError(f"MQTT initialization failed: {str(e)}")
        logger.info(f"MQTT link started for {self.broker_config['host']}, status topic {self.topics.status}")

    def publish(self, topic: str, payload: Any) -> bool:
        """Best-effort publish. Returns whether the message was queued; never raises."""
        if not self.mqtt:
            logger.warning(f"MQTT link not started, dropping message for {topic}")
            return False
        try:
            self.mqtt.publish({
                "topic": topic,
                "payload": payload,
                "qos": self.mqtt.config.publish_qos
            })
            return True
        except BrokerUnavailable as e:
            logger.warning(str(e))
        except Exception as e:
            logger.error(f"Failed to queue MQTT message for {topic}: {str(e)}")
        return False

    def publish_command(self, device: DeviceKind, action: Action) -> bool:
        return self.publish(self.topics.for_device(device), action.value)

    async def shutdown(self) -> None:
        logger.info("Shutting down communication services")
        if self.mqtt:
            await self.mqtt.disconnect()
