import logging
import threading
from typing import Dict, Optional, Set

import paho.mqtt.client as paho

from barometer_core.domain.ports import SyncTarget

logger = logging.getLogger(__name__)


class MQTTPublisher(SyncTarget):
    """Replicates stored rows to an MQTT broker, one topic per table.

    Rows of table ``barometerData`` go to ``<topic>/barometerData``.
    Each publish uses QoS 1 and waits for the broker acknowledgement.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 1883,
        topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        ack_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.topic = topic.rstrip("/")
        self.client_id = client_id
        self.keepalive = keepalive
        self.ack_timeout = ack_timeout

        self._pending: Dict[int, threading.Event] = {}
        self._early_acks: Set[int] = set()
        self._pending_lock = threading.Lock()
        self._lock = threading.Lock()
        self._connected = False
        self._disconnected_rc: Optional[int] = None

        self._client = paho.Client(
            callback_api_version=paho.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            userdata=self,
            protocol=paho.MQTTv311,
        )
        self._client.on_publish = self._on_publish
        self._client.on_disconnect = self._on_disconnect
        self._client.on_connect = self._on_connect

        if username and password:
            self._client.username_pw_set(username, password)

        logger.info(
            "Initializing MQTT publisher: host=%s, port=%s, topic=%s, client_id=%s",
            host,
            port,
            self.topic,
            client_id,
        )

        self._connect()

    def _connect(self) -> None:
        try:
            result = self._client.connect(self.host, self.port, self.keepalive)
            if result != paho.MQTT_ERR_SUCCESS:
                logger.error("Failed to connect to MQTT broker: %s", result)
                return

            self._client.loop_start()
            logger.info("Connected to MQTT broker")
        except OSError as e:
            logger.error("Exception during MQTT connection: %s", e)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code == 0:
            self._connected = True
            logger.info("Successfully connected to MQTT broker")
        else:
            self._connected = False
            logger.error("Failed to connect to MQTT broker, reason code: %s", reason_code)

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None) -> None:
        logger.debug("Publish acknowledged for message ID: %s", mid)
        with self._pending_lock:
            ev = self._pending.pop(mid, None)
            if ev is None:
                # ack arrived before publish() registered the message
                self._early_acks.add(mid)
                return
        ev.set()

    def _on_disconnect(
        self, client, userdata, flags=None, reason_code=None, properties=None
    ) -> None:
        self._connected = False
        self._disconnected_rc = reason_code
        logger.warning("Disconnected from MQTT broker, reason code: %s", reason_code)

    def topic_for(self, table_name: str) -> str:
        return f"{self.topic}/{table_name}"

    def publish(self, payload: str, table_name: str) -> bool:
        """Send one stored row to the table's topic and wait for the ack."""
        if not self._connected:
            logger.warning("Not connected to MQTT broker, cannot sync %s", table_name)
            return False

        with self._lock:
            info = self._client.publish(self.topic_for(table_name), payload, qos=1, retain=False)
            result, mid = info[0], info[1]
            if result != paho.MQTT_ERR_SUCCESS:
                logger.error("Failed to publish message, error code: %s", result)
                return False

            ev = threading.Event()
            with self._pending_lock:
                if mid in self._early_acks:
                    self._early_acks.discard(mid)
                    ev.set()
                else:
                    self._pending[mid] = ev
            success = ev.wait(timeout=self.ack_timeout)
            with self._pending_lock:
                self._pending.pop(mid, None)

            if not success:
                logger.warning("Publish acknowledgment timeout for message ID: %s", mid)

            return success and self._connected

    def is_connected(self) -> bool:
        return self._connected

    def get_disconnect_reason(self) -> Optional[int]:
        return self._disconnected_rc

    def close(self) -> None:
        logger.info("Closing MQTT connection")
        self._client.loop_stop()
        self._client.disconnect()
        self._connected = False
