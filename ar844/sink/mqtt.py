# ar844/sink/mqtt.py
from __future__ import annotations

import logging
from typing import Optional

import paho.mqtt.client as mqtt

from ar844.core.errors import PublishUnavailableError
from ar844.interfaces.publish_sink import PublishResult


class MqttSink:
    """
    PublishSink backed by a paho-mqtt client.

    Notes:
      - No network thread: paho is driven from the caller. publish() first
        services the connection with loop(timeout=0) (CONNACK, keepalive,
        lost-connection detection); packets are written immediately.
      - reconnect() is the only reconnect path; paho never reconnects on
        its own without a loop thread.
      - publish() never raises; paho return codes map onto PublishResult.
      - QoS 0, not retained: a lost summary is acceptable.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        keepalive_s: int = 90,
        client_id: str = "",
        qos: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.port = int(port)
        self.keepalive_s = int(keepalive_s)
        self.client_id = client_id
        self.qos = int(qos)
        self._log = logger or logging.getLogger(__name__)
        self.client: Optional[mqtt.Client] = None

    def open(self) -> None:
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=True,
        )
        try:
            rc = client.connect(self.host, self.port, self.keepalive_s)
        except (OSError, ValueError) as e:
            raise PublishUnavailableError(
                f"Failed to connect to broker {self.host}:{self.port}.",
                hint=str(e),
                details={"host": self.host, "port": self.port},
            ) from None

        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishUnavailableError(
                f"Failed to connect to broker {self.host}:{self.port}.",
                hint=mqtt.error_string(rc),
                details={"host": self.host, "port": self.port, "rc": rc},
            )

        self.client = client
        self._log.info("MQTT_CONNECTED host=%s port=%d", self.host, self.port)

    def publish(self, topic: str, payload: bytes) -> PublishResult:
        if self.client is None:
            return PublishResult.NO_CONN

        self._service()
        info = self.client.publish(topic, payload, qos=self.qos, retain=False)
        if info.rc == mqtt.MQTT_ERR_SUCCESS:
            return PublishResult.OK
        if info.rc == mqtt.MQTT_ERR_NO_CONN:
            return PublishResult.NO_CONN
        self._log.debug("MQTT_PUBLISH_RC rc=%s msg=%s", info.rc, mqtt.error_string(info.rc))
        return PublishResult.ERROR

    def _service(self) -> None:
        rc = self.client.loop(timeout=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._log.debug("MQTT_LOOP_RC rc=%s msg=%s", rc, mqtt.error_string(rc))

    def reconnect(self) -> None:
        if self.client is None:
            self.open()
            return
        try:
            self.client.reconnect()
        except OSError as e:
            self._log.warning("MQTT_RECONNECT_FAILED host=%s port=%d err=%s", self.host, self.port, e)
        else:
            self._log.info("MQTT_RECONNECTED host=%s port=%d", self.host, self.port)

    def close(self) -> None:
        client = self.client
        if client is None:
            return
        self.client = None
        rc = client.disconnect()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._log.debug("MQTT_DISCONNECT_RC rc=%s msg=%s", rc, mqtt.error_string(rc))

    def __enter__(self) -> "MqttSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
