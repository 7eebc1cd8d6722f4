"""MQTT transport built on paho-mqtt."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

import paho.mqtt.client as mqtt

from slm_app.core.config import AppConfig
from slm_app.protocol.messages import AimDisconnect, device_message, encode_message, pretty
from slm_app.transport.base import InboundMessage, TransportBase

QOS = 0

log = logging.getLogger("slm_app")


class MqttTransport(TransportBase):
    """
    Paho client running its network loop in a background thread.

    Inbound messages are queued by paho's thread and drained by ``poll`` on the
    dispatcher's thread, so nothing else touches dispatcher state.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self._inbox: "queue.Queue[InboundMessage]" = queue.Queue()
        self._topics: list[str] = []
        self._topics_lock = threading.Lock()
        self._connected_once = False
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            clean_session=True,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(
            min_delay=config.mqtt.reconnect_min_s,
            max_delay=config.mqtt.reconnect_max_s,
        )
        self._set_last_will()

    def _set_last_will(self) -> None:
        message = device_message(AimDisconnect())
        topic = self.config.aim_topic
        log.info("Set last will message: Topic: %s, Contents: %s", topic, pretty(message))
        self._client.will_set(topic, encode_message(message), qos=QOS, retain=False)

    def connect(self) -> None:
        uri = f"tcp://{self.config.mqtt.broker_ip}:{self.config.mqtt.port}"
        log.info("Connecting to the server on %s...", uri)
        self._client.connect(
            self.config.mqtt.broker_ip,
            self.config.mqtt.port,
            keepalive=self.config.mqtt.keepalive_s,
        )
        self._client.loop_start()

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        log.info("Connected with result code %s", reason_code)
        if reason_code.is_failure:
            return
        if self._connected_once:
            # Clean sessions drop subscriptions on reconnect.
            with self._topics_lock:
                topics = list(self._topics)
            for topic in topics:
                client.subscribe(topic, qos=QOS)
                log.info("Re-subscribed to %s", topic)
        self._connected_once = True

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        log.warning("Disconnected from broker (%s); paho will reconnect", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        self._inbox.put(InboundMessage(topic=message.topic, payload=bytes(message.payload)))

    def subscribe(self, topic: str) -> None:
        with self._topics_lock:
            if topic not in self._topics:
                self._topics.append(topic)
        result, _ = self._client.subscribe(topic, qos=QOS)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Subscribe to {topic} failed: {mqtt.error_string(result)}")

    def publish(self, topic: str, payload: bytes) -> None:
        info = self._client.publish(topic, payload, qos=QOS, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def poll(self) -> Optional[InboundMessage]:
        try:
            return self._inbox.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        self._client.loop_stop()
        self._client.disconnect()
