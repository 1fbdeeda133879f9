import json
import logging
import threading
import time

import paho.mqtt.client as mqtt

from errors import NotificationError

log = logging.getLogger(__name__)


class MQTTClient:
    """MQTT client that delivers watering reminders to subscribed devices."""

    def __init__(self, config):
        self.config = config
        mqtt_config = config["notifications"]["mqtt"]
        self.broker = mqtt_config["broker"]
        self.port = mqtt_config["port"]
        self.topic = mqtt_config["topic"]

        self._connected = False

        self.client = mqtt.Client(
            client_id="plant-tracker",
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        if rc == 0:
            log.info("Connected to MQTT broker %s:%d", self.broker, self.port)
            self._connected = True
        else:
            log.error("MQTT connection failed with code %s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        self._connected = False
        if rc != 0:
            log.warning("Unexpected MQTT disconnect (rc=%s), will reconnect", rc)

    def start(self):
        """Connect to broker and start the network loop in a background thread."""
        try:
            self.client.connect(self.broker, self.port, keepalive=60)
            self.client.loop_start()
            log.info("MQTT client started")

            thread = threading.Thread(target=self._heartbeat_loop, daemon=True)
            thread.start()
        except Exception as e:
            log.error("Failed to connect to MQTT broker: %s", e)
            log.info("Reminders will be logged only until the broker is reachable")

    def stop(self):
        """Disconnect from broker."""
        self.client.loop_stop()
        self.client.disconnect()

    def is_connected(self):
        return self._connected

    def publish_reminder(self, reminder):
        """Publish a fired reminder. Raises NotificationError if it cannot be sent."""
        if not self._connected:
            raise NotificationError("MQTT broker not connected")

        payload = {
            "id": reminder["id"],
            "title": reminder["title"],
            "body": reminder["body"],
            "data": reminder.get("data", {}),
            "fires_at": reminder["fires_at"].isoformat(),
        }
        info = self.client.publish(self.topic, json.dumps(payload), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise NotificationError(f"MQTT publish failed with code {info.rc}")
        log.info("Published reminder %s to %s", reminder["id"], self.topic)

    def _heartbeat_loop(self):
        """Publish heartbeat every 5 minutes."""
        while True:
            time.sleep(300)
            if self._connected:
                try:
                    self.client.publish(
                        self.topic + "/heartbeat",
                        json.dumps({"status": "online", "timestamp": time.time()}),
                    )
                except Exception as e:
                    log.debug("Heartbeat publish failed: %s", e)
