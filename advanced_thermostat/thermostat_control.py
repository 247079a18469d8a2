#!/usr/bin/env python3
"""
Thermostat Control - Budget-based PID thermostat with MQTT integration

Features:
- Budget-based PID controller with overshoot compensation
- Event driven evaluation: the controller is re-run on every input change and
  at the exact moment its budget is predicted to cross a switching limit
- Mode / target / current temperature setters over MQTT
- State persistence across restarts (JSON)
- Telemetry export (InfluxDB or CSV)
"""

import json
import logging
import math
import os
import signal
import threading
import time

from dotenv import load_dotenv

from .budget_controller import BudgetController
from .config import ConfigurationError, ControllerConfig
from .control_state import Mode
from .state_store import JsonStateStore
from .telemetry import build_telemetry
from .thermostat_mqtt import AutomationPubSub


class ThermostatControl(AutomationPubSub):
    """
    MQTT host for a single budget-based PID thermostat.

    Owns wall-clock time, the evaluation timer, persistence and telemetry.
    Every evaluation (MQTT input, timer expiry, shutdown) runs under one lock
    so the controller never sees two evaluations at once.
    """

    def __init__(self, broker_ip, config_file='thermostat_config.yaml', mqtt_username=None, mqtt_password=None,
                 config=None, clock=time.time):
        """
        Args:
            broker_ip: MQTT broker address
            config_file: YAML configuration file (ignored when config is given)
            mqtt_username: Optional MQTT user
            mqtt_password: Optional MQTT password
            config: Already loaded configuration mapping
            clock: Returns the current time in epoch seconds
        """
        self.config = config if config is not None else self.read_config(config_file)
        if not self.config:
            raise RuntimeError(f"Failed to load config from {config_file}")

        thermostat_name = self.config.get('name', 'thermostat')
        super().__init__(broker_ip, thermostat_name, username=mqtt_username, password=mqtt_password)

        controller_config = ControllerConfig.from_dict(self.config.get('controller'))
        self.controller = BudgetController(
            thermostat_name,
            controller_config,
            clock=clock,
            max_timer_delay=threading.TIMEOUT_MAX,
        )

        # Persistence
        self.store = JsonStateStore(self.config.get('persistence_file', 'thermostat_state.json'), thermostat_name)
        self.controller.restore(self.store.load())

        self.telemetry = build_telemetry(self.config.get('telemetry'), thermostat_name)

        # Topics
        self.base_topic = self.config.get('base_topic', f"thermostat/{thermostat_name}")
        self.sensor_topic = self.config.get('temperature_sensor_topic')

        self._lock = threading.RLock()
        self.control_timer = None
        self.is_shutdown = False
        self.last_record = None

        self._setup_subscriptions()

    def _setup_subscriptions(self):
        """Subscribe to the setter topics and the optional temperature sensor"""
        topics = [
            f"{self.base_topic}/mode/set",
            f"{self.base_topic}/target_temperature/set",
            f"{self.base_topic}/current_temperature/set",
        ]
        if self.sensor_topic:
            topics.append(self.sensor_topic)
            logging.info(f"{self.name}: Subscribing to sensor: {self.sensor_topic}")

        self._subscribe_to_topics(topics)

    def _on_connection_established(self):
        """Request a fresh reading and run the first evaluation"""
        self._request_temperature()
        self.evaluate("startup")

    def _request_temperature(self):
        """Ask a Zigbee2MQTT sensor for its current temperature"""
        if not self.sensor_topic:
            return
        get_topic = f"{self.sensor_topic}/get"
        self.client.publish(get_topic, '{"temperature": ""}', qos=1)
        logging.debug(f"{self.name}: Requested state: {get_topic}")

    def handle_message(self, topic, payload):
        """Route incoming MQTT messages to the controller setters"""
        try:
            if topic == f"{self.base_topic}/mode/set":
                mode = payload if isinstance(payload, str) else payload.get('mode')
                self.set_mode(mode)
                return

            if topic == f"{self.base_topic}/target_temperature/set":
                temp = self._extract_temperature(payload)
                if temp is None:
                    logging.warning(f"{self.name}: Invalid target temperature payload: {payload}")
                    return
                self.set_target_temperature(temp)
                return

            if topic in (f"{self.base_topic}/current_temperature/set", self.sensor_topic):
                temp = self._extract_temperature(payload)
                if temp is None:
                    logging.warning(f"{self.name}: Invalid temperature payload: {payload}")
                    return
                self.set_current_temperature(temp)
                return

            logging.debug(f'Skipping: {topic}')

        except (ValueError, AttributeError) as e:
            logging.warning(f"{self.name}: Rejected message on {topic}: {payload} ({e})")

    def _extract_temperature(self, payload):
        """Extract temperature value from various payload formats"""
        value = payload
        if isinstance(payload, dict):
            # Zigbee2MQTT format, then Home Assistant format
            value = payload.get('temperature', payload.get('state'))
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            temp = float(value)
        except ValueError:
            return None
        # NaN and inf would poison the budget
        if not math.isfinite(temp):
            return None
        return temp

    # Setters

    def set_mode(self, mode):
        with self._lock:
            if self.is_shutdown:
                return None
            try:
                mode = Mode.parse(mode)
            except ValueError:
                logging.warning(f"{self.name}: Unknown mode '{mode}'")
                return None
            return self._handle_record(self.controller.set_mode(mode))

    def set_target_temperature(self, temperature):
        with self._lock:
            if self.is_shutdown:
                return None
            return self._handle_record(self.controller.set_target(temperature))

    def set_current_temperature(self, temperature):
        with self._lock:
            if self.is_shutdown:
                return None
            return self._handle_record(self.controller.set_current(temperature))

    # Evaluation

    def evaluate(self, trigger="timer"):
        """Run one evaluation now and reschedule"""
        with self._lock:
            if self.is_shutdown:
                return None
            return self._handle_record(self.controller.update(trigger))

    def _on_timer(self):
        try:
            with self._lock:
                # Superseded while waiting for the lock
                if threading.current_thread() is not self.control_timer:
                    logging.debug(f"{self.name}: Skipping superseded timer")
                    return
                self.control_timer = None
                self.evaluate("timer")
        except Exception as e:
            logging.error(f"{self.name}: Error in timed evaluation: {e}", exc_info=True)

    def _handle_record(self, record):
        """Log, publish and export a decision, then arm the next evaluation"""
        if record is None:
            return None

        self.last_record = record
        if record.changed:
            logging.info(f"{self.name}: {record.describe()}")
        else:
            logging.debug(f"{self.name}: {record.describe()}")

        self._publish_state(record)
        if self.telemetry:
            self.telemetry.write(record)

        self._schedule(record.next_update_in)
        return record

    def _schedule(self, delay):
        """Replace the pending evaluation timer"""
        self._cancel_timer()
        if delay is None:
            logging.debug(f"{self.name}: No evaluation scheduled")
            return

        logging.debug(f"{self.name}: Scheduling next evaluation in {delay:.1f}s")
        self.control_timer = threading.Timer(delay, self._on_timer)
        self.control_timer.daemon = True
        self.control_timer.start()

    def _cancel_timer(self):
        if self.control_timer:
            self.control_timer.cancel()
            self.control_timer = None

    def _publish_state(self, record):
        """
        Publish the decision to MQTT.

        Publishes:
        - Actuator command (heat/cool/off)
        - Full decision as JSON for dashboards
        """
        self.client.publish(
            f"{self.base_topic}/actuator",
            record.new_state.value,
            qos=1,
            retain=True
        )
        payload = record.to_telemetry()
        if math.isinf(payload['duration']):
            payload['duration'] = None
        self.client.publish(
            f"{self.base_topic}/state",
            json.dumps(payload),
            qos=1,
            retain=True
        )

    def shutdown(self):
        """Final evaluation with the actuator OFF, then persist the state"""
        with self._lock:
            if self.is_shutdown:
                return None
            self._cancel_timer()
            record = self.controller.update("shutdown", shutdown=True)
            self.is_shutdown = True

            self.last_record = record
            logging.info(f"{self.name}: {record.describe()}")
            self._publish_state(record)
            if self.telemetry:
                self.telemetry.write(record)
                self.telemetry.close()

            self.store.save(self.controller.snapshot())
            return record


def main():
    """Main entry point"""
    # Load environment variables from .env file if it exists
    load_dotenv()

    # Configure logging
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('thermostat_control.log')
        ]
    )

    broker_ip = os.environ.get('MQTT_BROKER_IP', '192.168.1.10')
    config_file = os.environ.get('THERMOSTAT_CONFIG', 'thermostat_config.yaml')

    mqtt_username = os.environ.get('MQTT_USERNAME')
    mqtt_password = os.environ.get('MQTT_PASSWORD')

    if mqtt_username and mqtt_password:
        logging.info(f"MQTT authentication configured for user: {mqtt_username}")
    else:
        logging.info("MQTT authentication not configured (anonymous access)")

    logging.info("Starting thermostat control...")
    try:
        thermostat = ThermostatControl(broker_ip, config_file=config_file,
                                       mqtt_username=mqtt_username, mqtt_password=mqtt_password)
    except (RuntimeError, ConfigurationError) as e:
        logging.error(f"Thermostat not started: {e}")
        raise SystemExit(1)

    stop = threading.Event()

    def signal_handler(signum, frame):
        logging.info(f"Received signal {signum}, shutting down thermostat control")
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    thermostat.connect()
    logging.info("Thermostat control running")

    while not stop.is_set():
        stop.wait(1)

    thermostat.shutdown()
    thermostat.disconnect()


if __name__ == '__main__':
    main()
