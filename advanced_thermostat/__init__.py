"""Budget-based PID thermostat with MQTT integration"""

__version__ = "0.1.0"
